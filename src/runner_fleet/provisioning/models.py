"""
Data model for runner provisioning.

Targets, reconciliation states, per-step results and batch summaries.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class TargetState(Enum):
    """Reconciliation states of a single target."""
    UNCONFIGURED = "unconfigured"
    CONFIGURING = "configuring"
    CONFIGURED = "configured"
    FORCE_REMOVING = "force_removing"


class TargetStatus(Enum):
    """Outcome of processing one target in a batch."""
    SKIPPED = "skipped"
    CONFIGURED = "configured"
    REMOVED = "removed"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class Target:
    """One repository-level provisioning unit.

    Attributes:
        owner: Account or organization owning the repository
        name: Repository name
        directory: Directory exclusively owned by this target's runner
        labels: Labels applied to the runner, in order, without duplicates
        work_dir: Work directory name passed to the runner
    """
    owner: str
    name: str
    directory: Path
    labels: tuple[str, ...] = ()
    work_dir: str = "_work"

    @property
    def slug(self) -> str:
        """Return 'owner/name'."""
        return f"{self.owner}/{self.name}"


@dataclass
class StepResult:
    """Result of one reconciliation step.

    Attributes:
        step: Step name (e.g., 'stop_service', 'configure')
        success: Whether the step succeeded
        required: Whether failure of this step fails the target
        error: Error message if failed
    """
    step: str
    success: bool
    required: bool = True
    error: Optional[str] = None

    @property
    def is_warning(self) -> bool:
        """A failed best-effort step."""
        return not self.success and not self.required

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result = {
            "step": self.step,
            "success": self.success,
            "required": self.required,
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class TargetOutcome:
    """Result of reconciling a single target.

    Attributes:
        target: The target name
        status: Outcome status
        state: State the target was left in
        reason: Failure reason (for failed or aborted targets)
        registration_name: Name the runner was registered under
        steps: Steps executed, in order
    """
    target: str
    status: TargetStatus
    state: TargetState
    reason: Optional[str] = None
    registration_name: Optional[str] = None
    steps: list[StepResult] = field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        """Messages from failed best-effort steps."""
        return [f"{s.step}: {s.error}" for s in self.steps if s.is_warning]

    @property
    def failed(self) -> bool:
        return self.status in (TargetStatus.FAILED, TargetStatus.ABORTED)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result = {
            "target": self.target,
            "status": self.status.value,
            "state": self.state.value,
            "registration_name": self.registration_name,
            "warnings": self.warnings,
            "steps": [s.to_dict() for s in self.steps],
        }
        if self.reason:
            result["reason"] = self.reason
        return result


@dataclass
class BatchSummary:
    """Aggregated result of processing a target list.

    Attributes:
        outcomes: Per-target outcomes in processing order
        aborted: Reason the batch was aborted, if it was
    """
    outcomes: list[TargetOutcome] = field(default_factory=list)
    aborted: Optional[str] = None

    @property
    def success(self) -> bool:
        """True when no target failed and the batch was not aborted."""
        return self.aborted is None and not any(o.failed for o in self.outcomes)

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    @property
    def warnings(self) -> list[str]:
        return [f"{o.target}: {w}" for o in self.outcomes for w in o.warnings]

    def count(self, status: TargetStatus) -> int:
        """Number of targets with the given outcome status."""
        return sum(1 for o in self.outcomes if o.status == status)

    def get(self, target: str) -> Optional[TargetOutcome]:
        """Look up the outcome for a target by name."""
        for outcome in self.outcomes:
            if outcome.target == target:
                return outcome
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "aborted": self.aborted,
            "counts": {status.value: self.count(status) for status in TargetStatus},
            "warnings": self.warnings,
            "targets": [o.to_dict() for o in self.outcomes],
        }
