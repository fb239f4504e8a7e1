"""
Batch driver for runner provisioning.

Processes a target list strictly in order, one target at a time, with each
target isolated behind its own error boundary.
"""

import logging
from pathlib import Path
from typing import Any, Iterable

from .models import BatchSummary, Target, TargetOutcome, TargetState, TargetStatus
from .reconciler import TargetReconciler
from ..error_handling import (
    DownloadError,
    PreflightError,
    validate_labels,
    validate_owner,
    validate_target_name,
)

logger = logging.getLogger(__name__)


def build_targets(
    owner: str,
    names: Iterable[str],
    base_dir: Path,
    labels: Iterable[str] = (),
    work_dir: str = "_work",
) -> list[Target]:
    """Build validated targets, one directory per target.

    Args:
        owner: Repository owner shared by all targets
        names: Repository names, in processing order
        base_dir: Directory holding one subdirectory per target
        labels: Labels applied to every runner
        work_dir: Runner work directory name

    Returns:
        Targets in the order given

    Raises:
        PreflightError: On invalid input or two targets sharing a directory
    """
    try:
        validate_owner(owner)
        label_list = tuple(validate_labels(list(labels)))
        names = [validate_target_name(name) for name in names]
    except ValueError as e:
        raise PreflightError(str(e)) from e

    if not names:
        raise PreflightError("At least one target is required")
    if not work_dir or "/" in work_dir:
        raise PreflightError(f"Invalid work directory name: {work_dir!r}")

    base_dir = Path(base_dir).expanduser()
    targets = []
    owners: dict[Path, str] = {}
    for name in names:
        directory = base_dir / name
        key = directory.resolve()
        if key in owners:
            raise PreflightError(
                f"Targets '{owners[key]}' and '{name}' would share directory {directory}"
            )
        owners[key] = name
        targets.append(
            Target(owner=owner, name=name, directory=directory, labels=label_list, work_dir=work_dir)
        )
    return targets


class FleetOrchestrator:
    """Runs the reconciler over a list of targets and summarizes the batch."""

    def __init__(self, reconciler: TargetReconciler):
        self.reconciler = reconciler

    def run(self, targets: list[Target], force: bool = False) -> BatchSummary:
        """Provision every target in order.

        Args:
            targets: Targets to reconcile
            force: Remove and reconfigure already configured targets

        Returns:
            Batch summary with one outcome per target
        """
        logger.info(f"Provisioning {len(targets)} target(s){' (force)' if force else ''}")
        return self._process(targets, lambda target: self.reconciler.reconcile(target, force=force))

    def deprovision(self, targets: list[Target]) -> BatchSummary:
        """Remove every target's registration and service, in order."""
        logger.info(f"Deprovisioning {len(targets)} target(s)")
        return self._process(targets, self.reconciler.deprovision)

    def status(self, targets: list[Target]) -> list[dict[str, Any]]:
        """Local state of every target. Makes no network calls."""
        return [self.reconciler.inspect(target) for target in targets]

    def _process(self, targets: list[Target], handler) -> BatchSummary:
        summary = BatchSummary()

        for index, target in enumerate(targets):
            try:
                outcome = handler(target)
            except DownloadError as e:
                logger.error(f"Runner package unavailable, aborting batch: {e}")
                summary.aborted = str(e)
                summary.outcomes.append(
                    TargetOutcome(
                        target=target.name,
                        status=TargetStatus.FAILED,
                        state=TargetState.UNCONFIGURED,
                        reason=str(e),
                    )
                )
                for remaining in targets[index + 1:]:
                    summary.outcomes.append(
                        TargetOutcome(
                            target=remaining.name,
                            status=TargetStatus.ABORTED,
                            state=TargetState.UNCONFIGURED,
                            reason="Not attempted: batch aborted",
                        )
                    )
                break
            except Exception as e:
                logger.error(f"{target.slug}: unexpected error", exc_info=True)
                configured = self.reconciler.controller.is_configured(target.directory)
                outcome = TargetOutcome(
                    target=target.name,
                    status=TargetStatus.FAILED,
                    state=TargetState.CONFIGURED if configured else TargetState.UNCONFIGURED,
                    reason=f"Unexpected error: {e}",
                    registration_name=self.reconciler.registration_name(target),
                )
            summary.outcomes.append(outcome)

        self._log_summary(summary)
        return summary

    @staticmethod
    def _log_summary(summary: BatchSummary) -> None:
        counts = ", ".join(
            f"{summary.count(status)} {status.value}"
            for status in TargetStatus
            if summary.count(status)
        )
        if summary.success:
            logger.info(f"Batch complete: {counts or 'no targets'}")
        else:
            logger.error(f"Batch finished with failures: {counts}")
        for warning in summary.warnings:
            logger.warning(warning)
