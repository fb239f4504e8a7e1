"""
Per-target reconciliation.

Decides, for one target, whether to skip it, force-remove and reconfigure
it, or configure it fresh, and drives the runner controller accordingly.

State flow::

    unconfigured -> configuring -> configured
    configured --(force)--> force_removing -> unconfigured -> configuring ...
"""

import logging
import socket
import tarfile
from pathlib import Path
from typing import Any, Callable, Optional

from .artifact_cache import ArtifactCache, extract_artifact
from .controllers import AgentController
from .credentials import CredentialBroker
from .models import StepResult, Target, TargetOutcome, TargetState, TargetStatus
from ..error_handling import ConfigureError, FleetError, TargetError

logger = logging.getLogger(__name__)


def default_host_id() -> str:
    """Short host name, stable across runs on the same machine."""
    return socket.gethostname().split(".")[0] or "localhost"


class TargetReconciler:
    """Reconciles one target at a time against its desired registration."""

    def __init__(
        self,
        controller: AgentController,
        broker: CredentialBroker,
        cache: ArtifactCache,
        version: str,
        web_url: str,
        host_id: Optional[str] = None,
        install_service: bool = True,
    ):
        """Initialize the reconciler.

        Args:
            controller: Runner controller used for every target
            broker: Issues registration and removal tokens
            cache: Shared runner package cache
            version: Runner version to install
            web_url: Base URL runners register against
            host_id: Host identifier for registration names (hostname if None)
            install_service: Install and start a local service per target
        """
        self.controller = controller
        self.broker = broker
        self.cache = cache
        self.version = version
        self.web_url = web_url.rstrip("/")
        self.host_id = host_id or default_host_id()
        self.install_service = install_service

    def registration_name(self, target: Target) -> str:
        """Unique runner name for a target on this host."""
        return f"{self.host_id}-{target.name}"

    def registration_url(self, target: Target) -> str:
        return f"{self.web_url}/{target.owner}/{target.name}"

    def reconcile(self, target: Target, force: bool = False) -> TargetOutcome:
        """Bring one target to the configured state.

        Args:
            target: The target to reconcile
            force: Remove and reconfigure an already configured target

        Returns:
            The outcome for this target. Target-scoped errors are recorded
            in the outcome instead of being raised.

        Raises:
            DownloadError: If the shared runner package cannot be obtained
        """
        directory = target.directory
        outcome = TargetOutcome(
            target=target.name,
            status=TargetStatus.FAILED,
            state=TargetState.UNCONFIGURED,
            registration_name=self.registration_name(target),
        )

        if self.controller.is_configured(directory):
            if not force:
                logger.info(f"{target.slug}: already configured, skipping")
                outcome.status = TargetStatus.SKIPPED
                outcome.state = TargetState.CONFIGURED
                return outcome
            outcome.state = TargetState.FORCE_REMOVING

        try:
            if outcome.state == TargetState.FORCE_REMOVING:
                logger.info(f"{target.slug}: force requested, removing existing registration")
                self._remove_existing(target, outcome)
                outcome.state = TargetState.UNCONFIGURED

            outcome.state = TargetState.CONFIGURING
            self._configure(target, outcome)
            outcome.state = TargetState.CONFIGURED

            if self.install_service:
                self._start_service(target, outcome)
        except TargetError as e:
            outcome.status = TargetStatus.FAILED
            outcome.reason = str(e)
            logger.error(f"{target.slug}: {type(e).__name__}: {e}")
            return outcome

        outcome.status = TargetStatus.CONFIGURED
        logger.info(f"{target.slug}: configured as {outcome.registration_name}")
        return outcome

    def deprovision(self, target: Target) -> TargetOutcome:
        """Remove a target's registration and local service.

        Args:
            target: The target to deprovision

        Returns:
            Outcome with status REMOVED, or SKIPPED when nothing is registered
        """
        outcome = TargetOutcome(
            target=target.name,
            status=TargetStatus.SKIPPED,
            state=TargetState.UNCONFIGURED,
            registration_name=self.registration_name(target),
        )
        if not self.controller.is_configured(target.directory):
            logger.info(f"{target.slug}: not configured, nothing to remove")
            return outcome

        outcome.state = TargetState.FORCE_REMOVING
        try:
            self._remove_existing(target, outcome)
        except TargetError as e:
            outcome.status = TargetStatus.FAILED
            outcome.reason = str(e)
            logger.error(f"{target.slug}: {type(e).__name__}: {e}")
            return outcome

        outcome.state = TargetState.UNCONFIGURED
        outcome.status = TargetStatus.REMOVED
        logger.info(f"{target.slug}: registration removed")
        return outcome

    def inspect(self, target: Target) -> dict[str, Any]:
        """Report local state of a target without side effects."""
        directory = target.directory
        configured = self.controller.is_configured(directory)
        return {
            "target": target.name,
            "directory": str(directory),
            "state": (TargetState.CONFIGURED if configured else TargetState.UNCONFIGURED).value,
            "extracted": self.controller.has_entry_point(directory),
            "service_installed": self.controller.service_installed(directory),
            "registration_name": self.registration_name(target),
        }

    def _best_effort(self, target: Target, outcome: TargetOutcome, step: str, action: Callable[[], None]) -> StepResult:
        try:
            action()
            result = StepResult(step=step, success=True, required=False)
        except FleetError as e:
            logger.warning(f"{target.slug}: {step} failed (continuing): {e}")
            result = StepResult(step=step, success=False, required=False, error=str(e))
        outcome.steps.append(result)
        return result

    def _required(self, outcome: TargetOutcome, step: str, action: Callable[[], None]) -> None:
        try:
            action()
        except TargetError as e:
            outcome.steps.append(StepResult(step=step, success=False, error=str(e)))
            raise
        outcome.steps.append(StepResult(step=step, success=True))

    def _remove_existing(self, target: Target, outcome: TargetOutcome) -> None:
        directory = target.directory

        if self.controller.service_installed(directory):
            self._best_effort(target, outcome, "stop_service", lambda: self.controller.stop_service(directory))
            self._best_effort(target, outcome, "uninstall_service", lambda: self.controller.uninstall_service(directory))

        def remove_registration() -> None:
            token = self.broker.issue_removal_token(target.owner, target.name)
            self.controller.remove(directory, token.consume())

        self._best_effort(target, outcome, "remove_registration", remove_registration)

        def clear_marker() -> None:
            try:
                removed = self.controller.clear_registration(directory)
            except OSError as e:
                raise ConfigureError(f"Cannot delete registration marker in {directory}: {e}") from e
            logger.debug(f"{target.slug}: deleted {', '.join(removed) or 'no marker files'}")

        self._required(outcome, "clear_marker", clear_marker)

    def _ensure_extracted(self, target: Target) -> None:
        directory = target.directory
        if self.controller.has_entry_point(directory):
            logger.debug(f"{target.slug}: runner already extracted, leaving install untouched")
            return

        # DownloadError is not a TargetError and escapes to the batch
        artifact = self.cache.ensure_artifact(self.version)
        try:
            extract_artifact(artifact, Path(directory))
        except (tarfile.TarError, OSError, ValueError) as e:
            raise ConfigureError(f"Failed to extract runner {self.version} into {directory}: {e}") from e

    def _configure(self, target: Target, outcome: TargetOutcome) -> None:
        self._required(outcome, "extract", lambda: self._ensure_extracted(target))

        def configure() -> None:
            token = self.broker.issue_registration_token(target.owner, target.name)
            self.controller.configure(
                target.directory,
                url=self.registration_url(target),
                token=token.consume(),
                name=outcome.registration_name,
                labels=list(target.labels),
                work_dir=target.work_dir,
                replace=True,
            )

        self._required(outcome, "configure", configure)

    def _start_service(self, target: Target, outcome: TargetOutcome) -> None:
        directory = target.directory
        self._required(outcome, "install_service", lambda: self.controller.install_service(directory))
        self._required(outcome, "start_service", lambda: self.controller.start_service(directory))
