"""
Runner controller backed by the runner's own shell scripts.

Drives ``config.sh`` and ``svc.sh`` from an extracted runner package via
subprocess, always with the runner directory as the explicit working
directory of the child process.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Optional

from .base import AgentController
from ...error_handling import ConfigureError, RemovalError, ServiceInstallError

logger = logging.getLogger(__name__)

# config.sh reads any --flag from ACTIONS_RUNNER_INPUT_<FLAG>, which keeps the
# token out of the process list
TOKEN_ENV_VAR = "ACTIONS_RUNNER_INPUT_TOKEN"

_PRIVILEGE_HINTS = ("must run as sudo", "permission denied", "not permitted", "access denied")


class ScriptAgentController(AgentController):
    """Controls a runner installation through ``config.sh`` and ``svc.sh``."""

    def __init__(self, use_sudo: bool = True, timeout: float = 600.0):
        """Initialize the controller.

        Args:
            use_sudo: Run ``svc.sh`` through sudo
            timeout: Timeout in seconds for each script invocation
        """
        self.use_sudo = use_sudo
        self.timeout = timeout

    def _run(
        self,
        directory: Path,
        args: list[str],
        env: Optional[dict[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        full_env = dict(os.environ)
        if env:
            full_env.update(env)
        logger.debug(f"Running {' '.join(args)} in {directory}")
        return subprocess.run(
            args,
            cwd=str(directory),
            env=full_env,
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )

    @staticmethod
    def _output(result: subprocess.CompletedProcess) -> str:
        return (result.stderr or result.stdout or "").strip()[-500:]

    def configure(
        self,
        directory: Path,
        url: str,
        token: str,
        name: str,
        labels: list[str],
        work_dir: str,
        replace: bool = True,
    ) -> None:
        """Register the runner with ``config.sh --unattended``."""
        args = [
            "./config.sh",
            "--unattended",
            "--url", url,
            "--name", name,
            "--work", work_dir,
        ]
        if labels:
            args += ["--labels", ",".join(labels)]
        if replace:
            args.append("--replace")

        try:
            result = self._run(directory, args, env={TOKEN_ENV_VAR: token})
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ConfigureError(f"Failed to run config.sh in {directory}: {e}") from e

        if result.returncode != 0:
            raise ConfigureError(
                f"config.sh exited with {result.returncode}: {self._output(result)}"
            )

    def remove(self, directory: Path, token: str) -> None:
        """Deregister the runner with ``config.sh remove``."""
        try:
            result = self._run(directory, ["./config.sh", "remove"], env={TOKEN_ENV_VAR: token})
        except (OSError, subprocess.TimeoutExpired) as e:
            raise RemovalError(f"Failed to run config.sh remove in {directory}: {e}") from e

        if result.returncode != 0:
            raise RemovalError(
                f"config.sh remove exited with {result.returncode}: {self._output(result)}"
            )

    def _service(self, directory: Path, action: str) -> None:
        args = ["./svc.sh", action]
        if self.use_sudo:
            args = ["sudo", "-n"] + args

        try:
            result = self._run(directory, args)
        except PermissionError as e:
            raise ServiceInstallError(f"Permission denied running svc.sh {action}: {e}") from e
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ServiceInstallError(f"Failed to run svc.sh {action} in {directory}: {e}") from e

        if result.returncode != 0:
            output = self._output(result)
            if any(hint in output.lower() for hint in _PRIVILEGE_HINTS):
                raise ServiceInstallError(
                    f"Insufficient privilege for svc.sh {action}: {output}. "
                    "Hint: run with passwordless sudo or pass --no-service."
                )
            raise ServiceInstallError(f"svc.sh {action} exited with {result.returncode}: {output}")

    def install_service(self, directory: Path) -> None:
        self._service(directory, "install")

    def start_service(self, directory: Path) -> None:
        self._service(directory, "start")

    def stop_service(self, directory: Path) -> None:
        self._service(directory, "stop")

    def uninstall_service(self, directory: Path) -> None:
        self._service(directory, "uninstall")
