"""
Abstract base class for runner controllers.

Defines the capability set the reconciler needs from a runner installation.
Every operation takes the runner directory explicitly.
"""

from abc import ABC, abstractmethod
from pathlib import Path

# Files the runner writes when it is registered
MARKER_FILES = (".runner", ".credentials", ".credentials_rsaparams")
PRIMARY_MARKER = ".runner"
SERVICE_MARKER = ".service"
ENTRY_POINT = "config.sh"


class AgentController(ABC):
    """Operations against one runner installation directory.

    Implementations must honour these contracts:

    - ``configure`` with ``replace=True`` supersedes any existing registration
      under the same name instead of failing.
    - ``remove`` consumes a single-use removal token.
    - Service operations may need elevated privilege and raise
      ``ServiceInstallError`` when it is denied.
    """

    @abstractmethod
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
        """Register the runner in a directory.

        Args:
            directory: Runner installation directory
            url: Repository URL the runner registers against
            token: Single-use registration token
            name: Registration name
            labels: Runner labels
            work_dir: Work directory name
            replace: Supersede an existing registration with the same name

        Raises:
            ConfigureError: If registration fails
        """
        pass

    @abstractmethod
    def remove(self, directory: Path, token: str) -> None:
        """Deregister the runner in a directory.

        Raises:
            RemovalError: If deregistration fails
        """
        pass

    @abstractmethod
    def install_service(self, directory: Path) -> None:
        """Install the local service bound to a directory."""
        pass

    @abstractmethod
    def start_service(self, directory: Path) -> None:
        """Start the local service bound to a directory."""
        pass

    @abstractmethod
    def stop_service(self, directory: Path) -> None:
        """Stop the local service bound to a directory."""
        pass

    @abstractmethod
    def uninstall_service(self, directory: Path) -> None:
        """Uninstall the local service bound to a directory."""
        pass

    def is_configured(self, directory: Path) -> bool:
        """Check whether the registration marker is present."""
        return (Path(directory) / PRIMARY_MARKER).is_file()

    def has_entry_point(self, directory: Path) -> bool:
        """Check whether the runner software is extracted."""
        return (Path(directory) / ENTRY_POINT).is_file()

    def service_installed(self, directory: Path) -> bool:
        """Check whether a local service is bound to the directory."""
        return (Path(directory) / SERVICE_MARKER).is_file()

    def clear_registration(self, directory: Path) -> list[str]:
        """Delete local registration marker files.

        Returns:
            Names of the files that were deleted
        """
        removed = []
        for name in MARKER_FILES:
            path = Path(directory) / name
            if path.exists():
                path.unlink()
                removed.append(name)
        return removed
