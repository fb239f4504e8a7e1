"""
Pre-flight checks run before any target is touched.

Any failure here raises PreflightError and the batch never starts.
"""

import logging
import os
import shutil

from .config import FleetConfig
from .error_handling import PreflightError, validate_version
from .provisioning.credentials import CredentialBroker

logger = logging.getLogger(__name__)


def check_dependencies(install_service: bool, use_sudo: bool) -> None:
    """Check that required local tools are available.

    Raises:
        PreflightError: If a required executable is missing
    """
    required = ["bash"]
    if install_service:
        if use_sudo:
            required.append("sudo")
        if os.name == "posix" and not shutil.which("launchctl"):
            required.append("systemctl")

    missing = [name for name in required if shutil.which(name) is None]
    if missing:
        raise PreflightError(
            f"Missing required executables: {', '.join(missing)}. "
            "Hint: install them or pass --no-service to skip service management."
        )


def check_config(config: FleetConfig) -> None:
    """Validate configuration values.

    Raises:
        PreflightError: If the configuration is incomplete or malformed
    """
    try:
        config.validate()
        config.agent_version = validate_version(config.agent_version)
    except ValueError as e:
        raise PreflightError(str(e)) from e


def check_auth(broker: CredentialBroker) -> str:
    """Check that the API credential authenticates.

    Returns:
        Login of the authenticated caller
    """
    login = broker.verify_credentials()
    logger.info(f"Authenticated as {login or 'unknown user'}")
    return login


def run_preflight(config: FleetConfig, broker: CredentialBroker) -> None:
    """Run the environment checks: local dependencies, then authentication.

    Configuration is checked separately with check_config, before the
    collaborators are built from it.

    Raises:
        PreflightError: On the first failing check
    """
    check_dependencies(config.install_service, config.use_sudo)
    check_auth(broker)
