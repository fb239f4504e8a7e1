"""
Exception taxonomy for runner provisioning.

Errors fall into three scopes: pre-flight errors stop everything before any
target is touched, batch errors stop the remaining targets, and target errors
are recorded against a single target while the batch continues.
"""


class FleetError(Exception):
    """Base class for all provisioning errors."""


class PreflightError(FleetError):
    """Missing dependency, failed authentication or invalid input."""


class DownloadError(FleetError):
    """The shared runner package could not be fetched or verified."""


class TargetError(FleetError):
    """An error scoped to a single target."""


class AuthorizationError(TargetError):
    """The caller lacks administrative rights on the target."""


class TransportError(TargetError):
    """The control-plane request failed at the network or API level."""


class ConfigureError(TargetError):
    """The runner could not be configured or extracted."""


class ServiceInstallError(TargetError):
    """The local service could not be installed or started."""


class RemovalError(FleetError):
    """Deregistration failed. Never fatal; reported as a warning."""
