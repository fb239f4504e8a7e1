"""
Error handling utilities for Runner Fleet.

Provides the exception taxonomy, input validators, and HTTP error mapping.
"""

from .exceptions import (
    FleetError,
    PreflightError,
    DownloadError,
    TargetError,
    AuthorizationError,
    TransportError,
    ConfigureError,
    ServiceInstallError,
    RemovalError,
)
from .validators import (
    validate_owner,
    validate_target_name,
    validate_labels,
    validate_version,
)
from .http_handlers import (
    is_retryable_http_error,
    is_authorization_failure,
    map_http_error,
)

__all__ = [
    # Exceptions
    "FleetError",
    "PreflightError",
    "DownloadError",
    "TargetError",
    "AuthorizationError",
    "TransportError",
    "ConfigureError",
    "ServiceInstallError",
    "RemovalError",
    # Validators
    "validate_owner",
    "validate_target_name",
    "validate_labels",
    "validate_version",
    # HTTP handlers
    "is_retryable_http_error",
    "is_authorization_failure",
    "map_http_error",
]
