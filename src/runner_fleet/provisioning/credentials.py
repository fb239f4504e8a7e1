"""
Short-lived registration and removal tokens.

Every configure or remove operation gets its own freshly issued token from the
control plane. Tokens are held in memory only and can be consumed once.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception

from ..error_handling import (
    AuthorizationError,
    PreflightError,
    TransportError,
    is_authorization_failure,
    is_retryable_http_error,
    map_http_error,
)

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL = timedelta(hours=1)
API_VERSION = "2022-11-28"


class TokenKind(Enum):
    """What an issued token authorizes."""
    REGISTRATION = "registration"
    REMOVAL = "removal"


@dataclass
class IssuedToken:
    """A single-use, time-bounded control-plane token.

    Attributes:
        kind: Registration or removal
        target: 'owner/repo' the token is scoped to
        value: The token string
        issued_at: When the token was received
        expires_at: When the control plane stops accepting it
    """
    kind: TokenKind
    target: str
    value: str = field(repr=False)
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: Optional[datetime] = None
    _used: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.expires_at is None:
            self.expires_at = self.issued_at + DEFAULT_TOKEN_TTL

    def is_expired(self) -> bool:
        """Check if the token has expired."""
        return datetime.now(timezone.utc) >= self.expires_at

    @property
    def used(self) -> bool:
        return self._used

    def consume(self) -> str:
        """Return the token value, marking the token as used.

        Raises:
            ValueError: If the token was already consumed
        """
        if self._used:
            raise ValueError(f"{self.kind.value} token for {self.target} was already used")
        self._used = True
        return self.value


def _parse_expiry(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        expiry = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    return expiry


class CredentialBroker:
    """Issues runner tokens from the control-plane REST API.

    No token is cached: each call performs one request (plus retries on
    transient failures).
    """

    def __init__(
        self,
        api_url: str,
        api_token: str,
        timeout: float = 30.0,
        http_client: Optional[httpx.Client] = None,
    ):
        """Initialize the broker.

        Args:
            api_url: Base URL of the REST API
            api_token: Credential with admin rights on the targets
            timeout: Request timeout in seconds
            http_client: Client to use instead of creating one
        """
        self.api_url = api_url.rstrip("/")
        self._client = http_client or httpx.Client(timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
        }

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "CredentialBroker":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @retry(
        retry=retry_if_exception(is_retryable_http_error),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _request(self, method: str, path: str) -> dict[str, Any]:
        response = self._client.request(method, f"{self.api_url}{path}", headers=self._headers)
        response.raise_for_status()
        return response.json()

    def _issue(self, kind: TokenKind, owner: str, target: str) -> IssuedToken:
        endpoint = "registration-token" if kind == TokenKind.REGISTRATION else "remove-token"
        operation = f"{kind.value} token request for {owner}/{target}"
        logger.debug(f"Requesting {operation}")

        try:
            data = self._request("POST", f"/repos/{owner}/{target}/actions/runners/{endpoint}")
        except httpx.HTTPError as e:
            mapped = map_http_error(e, operation)
            message = f"{mapped['error']}. {mapped['hint']}"
            if is_authorization_failure(e):
                raise AuthorizationError(message) from e
            raise TransportError(message) from e
        except ValueError as e:
            raise TransportError(f"Malformed response to {operation}: {e}") from e

        value = data.get("token") if isinstance(data, dict) else None
        if not value:
            raise TransportError(f"No token in response to {operation}")

        return IssuedToken(
            kind=kind,
            target=f"{owner}/{target}",
            value=value,
            expires_at=_parse_expiry(data.get("expires_at")),
        )

    def issue_registration_token(self, owner: str, target: str) -> IssuedToken:
        """Issue a fresh token authorizing a new runner registration.

        Args:
            owner: Repository owner
            target: Repository name

        Returns:
            A new single-use registration token

        Raises:
            AuthorizationError: If the caller lacks admin rights on the target
            TransportError: On network or API failure
        """
        return self._issue(TokenKind.REGISTRATION, owner, target)

    def issue_removal_token(self, owner: str, target: str) -> IssuedToken:
        """Issue a fresh token authorizing runner deregistration.

        Args:
            owner: Repository owner
            target: Repository name

        Returns:
            A new single-use removal token

        Raises:
            AuthorizationError: If the caller lacks admin rights on the target
            TransportError: On network or API failure
        """
        return self._issue(TokenKind.REMOVAL, owner, target)

    def verify_credentials(self) -> str:
        """Check that the API token authenticates.

        Returns:
            Login of the authenticated caller

        Raises:
            PreflightError: If authentication fails or the API is unreachable
        """
        try:
            data = self._request("GET", "/user")
        except httpx.HTTPError as e:
            mapped = map_http_error(e, "authentication check")
            raise PreflightError(f"{mapped['error']}. {mapped['hint']}") from e
        except ValueError as e:
            raise PreflightError(f"Malformed response to authentication check: {e}") from e

        return str(data.get("login", "")) if isinstance(data, dict) else ""
