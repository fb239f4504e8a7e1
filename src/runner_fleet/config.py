"""
Configuration management for Runner Fleet.

Handles loading settings from a YAML config file or environment variables.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml


DEFAULT_API_URL = "https://api.github.com"
DEFAULT_WEB_URL = "https://github.com"
DEFAULT_AGENT_VERSION = "2.321.0"
DEFAULT_WORK_DIR = "_work"
DEFAULT_DOWNLOAD_URL_TEMPLATE = (
    "https://github.com/actions/runner/releases/download/"
    "v{version}/actions-runner-{platform}-{version}.tar.gz"
)

CONFIG_ENV_VAR = "RUNNER_FLEET_CONFIG"
ENV_PREFIX = "RUNNER_FLEET_"


def default_base_dir() -> Path:
    """Get the default directory holding runner installs and the cache."""
    if os.name == "nt":
        base = Path(os.environ.get("LOCALAPPDATA", "~"))
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", "~/.local/share"))
    return base.expanduser() / "runner-fleet" / "runners"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_labels(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(part).strip() for part in value if str(part).strip()]


@dataclass
class FleetConfig:
    """Settings shared by every target in a provisioning batch.

    Attributes:
        token: API credential with admin rights on the target repositories
        api_url: Base URL of the control-plane REST API
        web_url: Base URL runners register against (``<web_url>/<owner>/<repo>``)
        base_dir: Directory holding one subdirectory per target plus ``_cache``
        agent_version: Runner package version to install
        labels: Labels applied to every runner
        work_dir: Work directory name passed to the runner
        install_service: Install and start a local service per runner
        use_sudo: Run service scripts through sudo
        download_url_template: Distribution URL with ``{version}``/``{platform}``
        platform: Runner platform string (auto-detected if None)
        artifact_sha256: Expected SHA-256 of the runner package (optional)
        host_id: Stable host identifier used in registration names
        request_timeout: Timeout in seconds for API requests
        download_timeout: Timeout in seconds for the package download
    """
    token: str = ""
    api_url: str = DEFAULT_API_URL
    web_url: str = DEFAULT_WEB_URL
    base_dir: Path = field(default_factory=default_base_dir)
    agent_version: str = DEFAULT_AGENT_VERSION
    labels: list[str] = field(default_factory=list)
    work_dir: str = DEFAULT_WORK_DIR
    install_service: bool = True
    use_sudo: bool = True
    download_url_template: str = DEFAULT_DOWNLOAD_URL_TEMPLATE
    platform: Optional[str] = None
    artifact_sha256: Optional[str] = None
    host_id: Optional[str] = None
    request_timeout: float = 30.0
    download_timeout: float = 300.0

    def __post_init__(self) -> None:
        self.base_dir = Path(self.base_dir).expanduser()
        self.labels = _parse_labels(self.labels)
        self.api_url = self.api_url.rstrip("/")
        self.web_url = self.web_url.rstrip("/")

    @property
    def cache_dir(self) -> Path:
        """Directory holding the shared versioned runner packages."""
        return self.base_dir / "_cache"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FleetConfig":
        """Create config from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})

    @classmethod
    def from_config_file(cls, config_path: str) -> "FleetConfig":
        """Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            FleetConfig instance
        """
        path = Path(config_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Config root must be a mapping: {config_path}")

        config = cls.from_dict(data)
        # The token is usually kept out of the file
        if not config.token:
            config.token = os.environ.get(f"{ENV_PREFIX}TOKEN") or os.environ.get("GITHUB_TOKEN", "")
        return config

    @classmethod
    def from_env(cls) -> "FleetConfig":
        """Load configuration from environment variables.

        Environment variables:
        - RUNNER_FLEET_TOKEN (or GITHUB_TOKEN): API credential
        - RUNNER_FLEET_API_URL: Control-plane API URL
        - RUNNER_FLEET_WEB_URL: Registration URL base
        - RUNNER_FLEET_BASE_DIR: Base directory for runners
        - RUNNER_FLEET_VERSION: Runner package version
        - RUNNER_FLEET_LABELS: Comma-separated labels
        - RUNNER_FLEET_WORK_DIR: Runner work directory name
        - RUNNER_FLEET_INSTALL_SERVICE: Install local services (true/false)
        - RUNNER_FLEET_USE_SUDO: Run service scripts via sudo (true/false)
        - RUNNER_FLEET_PLATFORM: Runner platform override
        - RUNNER_FLEET_SHA256: Expected package checksum
        - RUNNER_FLEET_HOST_ID: Host identifier override
        """
        env = os.environ
        data: dict[str, Any] = {
            "token": env.get(f"{ENV_PREFIX}TOKEN") or env.get("GITHUB_TOKEN", ""),
            "api_url": env.get(f"{ENV_PREFIX}API_URL"),
            "web_url": env.get(f"{ENV_PREFIX}WEB_URL"),
            "base_dir": env.get(f"{ENV_PREFIX}BASE_DIR"),
            "agent_version": env.get(f"{ENV_PREFIX}VERSION"),
            "labels": env.get(f"{ENV_PREFIX}LABELS"),
            "work_dir": env.get(f"{ENV_PREFIX}WORK_DIR"),
            "platform": env.get(f"{ENV_PREFIX}PLATFORM"),
            "artifact_sha256": env.get(f"{ENV_PREFIX}SHA256"),
            "host_id": env.get(f"{ENV_PREFIX}HOST_ID"),
        }
        if f"{ENV_PREFIX}INSTALL_SERVICE" in env:
            data["install_service"] = _parse_bool(env[f"{ENV_PREFIX}INSTALL_SERVICE"])
        if f"{ENV_PREFIX}USE_SUDO" in env:
            data["use_sudo"] = _parse_bool(env[f"{ENV_PREFIX}USE_SUDO"])
        return cls.from_dict(data)

    def validate(self) -> None:
        """Validate the configuration.

        Raises:
            ValueError: If required settings are missing or malformed
        """
        if not self.token:
            raise ValueError(
                "API token is required. Set RUNNER_FLEET_TOKEN or GITHUB_TOKEN, "
                "or add 'token' to the config file."
            )
        for name in ("api_url", "web_url"):
            value = getattr(self, name)
            if not value.startswith(("https://", "http://")):
                raise ValueError(f"{name} must be an http(s) URL, got: {value!r}")
        if "{version}" not in self.download_url_template:
            raise ValueError("download_url_template must contain '{version}'")
        if self.request_timeout <= 0 or self.download_timeout <= 0:
            raise ValueError("Timeouts must be positive")


def load_config(config_path: Optional[str] = None) -> FleetConfig:
    """Load configuration from the best available source.

    Priority:
    1. Explicit config file path
    2. RUNNER_FLEET_CONFIG environment variable pointing to a config file
    3. Individual environment variables

    Args:
        config_path: Optional explicit path to a YAML config file

    Returns:
        FleetConfig instance (not yet validated)
    """
    path = config_path or os.environ.get(CONFIG_ENV_VAR)
    if path:
        return FleetConfig.from_config_file(path)
    return FleetConfig.from_env()
