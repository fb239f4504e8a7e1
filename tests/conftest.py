"""Shared pytest fixtures for runner-fleet tests.

All fixtures here are unit-level: the control plane and download server are
served by httpx.MockTransport and the runner scripts are replaced by a fake
controller, so no network access or shell scripts are needed.
"""

import os
from pathlib import Path
from typing import Callable, Generator

import pytest

from runner_fleet.provisioning import (
    ArtifactCache,
    CredentialBroker,
    FleetOrchestrator,
    Target,
    TargetReconciler,
    build_targets,
)
from tests.mocks.mock_runner import (
    API_URL,
    DOWNLOAD_TEMPLATE,
    TEST_PLATFORM,
    TEST_VERSION,
    WEB_URL,
    FakeAgentController,
    MockControlPlane,
)

OWNER = "octo-org"
HOST_ID = "buildhost"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    """Provide an isolated base directory for runner installs.

    Returns:
        Path to an empty base directory
    """
    runners = tmp_path / "runners"
    runners.mkdir()
    return runners


@pytest.fixture
def control_plane() -> MockControlPlane:
    """Provide a mock control plane with download and token endpoints."""
    return MockControlPlane()


@pytest.fixture
def controller() -> FakeAgentController:
    """Provide a fake runner controller."""
    return FakeAgentController()


@pytest.fixture
def broker(control_plane: MockControlPlane) -> Generator[CredentialBroker, None, None]:
    """Provide a credential broker talking to the mock control plane."""
    client = control_plane.client()
    broker = CredentialBroker(API_URL, "test-api-token", http_client=client)
    yield broker
    broker.close()


@pytest.fixture
def cache(base_dir: Path, control_plane: MockControlPlane) -> Generator[ArtifactCache, None, None]:
    """Provide an artifact cache downloading from the mock server."""
    client = control_plane.client()
    yield ArtifactCache(
        cache_dir=base_dir / "_cache",
        url_template=DOWNLOAD_TEMPLATE,
        platform=TEST_PLATFORM,
        http_client=client,
    )
    client.close()


@pytest.fixture
def reconciler(controller, broker, cache) -> TargetReconciler:
    """Provide a reconciler wired to the fakes, with service management on."""
    return TargetReconciler(
        controller=controller,
        broker=broker,
        cache=cache,
        version=TEST_VERSION,
        web_url=WEB_URL,
        host_id=HOST_ID,
        install_service=True,
    )


@pytest.fixture
def orchestrator(reconciler: TargetReconciler) -> FleetOrchestrator:
    return FleetOrchestrator(reconciler)


@pytest.fixture
def make_targets(base_dir: Path) -> Callable[..., list[Target]]:
    """Build targets under the test base directory."""

    def _make(*names: str, labels=("self-hosted", "linux")) -> list[Target]:
        return build_targets(OWNER, names, base_dir, labels=labels)

    return _make


@pytest.fixture
def no_backoff(monkeypatch):
    """Skip tenacity's sleeps between retries."""
    monkeypatch.setattr("time.sleep", lambda seconds: None)


@pytest.fixture
def clean_env(monkeypatch):
    """Provide a clean environment without runner-fleet config vars."""
    for var in list(os.environ):
        if var.startswith("RUNNER_FLEET_"):
            monkeypatch.delenv(var, raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)


# Autouse fixture for test isolation
@pytest.fixture(autouse=True)
def isolate_test_artifacts(tmp_path: Path, monkeypatch) -> Generator[None, None, None]:
    """Ensure tests don't affect the real system.

    Sets environment variables to redirect all storage to temp directories.
    """
    test_data_home = tmp_path / "data"
    test_data_home.mkdir()
    monkeypatch.setenv("XDG_DATA_HOME", str(test_data_home))

    if os.name == "nt":
        monkeypatch.setenv("LOCALAPPDATA", str(test_data_home))

    yield
