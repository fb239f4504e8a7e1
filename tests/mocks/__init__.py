"""Mock implementations for runner-fleet tests.

Provides mock objects for:
- The runner scripts (config.sh / svc.sh)
- The control-plane token API and package download server
"""

from .mock_runner import FakeAgentController, MockControlPlane

__all__ = ["FakeAgentController", "MockControlPlane"]
