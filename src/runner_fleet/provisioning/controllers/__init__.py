"""
Runner controllers.

Provides the abstract capability interface and the script-backed adapter.
"""

from .base import AgentController, MARKER_FILES, ENTRY_POINT
from .script_controller import ScriptAgentController

__all__ = [
    "AgentController",
    "MARKER_FILES",
    "ENTRY_POINT",
    "ScriptAgentController",
]
