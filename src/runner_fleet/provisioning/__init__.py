"""
Runner provisioning infrastructure.

Provides the shared package cache, token broker, runner controllers,
per-target reconciler and batch orchestrator.
"""

from .models import (
    Target,
    TargetState,
    TargetStatus,
    StepResult,
    TargetOutcome,
    BatchSummary,
)
from .artifact_cache import ArtifactCache, CachedArtifact, detect_platform, extract_artifact
from .credentials import CredentialBroker, IssuedToken, TokenKind
from .controllers import AgentController, ScriptAgentController
from .reconciler import TargetReconciler
from .orchestrator import FleetOrchestrator, build_targets

__all__ = [
    "Target",
    "TargetState",
    "TargetStatus",
    "StepResult",
    "TargetOutcome",
    "BatchSummary",
    "ArtifactCache",
    "CachedArtifact",
    "detect_platform",
    "extract_artifact",
    "CredentialBroker",
    "IssuedToken",
    "TokenKind",
    "AgentController",
    "ScriptAgentController",
    "TargetReconciler",
    "FleetOrchestrator",
    "build_targets",
]
