"""Rollout orchestration module."""

from deployctl.deploy.models import (
    Artifact,
    Credentials,
    FailureKind,
    HealthState,
    HealthStatus,
    RolloutResult,
    RolloutStatus,
    RolloutTarget,
    RunOutcome,
    RunPhase,
    RunReport,
    StrategyTag,
)
from deployctl.deploy.state import RunHistory

__all__ = [
    "Artifact",
    "Credentials",
    "FailureKind",
    "HealthState",
    "HealthStatus",
    "RolloutResult",
    "RolloutStatus",
    "RolloutTarget",
    "RunHistory",
    "RunOutcome",
    "RunPhase",
    "RunReport",
    "StrategyTag",
]
