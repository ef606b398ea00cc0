"""Rollout data models."""

import ipaddress
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from deployctl.core.exceptions import (
    HealthUnexpectedStatusError,
    HealthUnreachableError,
    RolloutError,
    ValidationError,
)

_HOSTNAME_RE = re.compile(
    r"^(?=.{1,253}$)([A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?)(\.[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$"
)
_CONTEXT_SEGMENT_RE = re.compile(r"^[A-Za-z0-9._~!$'()*+,;=:@%-]+$")
_VERSIONED_STEM_RE = re.compile(r"^(?P<name>.+?)-(?P<version>\d[\w.+-]*)$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StrategyTag(str, Enum):
    """Rollout strategies."""

    REMOTE_API = "remote-api"
    LOCAL_COPY = "local-copy"
    REMOTE_COPY = "remote-copy"


class RolloutStatus(str, Enum):
    """Outcome of one rollout attempt."""

    SUCCEEDED = "succeeded"
    SUCCEEDED_WITH_WARNING = "succeeded_with_warning"
    FAILED = "failed"


class FailureKind(str, Enum):
    """Why a run failed."""

    ARTIFACT_MISSING = "artifact_missing"
    ENTRY_NOT_FOUND = "entry_not_found"
    TRANSPORT_FAILURE = "transport_failure"
    AUTH_FAILURE = "auth_failure"
    PARTIAL_FAILURE = "partial_failure"


class HealthState(str, Enum):
    """Outcome of the post-rollout probe."""

    HEALTHY = "healthy"
    UNREACHABLE = "unreachable"
    UNEXPECTED_STATUS = "unexpected_status"


class RunPhase(str, Enum):
    """Orchestrator run phases."""

    IDLE = "idle"
    LOCATING = "locating"
    ROLLING_OUT = "rolling_out"
    VERIFYING = "verifying"
    DONE = "done"


class RunOutcome(str, Enum):
    """Terminal status of a whole run."""

    SUCCEEDED = "succeeded"
    DEGRADED = "degraded"
    FAILED = "failed"


def split_artifact_name(file_name: str) -> tuple[str, str | None]:
    """Split ``name-1.2.3.war`` into ``("name", "1.2.3")``."""
    stem = Path(file_name).stem
    match = _VERSIONED_STEM_RE.match(stem)
    if match:
        return match.group("name"), match.group("version")
    return stem, None


def validate_context_path(context_path: str) -> str:
    """Validate a context path such as ``/`` or ``/shop/api``."""
    if context_path == "/":
        return context_path
    if not context_path.startswith("/") or context_path.endswith("/"):
        raise ValidationError(f"Context path must start with '/' and not end with one: {context_path!r}")
    for segment in context_path[1:].split("/"):
        if segment in ("", ".", "..") or not _CONTEXT_SEGMENT_RE.match(segment):
            raise ValidationError(f"Invalid context path segment {segment!r} in {context_path!r}")
    return context_path


def validate_host(host: str) -> str:
    """Validate a hostname or IP address."""
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        pass
    if not _HOSTNAME_RE.match(host):
        raise ValidationError(f"Invalid host: {host!r}")
    return host


@dataclass(frozen=True)
class Artifact:
    """A built, deployable archive."""

    path: Path
    name: str
    version: str | None = None
    size: int = 0

    @property
    def file_name(self) -> str:
        return self.path.name

    @property
    def base_name(self) -> str:
        """File name without extension; the exploded directory name."""
        return self.path.stem

    @property
    def suffix(self) -> str:
        return self.path.suffix

    def is_version_of(self, file_name: str) -> bool:
        """True for ``{name}.ext`` or ``{name}-{version}.ext`` of this artifact.

        ``shop-admin.war`` is not a version of ``shop``; ``shop-1.3.0.war`` is.
        """
        candidate = Path(file_name)
        if candidate.suffix != self.suffix:
            return False
        if candidate.stem == self.name:
            return True
        name, version = split_artifact_name(candidate.name)
        return name == self.name and version is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "name": self.name,
            "version": self.version,
            "size": self.size,
        }


@dataclass(frozen=True)
class RolloutTarget:
    """Where an artifact is rolled out to.

    Validated on construction so no transport call is ever built from an
    unchecked host or context path.
    """

    id: str
    strategy: StrategyTag
    host: str = "localhost"
    port: int = 8080
    scheme: str = "http"
    context_path: str = "/"
    index_resource: str = ""
    credentials_ref: str | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValidationError("Target id must not be empty")
        object.__setattr__(self, "strategy", StrategyTag(self.strategy))
        validate_host(self.host)
        validate_context_path(self.context_path)
        if not 0 < self.port < 65536:
            raise ValidationError(f"Invalid port: {self.port}")
        if self.scheme not in ("http", "https"):
            raise ValidationError(f"Unsupported scheme: {self.scheme}")

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def health_url(self) -> str:
        context = "" if self.context_path == "/" else self.context_path
        return f"{self.base_url}{context}/{self.index_resource.lstrip('/')}"


@dataclass(frozen=True)
class Credentials:
    """Secret bundle borrowed for one rollout attempt."""

    username: str | None = None
    password: str | None = field(default=None, repr=False)
    key_file: str | None = None

    def __repr__(self) -> str:
        masked = "***" if self.password else None
        return f"Credentials(username={self.username!r}, password={masked!r}, key_file={self.key_file!r})"


@dataclass
class RolloutResult:
    """Outcome of one rollout attempt."""

    status: RolloutStatus
    target_id: str
    strategy: StrategyTag
    reason: str = ""
    failure: FailureKind | None = None
    warnings: list[str] = field(default_factory=list)
    steps: list[str] = field(default_factory=list)
    error: str | None = None
    requires_intervention: bool = False
    timestamp: datetime = field(default_factory=utcnow)

    @classmethod
    def succeeded(
        cls,
        target: RolloutTarget,
        steps: list[str] | None = None,
        warnings: list[str] | None = None,
    ) -> "RolloutResult":
        """Success, downgraded to a warning result if anything was tolerated."""
        warnings = list(warnings or [])
        return cls(
            status=RolloutStatus.SUCCEEDED_WITH_WARNING if warnings else RolloutStatus.SUCCEEDED,
            target_id=target.id,
            strategy=target.strategy,
            reason="; ".join(warnings),
            warnings=warnings,
            steps=list(steps or []),
        )

    @classmethod
    def failed(
        cls,
        target: RolloutTarget,
        reason: str,
        failure: FailureKind,
        steps: list[str] | None = None,
        warnings: list[str] | None = None,
        error: str | None = None,
        requires_intervention: bool = False,
    ) -> "RolloutResult":
        return cls(
            status=RolloutStatus.FAILED,
            target_id=target.id,
            strategy=target.strategy,
            reason=reason,
            failure=failure,
            warnings=list(warnings or []),
            steps=list(steps or []),
            error=error,
            requires_intervention=requires_intervention,
        )

    @classmethod
    def from_error(
        cls,
        target: RolloutTarget,
        error: RolloutError,
        steps: list[str] | None = None,
        warnings: list[str] | None = None,
        requires_intervention: bool | None = None,
    ) -> "RolloutResult":
        """Convert a raised rollout error into a failed result."""
        result = cls.failed(
            target,
            reason=error.message,
            failure=FailureKind(error.kind),
            steps=steps,
            warnings=warnings,
            error=error.cause,
            requires_intervention=(
                error.requires_intervention if requires_intervention is None else requires_intervention
            ),
        )
        result.timestamp = error.timestamp
        return result

    @property
    def ok(self) -> bool:
        return self.status != RolloutStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "target_id": self.target_id,
            "strategy": self.strategy.value,
            "reason": self.reason,
            "failure": self.failure.value if self.failure else None,
            "warnings": self.warnings,
            "steps": self.steps,
            "error": self.error,
            "requires_intervention": self.requires_intervention,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RolloutResult":
        return cls(
            status=RolloutStatus(data["status"]),
            target_id=data.get("target_id", ""),
            strategy=StrategyTag(data.get("strategy", "remote-api")),
            reason=data.get("reason", ""),
            failure=FailureKind(data["failure"]) if data.get("failure") else None,
            warnings=data.get("warnings", []),
            steps=data.get("steps", []),
            error=data.get("error"),
            requires_intervention=data.get("requires_intervention", False),
            timestamp=datetime.fromisoformat(data["timestamp"]) if data.get("timestamp") else utcnow(),
        )


@dataclass
class HealthStatus:
    """Outcome of the post-rollout probe."""

    state: HealthState
    url: str
    status_code: int | None = None
    attempts: int = 1
    error: str | None = None
    elapsed: float = 0.0

    @property
    def healthy(self) -> bool:
        return self.state == HealthState.HEALTHY

    def raise_for_status(self) -> None:
        """Raise the matching health error unless healthy."""
        if self.state == HealthState.UNREACHABLE:
            raise HealthUnreachableError(f"Health endpoint unreachable: {self.error}", url=self.url)
        if self.state == HealthState.UNEXPECTED_STATUS:
            raise HealthUnexpectedStatusError(
                f"Health endpoint returned HTTP {self.status_code}",
                url=self.url,
                status_code=self.status_code,
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "url": self.url,
            "status_code": self.status_code,
            "attempts": self.attempts,
            "error": self.error,
            "elapsed": round(self.elapsed, 3),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HealthStatus":
        return cls(
            state=HealthState(data["state"]),
            url=data.get("url", ""),
            status_code=data.get("status_code"),
            attempts=data.get("attempts", 1),
            error=data.get("error"),
            elapsed=data.get("elapsed", 0.0),
        )


@dataclass
class PhaseTransition:
    """Timestamped phase change for the run audit trail."""

    phase: RunPhase
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {"phase": self.phase.value, "timestamp": self.timestamp.isoformat()}


@dataclass
class RunReport:
    """Structured result of one orchestrator run."""

    target_id: str
    strategy: StrategyTag
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    phase: RunPhase = RunPhase.IDLE
    transitions: list[PhaseTransition] = field(default_factory=list)
    artifact: dict[str, Any] | None = None
    rollout: RolloutResult | None = None
    health: HealthStatus | None = None
    dry_run: bool = False
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None

    def advance(self, phase: RunPhase) -> None:
        """Move to the next phase and record the transition."""
        self.phase = phase
        self.transitions.append(PhaseTransition(phase=phase))
        if phase == RunPhase.DONE:
            self.completed_at = utcnow()

    @property
    def outcome(self) -> RunOutcome:
        if self.rollout is None or not self.rollout.ok:
            return RunOutcome.FAILED
        if self.health is not None and not self.health.healthy:
            return RunOutcome.DEGRADED
        return RunOutcome.SUCCEEDED

    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "target_id": self.target_id,
            "strategy": self.strategy.value,
            "phase": self.phase.value,
            "outcome": self.outcome.value,
            "dry_run": self.dry_run,
            "artifact": self.artifact,
            "rollout": self.rollout.to_dict() if self.rollout else None,
            "health": self.health.to_dict() if self.health else None,
            "transitions": [t.to_dict() for t in self.transitions],
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RunReport":
        report = cls(
            id=data.get("id", str(uuid.uuid4())[:8]),
            target_id=data.get("target_id", ""),
            strategy=StrategyTag(data.get("strategy", "remote-api")),
            phase=RunPhase(data.get("phase", "idle")),
            artifact=data.get("artifact"),
            rollout=RolloutResult.from_dict(data["rollout"]) if data.get("rollout") else None,
            health=HealthStatus.from_dict(data["health"]) if data.get("health") else None,
            dry_run=data.get("dry_run", False),
        )
        report.transitions = [
            PhaseTransition(phase=RunPhase(t["phase"]), timestamp=datetime.fromisoformat(t["timestamp"]))
            for t in data.get("transitions", [])
        ]
        if data.get("started_at"):
            report.started_at = datetime.fromisoformat(data["started_at"])
        if data.get("completed_at"):
            report.completed_at = datetime.fromisoformat(data["completed_at"])
        return report
