"""Custom exceptions for deployctl."""

from datetime import datetime, timezone
from typing import Any


class DeployCtlError(Exception):
    """Base exception for all deployctl errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class ConfigError(DeployCtlError):
    """Configuration-related errors."""

    pass


class ValidationError(DeployCtlError):
    """Input validation errors."""

    pass


class ArtifactError(DeployCtlError):
    """Artifact lookup and inspection errors."""

    kind = "artifact_missing"

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.path = path


class ArtifactMissingError(ArtifactError):
    """Artifact does not exist or is empty."""

    pass


class EntryNotFoundError(ArtifactError):
    """Named entry is not present in the artifact archive."""

    kind = "entry_not_found"

    def __init__(
        self,
        message: str,
        path: str | None = None,
        entry: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, path=path, details=details)
        self.entry = entry


class InvalidArtifactError(ArtifactError):
    """Artifact exists but cannot be read as an archive."""

    pass


class RolloutError(DeployCtlError):
    """Errors raised while placing an artifact on a target."""

    kind = "transport_failure"
    requires_intervention = False

    def __init__(
        self,
        message: str,
        target_id: str | None = None,
        cause: BaseException | str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.target_id = target_id
        self.cause = str(cause) if cause is not None else None
        self.timestamp = datetime.now(timezone.utc)


class RolloutTransportError(RolloutError):
    """Network, I/O or command failure during the mandatory rollout step."""

    pass


class RolloutAuthError(RolloutError):
    """Target rejected the supplied credentials."""

    kind = "auth_failure"


class RolloutPartialFailure(RolloutError):
    """Artifact placed but the service could not be brought back up."""

    kind = "partial_failure"
    requires_intervention = True


class HealthCheckError(DeployCtlError):
    """Post-rollout health check failures."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.url = url


class HealthUnreachableError(HealthCheckError):
    """Health endpoint could not be reached."""

    pass


class HealthUnexpectedStatusError(HealthCheckError):
    """Health endpoint answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, url=url, details=details)
        self.status_code = status_code


class TargetBusyError(DeployCtlError):
    """Another rollout holds the lock for this target."""

    def __init__(
        self,
        message: str,
        target_id: str | None = None,
        timeout_seconds: float | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.target_id = target_id
        self.timeout_seconds = timeout_seconds
