"""Base rollout strategy."""

from abc import ABC, abstractmethod

from deployctl.core.exceptions import RolloutError, ValidationError
from deployctl.core.logging import get_logger
from deployctl.deploy.models import (
    Artifact,
    Credentials,
    FailureKind,
    RolloutResult,
    RolloutTarget,
    StrategyTag,
)

logger = get_logger(__name__)


class RolloutStep:
    """Accumulates the steps and tolerated warnings of one rollout."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run
        self.steps: list[str] = []
        self.warnings: list[str] = []

    def record(self, step: str) -> None:
        self.steps.append(f"[dry-run] {step}" if self.dry_run else step)

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)


class RolloutStrategy(ABC):
    """Abstract base class for rollout strategies."""

    @property
    @abstractmethod
    def tag(self) -> StrategyTag:
        """Strategy identifier."""
        pass

    def rollout(
        self,
        artifact: Artifact,
        target: RolloutTarget,
        credentials: Credentials | None = None,
        dry_run: bool = False,
    ) -> RolloutResult:
        """Place the artifact on the target.

        Args:
            artifact: Located artifact
            target: Rollout destination
            credentials: Borrowed secrets for this call only
            dry_run: If True, record planned steps without side effects

        Returns:
            RolloutResult; errors are returned, never raised
        """
        progress = RolloutStep(dry_run=dry_run)

        try:
            self._rollout(artifact, target, credentials, progress)
        except RolloutError as e:
            logger.error(f"Rollout to {target.id} failed: {e.message}")
            return RolloutResult.from_error(target, e, steps=progress.steps, warnings=progress.warnings)
        except ValidationError as e:
            return RolloutResult.failed(
                target,
                reason=e.message,
                failure=FailureKind.TRANSPORT_FAILURE,
                steps=progress.steps,
                warnings=progress.warnings,
            )

        return RolloutResult.succeeded(target, steps=progress.steps, warnings=progress.warnings)

    @abstractmethod
    def _rollout(
        self,
        artifact: Artifact,
        target: RolloutTarget,
        credentials: Credentials | None,
        progress: RolloutStep,
    ) -> None:
        """Strategy-specific rollout. Raise RolloutError on fatal failure."""
        pass
