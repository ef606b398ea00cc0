"""Locate, roll out, verify."""

from dataclasses import dataclass, field

from deployctl.config import ProfileConfig
from deployctl.core.exceptions import ArtifactError, ConfigError, ValidationError
from deployctl.deploy.artifact import ArtifactLocator
from deployctl.deploy.credentials import CredentialStore
from deployctl.deploy.health import Backoff, HealthVerifier
from deployctl.deploy.locks import TargetLocks, get_shared_locks
from deployctl.deploy.models import (
    Artifact,
    FailureKind,
    RolloutResult,
    RolloutTarget,
    RunPhase,
    RunReport,
    StrategyTag,
)
from deployctl.deploy.strategies import RolloutStrategy, create_strategy


def build_target(profile: ProfileConfig, strategy: StrategyTag | str | None = None) -> RolloutTarget:
    """Resolve the profile's target section into a validated RolloutTarget."""
    target_config = profile.target
    try:
        return RolloutTarget(
            id=target_config.get_id(),
            strategy=StrategyTag(strategy or target_config.strategy),
            host=target_config.get_host(),
            port=target_config.port,
            scheme=target_config.scheme,
            context_path=target_config.context_path,
            index_resource=target_config.index_resource,
            credentials_ref=target_config.credentials,
        )
    except ValidationError as e:
        raise ConfigError(f"Invalid target: {e.message}")


@dataclass(frozen=True)
class OrchestratorConfig:
    """Immutable run settings, resolved before the orchestrator starts."""

    artifact_path: str
    target: RolloutTarget
    artifact_name: str | None = None
    artifact_version: str | None = None
    verify_entry: str | None = None
    probe_timeout: float = 5.0
    probe_attempts: int = 10
    probe_deadline: float = 120.0
    backoff: Backoff = field(default_factory=Backoff)
    verify_after_failure: bool = True
    lock_timeout: float | None = None
    dry_run: bool = False

    @classmethod
    def from_profile(
        cls,
        profile: ProfileConfig,
        artifact_path: str | None = None,
        strategy: StrategyTag | str | None = None,
        dry_run: bool = False,
    ) -> "OrchestratorConfig":
        """Resolve a profile (plus CLI overrides) into run settings."""
        path = artifact_path or profile.artifact.get_path()
        if not path:
            raise ConfigError("No artifact path configured")

        probe = profile.probe
        return cls(
            artifact_path=path,
            target=build_target(profile, strategy),
            artifact_name=profile.artifact.name,
            artifact_version=profile.artifact.version,
            verify_entry=profile.artifact.verify_entry,
            probe_timeout=probe.timeout,
            probe_attempts=probe.max_attempts,
            probe_deadline=probe.deadline,
            backoff=Backoff(mode=probe.backoff, interval=probe.interval, max_interval=probe.max_interval),
            verify_after_failure=probe.verify_after_failure,
            lock_timeout=profile.target.lock_timeout,
            dry_run=dry_run,
        )


class Orchestrator:
    """Sequence one rollout run.

    ``idle -> locating -> rolling_out -> verifying -> done``. A locate
    failure ends the run with no rollout and no probe. The per-target lock
    covers the rolling_out phase only. The orchestrator never logs; the
    returned RunReport carries everything.
    """

    def __init__(
        self,
        config: OrchestratorConfig,
        strategy: RolloutStrategy,
        credentials: CredentialStore | None = None,
        locator: ArtifactLocator | None = None,
        verifier: HealthVerifier | None = None,
        locks: TargetLocks | None = None,
    ):
        if strategy.tag != config.target.strategy:
            raise ConfigError(
                f"Strategy {strategy.tag.value} does not match target strategy {config.target.strategy.value}"
            )
        self._config = config
        self._strategy = strategy
        self._credentials = credentials or CredentialStore()
        self._locator = locator or ArtifactLocator()
        self._verifier = verifier or HealthVerifier()
        self._locks = locks or get_shared_locks()

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    def run(self) -> RunReport:
        """Execute the run and return its report."""
        target = self._config.target
        report = RunReport(target_id=target.id, strategy=target.strategy, dry_run=self._config.dry_run)
        report.advance(RunPhase.IDLE)

        # Locate
        report.advance(RunPhase.LOCATING)
        try:
            artifact = self._locator.locate(
                self._config.artifact_path,
                name=self._config.artifact_name,
                version=self._config.artifact_version,
            )
            report.artifact = artifact.to_dict()
            if self._config.verify_entry:
                self._locator.peek_entry(artifact, self._config.verify_entry)
        except ArtifactError as e:
            report.rollout = RolloutResult.failed(
                target,
                reason=e.message,
                failure=FailureKind(e.kind),
            )
            report.advance(RunPhase.DONE)
            return report

        # Roll out
        with self._locks.hold(target.id, timeout=self._config.lock_timeout):
            report.advance(RunPhase.ROLLING_OUT)
            report.rollout = self._rollout(artifact, target)

        if not report.rollout.ok and not self._config.verify_after_failure:
            report.advance(RunPhase.DONE)
            return report

        # Verify
        report.advance(RunPhase.VERIFYING)
        if not self._config.dry_run:
            report.health = self._verifier.verify(
                target.health_url,
                timeout=self._config.probe_timeout,
                max_attempts=self._config.probe_attempts,
                backoff=self._config.backoff,
                deadline=self._config.probe_deadline,
            )

        report.advance(RunPhase.DONE)
        return report

    def _rollout(self, artifact: Artifact, target: RolloutTarget) -> RolloutResult:
        try:
            with self._credentials.borrow(target.credentials_ref) as credentials:
                return self._strategy.rollout(
                    artifact,
                    target,
                    credentials=credentials,
                    dry_run=self._config.dry_run,
                )
        except ConfigError as e:
            return RolloutResult.failed(target, reason=e.message, failure=FailureKind.AUTH_FAILURE)


def create_orchestrator(
    profile: ProfileConfig,
    artifact_path: str | None = None,
    strategy: StrategyTag | str | None = None,
    dry_run: bool = False,
    locks: TargetLocks | None = None,
) -> Orchestrator:
    """Build an orchestrator from a configuration profile."""
    config = OrchestratorConfig.from_profile(profile, artifact_path=artifact_path, strategy=strategy, dry_run=dry_run)
    return Orchestrator(
        config,
        strategy=create_strategy(config.target.strategy, profile),
        credentials=CredentialStore(profile.credentials),
        verifier=HealthVerifier(verify_tls=not profile.manager.insecure),
        locks=locks,
    )
