"""Copy-and-restart rollout on the local machine."""

import shutil
from pathlib import Path

from deployctl.config import LocalCopyConfig
from deployctl.core.exceptions import RolloutPartialFailure, RolloutTransportError, ValidationError
from deployctl.core.logging import get_logger
from deployctl.deploy.models import Artifact, Credentials, RolloutTarget, StrategyTag
from deployctl.deploy.process import CommandRunner, run_command, split_command
from deployctl.deploy.strategies.base import RolloutStep, RolloutStrategy

logger = get_logger(__name__)


def stale_archives(deploy_dir: Path, artifact: Artifact) -> list[Path]:
    """Archives of the same logical artifact left by earlier rollouts."""
    if not deploy_dir.is_dir():
        return []
    return sorted(path for path in deploy_dir.iterdir() if artifact.is_version_of(path.name))


class LocalCopyRollout(RolloutStrategy):
    """Stop, clean, copy, start.

    A failed copy leaves the service stopped: it is not restarted and the
    result is flagged for operator intervention.
    """

    def __init__(
        self,
        config: LocalCopyConfig,
        runner: CommandRunner = run_command,
    ):
        self._config = config
        self._runner = runner

    @property
    def tag(self) -> StrategyTag:
        return StrategyTag.LOCAL_COPY

    @property
    def deploy_dir(self) -> Path:
        root = self._config.get_service_root()
        if not root:
            raise ValidationError("local_copy.service_root is not configured")
        return Path(root).expanduser() / self._config.deploy_dir

    def _rollout(
        self,
        artifact: Artifact,
        target: RolloutTarget,
        credentials: Credentials | None,
        progress: RolloutStep,
    ) -> None:
        deploy_dir = self.deploy_dir
        stop_argv = split_command(self._config.stop_command, "stop")
        start_argv = split_command(self._config.start_command, "start")
        destination = deploy_dir / artifact.file_name

        # Stop
        progress.record(f"stop service: {' '.join(stop_argv)}")
        if not progress.dry_run:
            result = self._runner(stop_argv, self._config.command_timeout)
            if not result.success:
                progress.warn(f"Stop command failed, assuming service already stopped ({result.summary})")

        # Clean
        exploded = deploy_dir / artifact.base_name
        progress.record(f"remove exploded directory {exploded}")
        if not progress.dry_run:
            self._remove(exploded, progress)

        for stale in stale_archives(deploy_dir, artifact):
            progress.record(f"remove stale archive {stale}")
            if not progress.dry_run:
                self._remove(stale, progress)
                self._remove(deploy_dir / stale.stem, progress)

        # Copy
        progress.record(f"copy {artifact.path} -> {destination}")
        if not progress.dry_run:
            try:
                deploy_dir.mkdir(parents=True, exist_ok=True)
                shutil.copy2(artifact.path, destination)
            except OSError as e:
                error = RolloutTransportError(
                    f"Copy to {destination} failed; service left stopped",
                    target_id=target.id,
                    cause=e,
                )
                error.requires_intervention = True
                raise error
            logger.debug(f"Copied {artifact.file_name} to {deploy_dir}")

        # Start
        progress.record(f"start service: {' '.join(start_argv)}")
        if not progress.dry_run:
            result = self._runner(start_argv, self._config.command_timeout)
            if not result.success:
                raise RolloutPartialFailure(
                    f"Artifact placed at {destination} but service start failed",
                    target_id=target.id,
                    cause=result.summary,
                )

    def _remove(self, path: Path, progress: RolloutStep) -> None:
        """Best-effort removal of a file or directory."""
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif path.exists() or path.is_symlink():
                path.unlink()
        except OSError as e:
            progress.warn(f"Could not remove {path}: {e}")
