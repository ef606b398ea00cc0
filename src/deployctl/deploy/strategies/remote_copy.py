"""Copy-and-restart rollout on a remote host over SSH."""

import posixpath

from deployctl.config import RemoteCopyConfig
from deployctl.core.exceptions import RolloutAuthError, RolloutPartialFailure, RolloutTransportError, ValidationError
from deployctl.core.logging import get_logger
from deployctl.deploy.models import Artifact, Credentials, RolloutTarget, StrategyTag
from deployctl.deploy.process import CommandResult, CommandRunner, SshCommand, run_command, split_command
from deployctl.deploy.strategies.base import RolloutStep, RolloutStrategy

logger = get_logger(__name__)

AUTH_FAILURE_MARKERS = ("Permission denied", "Host key verification failed")


class RemoteCopyRollout(RolloutStrategy):
    """Stage over scp, then stop, swap, start over ssh.

    The artifact is transferred to a hidden staging name first so a failed
    transfer never touches the running service.
    """

    def __init__(
        self,
        config: RemoteCopyConfig,
        runner: CommandRunner = run_command,
    ):
        self._config = config
        self._runner = runner

    @property
    def tag(self) -> StrategyTag:
        return StrategyTag.REMOTE_COPY

    def _ssh(self, target: RolloutTarget, credentials: Credentials | None) -> SshCommand:
        user = self._config.user
        identity_file = self._config.identity_file
        if credentials is not None:
            user = credentials.username or user
            identity_file = credentials.key_file or identity_file
        return SshCommand(
            host=target.host,
            user=user,
            port=self._config.ssh_port,
            identity_file=identity_file,
            options=list(self._config.ssh_options),
        )

    def _rollout(
        self,
        artifact: Artifact,
        target: RolloutTarget,
        credentials: Credentials | None,
        progress: RolloutStep,
    ) -> None:
        if not self._config.service_root:
            raise ValidationError("remote_copy.service_root is not configured")

        ssh = self._ssh(target, credentials)
        stop_argv = split_command(self._config.stop_command, "stop")
        start_argv = split_command(self._config.start_command, "start")

        deploy_dir = posixpath.join(self._config.service_root, self._config.deploy_dir)
        staged = posixpath.join(deploy_dir, f".{artifact.file_name}.partial")
        destination = posixpath.join(deploy_dir, artifact.file_name)

        # Transfer
        progress.record(f"transfer {artifact.file_name} to {ssh.destination}:{staged}")
        result = self._execute(ssh.copy(str(artifact.path), staged), progress)
        if not result.success:
            auth_failed = any(marker in result.stderr for marker in AUTH_FAILURE_MARKERS)
            error_cls = RolloutAuthError if auth_failed else RolloutTransportError
            raise error_cls(
                f"Transfer to {ssh.destination} failed",
                target_id=target.id,
                cause=result.summary,
            )

        logger.debug(f"Staged {artifact.file_name} at {ssh.destination}:{staged}")

        # Stop
        progress.record(f"stop service on {ssh.destination}")
        result = self._execute(ssh.run(stop_argv), progress)
        if not result.success:
            progress.warn(f"Remote stop failed, assuming service already stopped ({result.summary})")

        # Swap
        exploded = posixpath.join(deploy_dir, artifact.base_name)
        stale = self._stale_paths(ssh, deploy_dir, artifact, progress)
        progress.record(f"replace {destination}")
        swap = ["sh", "-c", 'e=$1 s=$2 d=$3; shift 3; rm -rf -- "$e" "$@"; mv -f -- "$s" "$d"', "swap",
                exploded, staged, destination, *stale]
        result = self._execute(ssh.run(swap), progress)
        if not result.success:
            raise RolloutPartialFailure(
                f"Artifact staged at {staged} but could not be moved into place; service stopped",
                target_id=target.id,
                cause=result.summary,
            )

        # Start
        progress.record(f"start service on {ssh.destination}")
        result = self._execute(ssh.run(start_argv), progress)
        if not result.success:
            raise RolloutPartialFailure(
                f"Artifact placed at {destination} but remote service start failed",
                target_id=target.id,
                cause=result.summary,
            )

    def _execute(self, argv: list[str], progress: RolloutStep) -> CommandResult:
        if progress.dry_run:
            return CommandResult(argv=argv, returncode=0)
        return self._runner(argv, self._config.command_timeout)

    def _stale_paths(
        self,
        ssh: SshCommand,
        deploy_dir: str,
        artifact: Artifact,
        progress: RolloutStep,
    ) -> list[str]:
        """Earlier versions of the artifact in the remote deploy directory, plus their exploded directories."""
        progress.record(f"list {ssh.destination}:{deploy_dir}")
        result = self._execute(ssh.run(["ls", "-1A", "--", deploy_dir]), progress)
        if not result.success:
            progress.warn(f"Could not list {deploy_dir}, stale archives left in place ({result.summary})")
            return []

        paths: list[str] = []
        for entry in result.stdout.splitlines():
            if artifact.is_version_of(entry):
                paths.append(posixpath.join(deploy_dir, entry))
                paths.append(posixpath.join(deploy_dir, posixpath.splitext(entry)[0]))
        return paths
