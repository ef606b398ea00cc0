"""Rollout through the service host's manager API."""

import httpx

from deployctl.clients.manager import ManagerClient
from deployctl.config import ManagerConfig
from deployctl.core.exceptions import RolloutAuthError, RolloutError, RolloutTransportError
from deployctl.core.logging import get_logger
from deployctl.deploy.models import Artifact, Credentials, RolloutTarget, StrategyTag
from deployctl.deploy.strategies.base import RolloutStep, RolloutStrategy

logger = get_logger(__name__)


class RemoteApiRollout(RolloutStrategy):
    """Undeploy (best-effort) then upload-and-deploy with update=true."""

    def __init__(
        self,
        config: ManagerConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self._config = config or ManagerConfig()
        self._transport = transport

    @property
    def tag(self) -> StrategyTag:
        return StrategyTag.REMOTE_API

    def _rollout(
        self,
        artifact: Artifact,
        target: RolloutTarget,
        credentials: Credentials | None,
        progress: RolloutStep,
    ) -> None:
        if credentials is None:
            raise RolloutAuthError("Manager rollout requires credentials", target_id=target.id)

        context = target.context_path
        if progress.dry_run:
            progress.record(f"GET {self._config.base_path}/undeploy?path={context}")
            progress.record(f"PUT {self._config.base_path}/deploy?path={context}&update=true ({artifact.file_name})")
            return

        with ManagerClient(target, credentials, self._config, transport=self._transport) as manager:
            self._undeploy(manager, target, progress)

            progress.record(f"deploy {artifact.file_name} at {context}")
            response = manager.deploy(context, artifact.path, update=True)
            if not response.ok:
                raise RolloutTransportError(
                    f"Deploy of {artifact.file_name} failed: {response.message}",
                    target_id=target.id,
                    cause=response.body.strip() or f"HTTP {response.status_code}",
                    details={"status_code": response.status_code},
                )
            logger.debug(f"Deployed {artifact.file_name} to {target.id}: {response.message}")

    def _undeploy(self, manager: ManagerClient, target: RolloutTarget, progress: RolloutStep) -> None:
        """Remove any previous deployment; every failure is tolerated."""
        progress.record(f"undeploy {target.context_path}")
        try:
            response = manager.undeploy(target.context_path)
        except RolloutError as e:
            progress.warn(f"Undeploy of {target.context_path} failed: {e.message}")
            return

        if not response.ok:
            progress.warn(f"Undeploy of {target.context_path} skipped: {response.message}")
