"""Service manager text API client using httpx."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from deployctl.config import ManagerConfig
from deployctl.core.exceptions import RolloutAuthError, RolloutTransportError
from deployctl.core.logging import get_logger
from deployctl.deploy.models import Credentials, RolloutTarget, validate_context_path

logger = get_logger(__name__)


@dataclass
class ManagerResponse:
    """Parsed manager text-protocol response."""

    status_code: int
    body: str

    @property
    def ok(self) -> bool:
        """2xx and the body does not report a failure."""
        return 200 <= self.status_code < 300 and not self.body.lstrip().startswith("FAIL")

    @property
    def message(self) -> str:
        first_line = self.body.strip().splitlines()[0] if self.body.strip() else ""
        return first_line or f"HTTP {self.status_code}"


class ManagerClient:
    """Client for the service host's manager text API."""

    def __init__(
        self,
        target: RolloutTarget,
        credentials: Credentials,
        config: ManagerConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self._target = target
        self._credentials = credentials
        self._config = config or ManagerConfig()
        self._transport = transport
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            if not self._credentials.username or self._credentials.password is None:
                raise RolloutAuthError(
                    "Manager credentials require a username and password",
                    target_id=self._target.id,
                )

            self._client = httpx.Client(
                base_url=self._target.base_url + "/" + self._config.base_path.strip("/"),
                auth=httpx.BasicAuth(self._credentials.username, self._credentials.password),
                timeout=self._config.timeout,
                verify=not self._config.insecure,
                transport=self._transport,
            )

            logger.debug(f"Created manager client for {self._target.base_url}")

        return self._client

    def _request(self, method: str, path: str, **kwargs: Any) -> ManagerResponse:
        """Make a manager request. Auth and transport failures raise."""
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            raise RolloutTransportError(
                f"Manager request failed: {method} {path}",
                target_id=self._target.id,
                cause=e,
            )

        if response.status_code in (401, 403):
            raise RolloutAuthError(
                f"Manager rejected credentials (HTTP {response.status_code})",
                target_id=self._target.id,
                cause=response.text.strip() or None,
                details={"status_code": response.status_code},
            )

        return ManagerResponse(status_code=response.status_code, body=response.text)

    def undeploy(self, context_path: str) -> ManagerResponse:
        """Remove the application mounted at ``context_path``."""
        validate_context_path(context_path)
        return self._request("GET", "/undeploy", params={"path": context_path})

    def deploy(self, context_path: str, artifact_path: Path, update: bool = True) -> ManagerResponse:
        """Upload an archive and deploy it at ``context_path``."""
        validate_context_path(context_path)
        params = {"path": context_path}
        if update:
            params["update"] = "true"

        try:
            with open(artifact_path, "rb") as content:
                return self._request(
                    "PUT",
                    "/deploy",
                    params=params,
                    content=content,
                    headers={"Content-Type": "application/octet-stream"},
                )
        except OSError as e:
            raise RolloutTransportError(
                f"Cannot read artifact {artifact_path}",
                target_id=self._target.id,
                cause=e,
            )

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "ManagerClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
