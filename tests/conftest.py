"""Pytest fixtures for deployctl tests."""

import os
import zipfile
from pathlib import Path
from typing import Callable, Generator

import pytest
from click.testing import CliRunner

from deployctl.config import (
    DeployCtlConfig,
    GlobalConfig,
    ProfileConfig,
    ArtifactConfig,
    TargetConfig,
    LocalCopyConfig,
    ProbeConfig,
    CredentialConfig,
)
from deployctl.deploy.models import RolloutTarget, StrategyTag
from deployctl.deploy.process import CommandResult


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI runner."""
    return CliRunner()


@pytest.fixture
def war_file(tmp_path: Path) -> Path:
    """A small WAR archive with an index page and a descriptor."""
    path = tmp_path / "build" / "shop-1.4.0.war"
    path.parent.mkdir()
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("index.html", b"<html>shop 1.4.0</html>")
        archive.writestr("WEB-INF/web.xml", b"<web-app/>")
    return path


@pytest.fixture
def service_root(tmp_path: Path) -> Path:
    """A fake service installation with an empty deploy directory."""
    root = tmp_path / "tomcat"
    (root / "webapps").mkdir(parents=True)
    return root


@pytest.fixture
def target() -> RolloutTarget:
    return RolloutTarget(
        id="shop-test",
        strategy=StrategyTag.REMOTE_API,
        host="tomcat.test",
        port=8080,
        context_path="/shop",
        credentials_ref="manager",
    )


class RecordingRunner:
    """Fake command runner that records argv lists."""

    def __init__(self, results: dict[str, CommandResult] | None = None):
        self.calls: list[list[str]] = []
        self._results = results or {}

    def __call__(self, argv: list[str], timeout: float) -> CommandResult:
        self.calls.append(argv)
        for marker, result in self._results.items():
            if marker in " ".join(argv):
                return CommandResult(
                    argv=argv,
                    returncode=result.returncode,
                    stdout=result.stdout,
                    stderr=result.stderr,
                    error=result.error,
                )
        return CommandResult(argv=argv, returncode=0)

    def joined(self) -> list[str]:
        return [" ".join(call) for call in self.calls]


@pytest.fixture
def recording_runner() -> Callable[..., RecordingRunner]:
    """Factory for fake command runners."""
    return RecordingRunner


@pytest.fixture
def mock_config(war_file: Path, service_root: Path, tmp_path: Path) -> DeployCtlConfig:
    """Create a mock configuration."""
    return DeployCtlConfig(
        global_settings=GlobalConfig(history_dir=str(tmp_path / "runs"), confirm_destructive=False),
        profiles={
            "default": ProfileConfig(
                artifact=ArtifactConfig(path=str(war_file), verify_entry="index.html"),
                target=TargetConfig(
                    id="shop-test",
                    strategy="local-copy",
                    host="localhost",
                    port=8080,
                    context_path="/shop",
                ),
                local_copy=LocalCopyConfig(
                    service_root=str(service_root),
                    stop_command="bin/shutdown.sh",
                    start_command="bin/startup.sh",
                ),
                probe=ProbeConfig(timeout=0.5, max_attempts=1, deadline=1.0),
                credentials={"manager": CredentialConfig(username="deployer", password="s3cret")},
            )
        },
    )


@pytest.fixture(autouse=True)
def clean_env() -> Generator[None, None, None]:
    """Clean environment variables before each test."""
    env_vars = [
        "DEPLOYCTL_PROFILE",
        "DEPLOYCTL_CONFIG",
        "DEPLOYCTL_ARTIFACT_PATH",
        "DEPLOYCTL_TARGET_HOST",
        "DEPLOYCTL_SERVICE_ROOT",
        "DEPLOYCTL_HISTORY_DIR",
        "DEPLOYCTL_CREDENTIALS_MANAGER_USERNAME",
        "DEPLOYCTL_CREDENTIALS_MANAGER_PASSWORD",
    ]

    original = {k: os.environ.get(k) for k in env_vars}

    for k in env_vars:
        os.environ.pop(k, None)

    yield

    for k, v in original.items():
        if v is not None:
            os.environ[k] = v
        else:
            os.environ.pop(k, None)


@pytest.fixture
def temp_config_file(tmp_path: Path, war_file: Path, service_root: Path) -> str:
    """Create a temporary config file."""
    config_content = f"""
version: "1"
global:
  output_format: table
  confirm_destructive: false
  history_dir: {tmp_path / "runs"}
profiles:
  default:
    artifact:
      path: {war_file}
    target:
      id: shop-local
      strategy: local-copy
      host: localhost
      port: 1
      context_path: /shop
    local_copy:
      service_root: {service_root}
      stop_command: "true"
      start_command: "true"
    probe:
      timeout: 0.2
      max_attempts: 1
      deadline: 0.5
"""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(config_content)
    return str(config_file)
