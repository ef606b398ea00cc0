"""Tests for rollout strategies."""

import shlex
from pathlib import Path

import httpx
import pytest

from deployctl.config import LocalCopyConfig, ManagerConfig, RemoteCopyConfig
from deployctl.deploy.artifact import ArtifactLocator
from deployctl.deploy.models import Credentials, FailureKind, RolloutStatus, RolloutTarget, StrategyTag
from deployctl.deploy.process import CommandResult
from deployctl.deploy.strategies import LocalCopyRollout, RemoteApiRollout, RemoteCopyRollout

CREDENTIALS = Credentials(username="deployer", password="s3cret")


def manager_transport(undeploy: httpx.Response, deploy: httpx.Response, seen: list[httpx.Request]):
    """Mock manager answering undeploy and deploy requests."""

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/undeploy"):
            return undeploy
        if request.url.path.endswith("/deploy"):
            return deploy
        return httpx.Response(404)

    return httpx.MockTransport(handler)


class TestRemoteApiRollout:
    """Tests for the manager API strategy."""

    @pytest.fixture
    def artifact(self, war_file: Path):
        return ArtifactLocator().locate(war_file)

    def test_undeploy_failure_is_warning(self, artifact, target):
        seen: list[httpx.Request] = []
        transport = manager_transport(
            httpx.Response(404, text="FAIL - No context exists named [/shop]"),
            httpx.Response(200, text="OK - Deployed application at context path [/shop]\n"),
            seen,
        )

        result = RemoteApiRollout(ManagerConfig(), transport=transport).rollout(artifact, target, CREDENTIALS)

        assert result.status == RolloutStatus.SUCCEEDED_WITH_WARNING
        assert len(result.warnings) == 1
        assert "Undeploy" in result.warnings[0]

    def test_requests_follow_wire_contract(self, artifact, target, war_file: Path):
        seen: list[httpx.Request] = []
        transport = manager_transport(
            httpx.Response(200, text="OK - Undeployed application at context path [/shop]"),
            httpx.Response(200, text="OK - Deployed application at context path [/shop]"),
            seen,
        )

        result = RemoteApiRollout(ManagerConfig(), transport=transport).rollout(artifact, target, CREDENTIALS)

        assert result.status == RolloutStatus.SUCCEEDED
        undeploy, deploy = seen
        assert undeploy.method == "GET"
        assert undeploy.url.path == "/manager/text/undeploy"
        assert undeploy.url.params["path"] == "/shop"
        assert deploy.method == "PUT"
        assert deploy.url.path == "/manager/text/deploy"
        assert deploy.url.params["path"] == "/shop"
        assert deploy.url.params["update"] == "true"
        assert deploy.content == war_file.read_bytes()
        assert deploy.headers["Authorization"].startswith("Basic ")
        assert deploy.headers["Content-Length"] == str(war_file.stat().st_size)

    def test_artifact_removed_before_upload(self, artifact, target, war_file: Path):
        seen: list[httpx.Request] = []
        transport = manager_transport(httpx.Response(200, text="OK"), httpx.Response(200, text="OK"), seen)
        war_file.unlink()

        result = RemoteApiRollout(ManagerConfig(), transport=transport).rollout(artifact, target, CREDENTIALS)

        assert result.failure == FailureKind.TRANSPORT_FAILURE
        assert "Cannot read artifact" in result.reason
        assert [request.url.path for request in seen] == ["/manager/text/undeploy"]

    def test_auth_failure_on_deploy(self, artifact, target):
        seen: list[httpx.Request] = []
        transport = manager_transport(
            httpx.Response(401, text="Unauthorized"),
            httpx.Response(401, text="Unauthorized"),
            seen,
        )

        result = RemoteApiRollout(ManagerConfig(), transport=transport).rollout(artifact, target, CREDENTIALS)

        assert result.status == RolloutStatus.FAILED
        assert result.failure == FailureKind.AUTH_FAILURE
        assert result.target_id == target.id
        assert len(result.warnings) == 1

    def test_fail_body_is_fatal(self, artifact, target):
        seen: list[httpx.Request] = []
        transport = manager_transport(
            httpx.Response(200, text="OK - Undeployed"),
            httpx.Response(200, text="FAIL - Deployed application at context path [/shop] but context failed to start"),
            seen,
        )

        result = RemoteApiRollout(ManagerConfig(), transport=transport).rollout(artifact, target, CREDENTIALS)

        assert result.status == RolloutStatus.FAILED
        assert result.failure == FailureKind.TRANSPORT_FAILURE
        assert "FAIL" in result.error

    def test_connection_error_is_fatal(self, artifact, target):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        strategy = RemoteApiRollout(ManagerConfig(), transport=httpx.MockTransport(handler))
        result = strategy.rollout(artifact, target, CREDENTIALS)

        assert result.status == RolloutStatus.FAILED
        assert result.failure == FailureKind.TRANSPORT_FAILURE
        assert "connection refused" in result.error

    def test_missing_credentials(self, artifact, target):
        result = RemoteApiRollout().rollout(artifact, target, None)
        assert result.failure == FailureKind.AUTH_FAILURE

    def test_dry_run_sends_nothing(self, artifact, target):
        seen: list[httpx.Request] = []
        transport = manager_transport(httpx.Response(200), httpx.Response(200), seen)

        result = RemoteApiRollout(transport=transport).rollout(artifact, target, CREDENTIALS, dry_run=True)

        assert result.status == RolloutStatus.SUCCEEDED
        assert seen == []
        assert all(step.startswith("[dry-run]") for step in result.steps)


class TestLocalCopyRollout:
    """Tests for the local copy-and-restart strategy."""

    @pytest.fixture
    def local_target(self):
        return RolloutTarget(id="shop-local", strategy=StrategyTag.LOCAL_COPY, context_path="/shop")

    @pytest.fixture
    def config(self, service_root: Path):
        return LocalCopyConfig(
            service_root=str(service_root),
            stop_command="bin/shutdown.sh",
            start_command="bin/startup.sh -security",
        )

    def test_replaces_previous_deployment(self, war_file, local_target, config, service_root, recording_runner):
        webapps = service_root / "webapps"
        (webapps / "shop-1.3.0").mkdir()
        (webapps / "shop-1.3.0" / "index.html").write_text("old")
        (webapps / "shop-1.3.0.war").write_bytes(b"old")
        (webapps / "shop-1.4.0").mkdir()
        (webapps / "shop.war").write_bytes(b"unversioned")
        (webapps / "other-2.0.war").write_bytes(b"keep")

        runner = recording_runner()
        artifact = ArtifactLocator().locate(war_file)
        result = LocalCopyRollout(config, runner=runner).rollout(artifact, local_target)

        assert result.status == RolloutStatus.SUCCEEDED
        assert sorted(p.name for p in webapps.iterdir()) == ["other-2.0.war", "shop-1.4.0.war"]
        assert (webapps / "shop-1.4.0.war").read_bytes() == war_file.read_bytes()
        assert runner.calls == [["bin/shutdown.sh"], ["bin/startup.sh", "-security"]]

    def test_keeps_apps_sharing_the_name_prefix(self, war_file, local_target, config, service_root, recording_runner):
        webapps = service_root / "webapps"
        (webapps / "shop-admin.war").write_bytes(b"admin")
        (webapps / "shop-admin").mkdir()
        (webapps / "shop-admin" / "index.html").write_text("admin")
        (webapps / "shop-admin-2.0.war").write_bytes(b"admin 2.0")
        (webapps / "shop-1.3.0.war").write_bytes(b"old")

        artifact = ArtifactLocator().locate(war_file)
        result = LocalCopyRollout(config, runner=recording_runner()).rollout(artifact, local_target)

        assert result.ok
        assert sorted(p.name for p in webapps.iterdir()) == [
            "shop-1.4.0.war",
            "shop-admin",
            "shop-admin-2.0.war",
            "shop-admin.war",
        ]
        assert (webapps / "shop-admin" / "index.html").read_text() == "admin"

    def test_already_stopped_is_warning(self, war_file, local_target, config, recording_runner):
        runner = recording_runner({"shutdown": CommandResult(argv=[], returncode=1, stderr="not running")})
        artifact = ArtifactLocator().locate(war_file)

        result = LocalCopyRollout(config, runner=runner).rollout(artifact, local_target)

        assert result.status == RolloutStatus.SUCCEEDED_WITH_WARNING
        assert "not running" in result.warnings[0]

    def test_copy_failure_leaves_service_stopped(self, war_file, local_target, config, recording_runner, monkeypatch):
        def broken_copy(*args, **kwargs):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr("deployctl.deploy.strategies.local_copy.shutil.copy2", broken_copy)
        runner = recording_runner()
        artifact = ArtifactLocator().locate(war_file)

        result = LocalCopyRollout(config, runner=runner).rollout(artifact, local_target)

        assert result.status == RolloutStatus.FAILED
        assert result.failure == FailureKind.TRANSPORT_FAILURE
        assert result.requires_intervention
        assert runner.calls == [["bin/shutdown.sh"]]

    def test_start_failure_is_partial(self, war_file, local_target, config, service_root, recording_runner):
        runner = recording_runner({"startup": CommandResult(argv=[], returncode=2, stderr="port in use")})
        artifact = ArtifactLocator().locate(war_file)

        result = LocalCopyRollout(config, runner=runner).rollout(artifact, local_target)

        assert result.status == RolloutStatus.FAILED
        assert result.failure == FailureKind.PARTIAL_FAILURE
        assert result.requires_intervention
        assert (service_root / "webapps" / "shop-1.4.0.war").exists()
        # never retried
        assert len(runner.calls) == 2

    def test_missing_start_command(self, war_file, local_target, service_root, recording_runner):
        config = LocalCopyConfig(service_root=str(service_root), stop_command="bin/shutdown.sh")
        runner = recording_runner()
        artifact = ArtifactLocator().locate(war_file)

        result = LocalCopyRollout(config, runner=runner).rollout(artifact, local_target)

        assert result.status == RolloutStatus.FAILED
        assert runner.calls == []

    def test_dry_run_touches_nothing(self, war_file, local_target, config, service_root, recording_runner):
        runner = recording_runner()
        artifact = ArtifactLocator().locate(war_file)

        result = LocalCopyRollout(config, runner=runner).rollout(artifact, local_target, dry_run=True)

        assert result.status == RolloutStatus.SUCCEEDED
        assert runner.calls == []
        assert list((service_root / "webapps").iterdir()) == []


class TestRemoteCopyRollout:
    """Tests for the SSH copy-and-restart strategy."""

    @pytest.fixture
    def remote_target(self):
        return RolloutTarget(id="shop-remote", strategy=StrategyTag.REMOTE_COPY, host="app01.example.com")

    @pytest.fixture
    def config(self):
        return RemoteCopyConfig(
            user="tomcat",
            service_root="/opt/tomcat",
            stop_command="sudo systemctl stop tomcat",
            start_command="sudo systemctl start tomcat",
        )

    def test_sequence(self, war_file, remote_target, config, recording_runner):
        runner = recording_runner()
        artifact = ArtifactLocator().locate(war_file)

        result = RemoteCopyRollout(config, runner=runner).rollout(artifact, remote_target)

        assert result.status == RolloutStatus.SUCCEEDED
        transfer, stop, listing, swap, start = runner.calls
        assert transfer[0] == "scp"
        assert transfer[-1] == "tomcat@app01.example.com:/opt/tomcat/webapps/.shop-1.4.0.war.partial"
        assert stop[0] == "ssh" and "systemctl stop tomcat" in stop[-1]
        assert listing[-1] == "ls -1A -- /opt/tomcat/webapps"
        assert "mv -f" in swap[-1] and "/opt/tomcat/webapps/shop-1.4.0.war" in swap[-1]
        assert start[0] == "ssh" and "systemctl start tomcat" in start[-1]

    def test_swap_removes_only_earlier_versions(self, war_file, remote_target, config, recording_runner):
        listing = "shop-1.3.0.war\nshop-1.3.0\nshop-admin.war\nshop-admin\nshop-admin-2.0.war\nshop.war\n"
        runner = recording_runner({"ls -1A": CommandResult(argv=[], returncode=0, stdout=listing)})
        artifact = ArtifactLocator().locate(war_file)

        result = RemoteCopyRollout(config, runner=runner).rollout(artifact, remote_target)

        assert result.status == RolloutStatus.SUCCEEDED
        swap = shlex.split(runner.calls[3][-1])
        assert swap[:2] == ["sh", "-c"]
        assert swap[4:] == [
            "/opt/tomcat/webapps/shop-1.4.0",
            "/opt/tomcat/webapps/.shop-1.4.0.war.partial",
            "/opt/tomcat/webapps/shop-1.4.0.war",
            "/opt/tomcat/webapps/shop-1.3.0.war",
            "/opt/tomcat/webapps/shop-1.3.0",
            "/opt/tomcat/webapps/shop.war",
            "/opt/tomcat/webapps/shop",
        ]
        assert not any("shop-admin" in word for word in swap)

    def test_service_root_with_space_stays_one_word(self, war_file, remote_target, recording_runner):
        config = RemoteCopyConfig(
            service_root="/opt/my tomcat",
            stop_command="bin/shutdown.sh",
            start_command="bin/startup.sh",
        )
        runner = recording_runner({"ls -1A": CommandResult(argv=[], returncode=0, stdout="shop-1.3.0.war\n")})
        artifact = ArtifactLocator().locate(war_file)

        RemoteCopyRollout(config, runner=runner).rollout(artifact, remote_target)

        swap = shlex.split(runner.calls[3][-1])
        assert "/opt/my tomcat/webapps/shop-1.3.0.war" in swap
        assert "/opt/my tomcat/webapps/shop-1.4.0.war" in swap

    def test_listing_failure_is_warning(self, war_file, remote_target, config, recording_runner):
        runner = recording_runner({"ls -1A": CommandResult(argv=[], returncode=2, stderr="No such file or directory")})
        artifact = ArtifactLocator().locate(war_file)

        result = RemoteCopyRollout(config, runner=runner).rollout(artifact, remote_target)

        assert result.status == RolloutStatus.SUCCEEDED_WITH_WARNING
        assert "stale archives left in place" in result.warnings[0]
        assert len(runner.calls) == 5

    def test_credentials_override_user_and_key(self, war_file, remote_target, config, recording_runner):
        runner = recording_runner()
        artifact = ArtifactLocator().locate(war_file)
        credentials = Credentials(username="deploy", key_file="/keys/deploy_ed25519")

        RemoteCopyRollout(config, runner=runner).rollout(artifact, remote_target, credentials)

        transfer = runner.calls[0]
        assert "/keys/deploy_ed25519" in transfer
        assert transfer[-1].startswith("deploy@app01.example.com:")

    def test_transfer_failure_is_fatal(self, war_file, remote_target, config, recording_runner):
        runner = recording_runner({"scp": CommandResult(argv=[], returncode=1, stderr="lost connection")})
        artifact = ArtifactLocator().locate(war_file)

        result = RemoteCopyRollout(config, runner=runner).rollout(artifact, remote_target)

        assert result.failure == FailureKind.TRANSPORT_FAILURE
        assert not result.requires_intervention
        assert len(runner.calls) == 1

    def test_transfer_auth_failure(self, war_file, remote_target, config, recording_runner):
        runner = recording_runner({"scp": CommandResult(argv=[], returncode=255, stderr="Permission denied (publickey).")})
        artifact = ArtifactLocator().locate(war_file)

        result = RemoteCopyRollout(config, runner=runner).rollout(artifact, remote_target)

        assert result.failure == FailureKind.AUTH_FAILURE

    def test_start_failure_flags_inconsistent_state(self, war_file, remote_target, config, recording_runner):
        runner = recording_runner({"systemctl start": CommandResult(argv=[], returncode=1, stderr="failed")})
        artifact = ArtifactLocator().locate(war_file)

        result = RemoteCopyRollout(config, runner=runner).rollout(artifact, remote_target)

        assert result.status == RolloutStatus.FAILED
        assert result.failure == FailureKind.PARTIAL_FAILURE
        assert result.requires_intervention
        assert len(runner.calls) == 5
