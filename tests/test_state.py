"""Tests for run history persistence."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from deployctl.core.exceptions import DeployCtlError
from deployctl.deploy.models import RolloutResult, RunPhase, RunReport
from deployctl.deploy.state import RunHistory


@pytest.fixture
def history(tmp_path: Path) -> RunHistory:
    return RunHistory(tmp_path / "runs")


def make_report(target, started_at: datetime | None = None) -> RunReport:
    report = RunReport(target_id=target.id, strategy=target.strategy)
    if started_at is not None:
        report.started_at = started_at
    report.rollout = RolloutResult.succeeded(target)
    report.advance(RunPhase.DONE)
    return report


class TestRunHistory:
    """Tests for RunHistory."""

    def test_creates_directory(self, tmp_path: Path):
        RunHistory(tmp_path / "nested" / "runs")
        assert (tmp_path / "nested" / "runs").is_dir()

    def test_save_and_load(self, history, target):
        report = make_report(target)
        path = history.save(report)

        assert path.name == f"{report.id}.json"
        loaded = history.load(report.id)
        assert loaded.target_id == target.id
        assert loaded.outcome == report.outcome

    def test_load_missing(self, history):
        with pytest.raises(DeployCtlError, match="not found"):
            history.load("deadbeef")

    def test_list_newest_first(self, history, target):
        now = datetime.now(timezone.utc)
        older = make_report(target, now - timedelta(hours=2))
        newer = make_report(target, now - timedelta(minutes=5))
        history.save(older)
        history.save(newer)

        assert [r.id for r in history.list()] == [newer.id, older.id]
        assert len(history.list(limit=1)) == 1

    def test_list_filters_by_target(self, history, target):
        history.save(make_report(target))
        assert len(history.list(target_id=target.id)) == 1
        assert history.list(target_id="elsewhere") == []

    def test_list_skips_unreadable_files(self, history, target):
        history.save(make_report(target))
        (history.history_dir / "broken.json").write_text("{not json")

        assert len(history.list()) == 1

    def test_delete(self, history, target):
        report = make_report(target)
        history.save(report)
        history.delete(report.id)
        assert history.list() == []

    def test_cleanup_old(self, history, target):
        now = datetime.now(timezone.utc)
        history.save(make_report(target, now - timedelta(days=45)))
        recent = make_report(target, now)
        history.save(recent)

        assert history.cleanup_old(days=30) == 1
        assert [r.id for r in history.list()] == [recent.id]
