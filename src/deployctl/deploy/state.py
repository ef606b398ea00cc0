"""Run history persistence."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

from deployctl.core.exceptions import DeployCtlError
from deployctl.core.logging import get_logger
from deployctl.deploy.models import RunReport

logger = get_logger(__name__)


class RunHistory:
    """Store run reports as JSON files, one per run."""

    def __init__(self, history_dir: str | Path | None = None):
        """Initialize run history.

        Args:
            history_dir: Directory to store run reports
        """
        if history_dir:
            self._history_dir = Path(history_dir)
        else:
            self._history_dir = Path.home() / ".deployctl" / "runs"
        self._history_dir.mkdir(parents=True, exist_ok=True)

    @property
    def history_dir(self) -> Path:
        return self._history_dir

    def save(self, report: RunReport) -> Path:
        """Save a run report.

        Args:
            report: Report to save

        Returns:
            Path of the written file
        """
        state_file = self._history_dir / f"{report.id}.json"

        try:
            with open(state_file, "w") as f:
                json.dump(report.to_dict(), f, indent=2)
        except OSError as e:
            raise DeployCtlError(f"Failed to save run {report.id}: {e}")

        logger.debug(f"Saved run {report.id} to {state_file}")
        return state_file

    def load(self, run_id: str) -> RunReport:
        """Load a run report.

        Args:
            run_id: Run ID

        Returns:
            Loaded RunReport
        """
        state_file = self._history_dir / f"{run_id}.json"

        if not state_file.exists():
            raise DeployCtlError(f"Run not found: {run_id}")

        try:
            with open(state_file) as f:
                return RunReport.from_dict(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            raise DeployCtlError(f"Failed to load run {run_id}: {e}")

    def delete(self, run_id: str) -> None:
        """Delete a run report."""
        state_file = self._history_dir / f"{run_id}.json"

        if state_file.exists():
            state_file.unlink()
            logger.debug(f"Deleted run {run_id}")

    def list(self, target_id: str | None = None, limit: int = 50) -> list[RunReport]:
        """List run reports, newest first.

        Args:
            target_id: Filter by target
            limit: Maximum reports to return

        Returns:
            List of RunReports
        """
        reports: list[RunReport] = []

        for state_file in self._history_dir.glob("*.json"):
            try:
                with open(state_file) as f:
                    report = RunReport.from_dict(json.load(f))
            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Skipping unreadable run file {state_file}: {e}")
                continue

            if target_id and report.target_id != target_id:
                continue
            reports.append(report)

        reports.sort(key=lambda r: r.started_at, reverse=True)
        return reports[:limit]

    def cleanup_old(self, days: int = 30) -> int:
        """Remove reports older than ``days``.

        Returns:
            Number of reports removed
        """
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        removed = 0

        for report in self.list(limit=10_000):
            if report.started_at < cutoff:
                self.delete(report.id)
                removed += 1

        if removed > 0:
            logger.info(f"Cleaned up {removed} old runs")

        return removed
