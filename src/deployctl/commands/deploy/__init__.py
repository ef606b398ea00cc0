"""Deploy command group."""

import sys
from typing import Any

import click

from deployctl.core.context import pass_context, DeployCtlContext
from deployctl.core.exceptions import DeployCtlError
from deployctl.core.output import OutputFormat, format_bytes, format_duration
from deployctl.deploy import HealthState, RunOutcome, RunReport, StrategyTag
from deployctl.deploy.artifact import ArtifactLocator
from deployctl.deploy.health import Backoff, HealthVerifier
from deployctl.deploy.orchestrator import build_target, create_orchestrator

STRATEGY_CHOICES = [tag.value for tag in StrategyTag]


def _report_summary(report: RunReport) -> dict[str, Any]:
    """Flatten a report for table output."""
    rollout = report.rollout
    health = report.health
    summary: dict[str, Any] = {
        "run": report.id,
        "target": report.target_id,
        "strategy": report.strategy.value,
        "outcome": report.outcome.value,
        "rollout": rollout.status.value if rollout else "-",
        "health": health.state.value if health else "-",
    }
    if report.artifact:
        summary["artifact"] = f"{report.artifact['path']} ({format_bytes(report.artifact['size'])})"
    if rollout and rollout.failure:
        summary["failure"] = rollout.failure.value
        summary["reason"] = rollout.reason
    if rollout and rollout.requires_intervention:
        summary["requires_intervention"] = True
    if health and health.status_code:
        summary["status_code"] = health.status_code
    if report.duration_seconds is not None:
        summary["duration"] = format_duration(report.duration_seconds)
    return summary


def _print_report(ctx: DeployCtlContext, report: RunReport) -> None:
    """Print a run report in the configured format."""
    if ctx.output_format != OutputFormat.TABLE:
        ctx.output.print_data(report.to_dict())
        return

    ctx.output.print_data(_report_summary(report), title=f"Run {report.id}")
    if report.rollout:
        for warning in report.rollout.warnings:
            ctx.output.print_warning(warning)
        if ctx.verbose and report.rollout.steps:
            ctx.output.print("\nSteps:")
            for step in report.rollout.steps:
                ctx.output.print(f"  - {step}")


@click.group()
@pass_context
def deploy(ctx: DeployCtlContext) -> None:
    """Artifact rollout - run, inspect, probe, history.

    \b
    Examples:
        deployctl deploy run
        deployctl deploy run --strategy remote-copy -y
        deployctl deploy inspect target/app-1.0.war --entry WEB-INF/web.xml
        deployctl deploy probe --url http://localhost:8080/app/
        deployctl deploy history list
    """
    pass


@deploy.command("run")
@click.option("--artifact", "artifact_path", type=click.Path(), help="Artifact path (overrides config)")
@click.option("--strategy", type=click.Choice(STRATEGY_CHOICES), default=None, help="Rollout strategy (overrides config)")
@click.option("--no-history", is_flag=True, help="Do not record the run")
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation")
@pass_context
def run(
    ctx: DeployCtlContext,
    artifact_path: str | None,
    strategy: str | None,
    no_history: bool,
    yes: bool,
) -> None:
    """Locate, roll out and verify an artifact.

    \b
    Examples:
        deployctl deploy run
        deployctl deploy run --artifact target/shop-1.4.0.war
        deployctl --dry-run deploy run --strategy local-copy
    """
    try:
        orchestrator = create_orchestrator(
            ctx.profile,
            artifact_path=artifact_path,
            strategy=strategy,
            dry_run=ctx.dry_run,
        )
        target = orchestrator.config.target

        if not yes and not ctx.confirm(f"Roll out {orchestrator.config.artifact_path} to {target.id} ({target.strategy.value})?"):
            ctx.output.print_info("Cancelled")
            return

        log = ctx.logger.bind(target=target.id, strategy=target.strategy.value)
        log.info("Starting rollout", artifact=orchestrator.config.artifact_path)

        report = orchestrator.run()

        log.info("Rollout finished", run=report.id, outcome=report.outcome.value)
        if not no_history:
            ctx.history.save(report)

    except DeployCtlError as e:
        ctx.output.print_error(f"Rollout failed: {e}")
        raise click.Abort()

    _print_report(ctx, report)

    if report.outcome == RunOutcome.SUCCEEDED:
        ctx.output.print_success(f"Run {report.id} succeeded")
        return

    if report.outcome == RunOutcome.DEGRADED:
        ctx.output.print_warning(f"Run {report.id}: rollout succeeded but service is unhealthy")
    else:
        ctx.output.print_error(f"Run {report.id} failed: {report.rollout.reason if report.rollout else 'unknown'}")
        if report.rollout and report.rollout.requires_intervention:
            ctx.output.print_error("Service may be down; manual intervention required")
    sys.exit(1)


@deploy.command("inspect")
@click.argument("artifact_path", type=click.Path())
@click.option("--entry", default=None, help="Archive entry to print")
@click.option("--list", "list_entries", is_flag=True, help="List archive entries")
@pass_context
def inspect(ctx: DeployCtlContext, artifact_path: str, entry: str | None, list_entries: bool) -> None:
    """Check an artifact and peek at one entry without extracting.

    \b
    Examples:
        deployctl deploy inspect target/shop-1.4.0.war
        deployctl deploy inspect target/shop-1.4.0.war --entry index.html
    """
    locator = ArtifactLocator()
    try:
        artifact = locator.locate(artifact_path)

        if entry:
            content = locator.peek_entry(artifact, entry)
            click.echo(content.decode("utf-8", errors="replace"), nl=False)
            return

        data: dict[str, Any] = {
            "path": str(artifact.path),
            "name": artifact.name,
            "version": artifact.version or "-",
            "size": format_bytes(artifact.size),
        }
        if list_entries:
            data["entries"] = locator.list_entries(artifact)
        ctx.output.print_data(data, title=artifact.file_name)

    except DeployCtlError as e:
        ctx.output.print_error(str(e))
        sys.exit(1)


@deploy.command("probe")
@click.option("--url", default=None, help="URL to probe (defaults to the target health URL)")
@click.option("--attempts", type=int, default=None, help="Maximum probe attempts")
@click.option("--timeout", type=float, default=None, help="Per-attempt timeout in seconds")
@pass_context
def probe(ctx: DeployCtlContext, url: str | None, attempts: int | None, timeout: float | None) -> None:
    """Probe the target's health endpoint.

    \b
    Examples:
        deployctl deploy probe
        deployctl deploy probe --url http://localhost:8080/shop/ --attempts 3
    """
    probe_config = ctx.profile.probe
    try:
        if url is None:
            url = build_target(ctx.profile).health_url
    except DeployCtlError as e:
        ctx.output.print_error(str(e))
        sys.exit(1)

    verifier = HealthVerifier(verify_tls=not ctx.profile.manager.insecure)
    status = verifier.verify(
        url,
        timeout=timeout or probe_config.timeout,
        max_attempts=attempts or probe_config.max_attempts,
        backoff=Backoff(mode=probe_config.backoff, interval=probe_config.interval, max_interval=probe_config.max_interval),
        deadline=probe_config.deadline,
    )

    ctx.output.print_data(status.to_dict(), title="Health")
    if status.state != HealthState.HEALTHY:
        sys.exit(1)


@deploy.group("history")
def history() -> None:
    """Recorded rollout runs."""
    pass


@history.command("list")
@click.option("--target", "target_id", default=None, help="Filter by target id")
@click.option("--limit", default=20, help="Max results")
@pass_context
def list_runs(ctx: DeployCtlContext, target_id: str | None, limit: int) -> None:
    """List recorded runs.

    \b
    Examples:
        deployctl deploy history list
        deployctl deploy history list --target prod-shop
    """
    reports = ctx.history.list(target_id=target_id, limit=limit)

    if not reports:
        ctx.output.print_info("No runs found")
        return

    rows = []
    for report in reports:
        rows.append({
            "id": report.id,
            "target": report.target_id,
            "strategy": report.strategy.value,
            "outcome": report.outcome.value,
            "rollout": report.rollout.status.value if report.rollout else "-",
            "health": report.health.state.value if report.health else "-",
            "started": report.started_at.strftime("%Y-%m-%d %H:%M"),
        })

    ctx.output.print_table(
        rows,
        columns=["id", "target", "strategy", "outcome", "rollout", "health", "started"],
        title="Runs",
    )


@history.command("show")
@click.argument("run_id")
@pass_context
def show_run(ctx: DeployCtlContext, run_id: str) -> None:
    """Show one recorded run.

    \b
    Examples:
        deployctl deploy history show 1a2b3c4d
    """
    try:
        report = ctx.history.load(run_id)
    except DeployCtlError as e:
        ctx.output.print_error(str(e))
        sys.exit(1)

    _print_report(ctx, report)
