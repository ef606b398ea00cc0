"""Click context object for sharing state across commands."""

from __future__ import annotations

import click

from deployctl.config import DeployCtlConfig, ProfileConfig, get_default_config
from deployctl.core.output import OutputFormat, OutputFormatter
from deployctl.core.logging import LogLevel, setup_logging, StructuredLogger
from deployctl.deploy.state import RunHistory


class DeployCtlContext:
    """Shared context object for deployctl commands.

    This object is passed through Click's context mechanism and provides
    access to configuration, the run history store, and output helpers.
    """

    def __init__(
        self,
        config: DeployCtlConfig | None = None,
        profile: str | None = None,
        output_format: OutputFormat | None = None,
        verbose: int = 0,
        quiet: bool = False,
        dry_run: bool = False,
        color: bool = True,
    ):
        self._config = config or get_default_config()
        self._profile_name = profile or "default"

        # Output settings (CLI overrides config)
        self._output_format = output_format or self._config.global_settings.output_format
        self._verbose = verbose
        self._quiet = quiet
        self._dry_run = dry_run or self._config.global_settings.dry_run
        self._color = color and self._config.global_settings.color != "never"

        if verbose >= 2:
            log_level = LogLevel.DEBUG
        elif verbose >= 1:
            log_level = LogLevel.INFO
        elif quiet:
            log_level = LogLevel.ERROR
        else:
            log_level = self._config.global_settings.verbosity

        setup_logging(log_level, rich_output=self._color)
        self._logger = StructuredLogger("context")

        self._output = OutputFormatter(
            format=self._output_format,
            color=self._color,
            quiet=quiet,
        )

        self._history: RunHistory | None = None

    @property
    def config(self) -> DeployCtlConfig:
        """Get the loaded configuration."""
        return self._config

    @property
    def profile(self) -> ProfileConfig:
        """Get the current profile configuration."""
        return self._config.get_profile(self._profile_name)

    @property
    def profile_name(self) -> str:
        return self._profile_name

    @property
    def output(self) -> OutputFormatter:
        return self._output

    @property
    def output_format(self) -> OutputFormat:
        return self._output_format

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    @property
    def verbose(self) -> int:
        return self._verbose

    @property
    def quiet(self) -> bool:
        return self._quiet

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    @property
    def history(self) -> RunHistory:
        """Get or create the run history store."""
        if self._history is None:
            self._history = RunHistory(self._config.global_settings.get_history_dir())
        return self._history

    def confirm(self, message: str, default: bool = False) -> bool:
        """Ask for user confirmation.

        In dry-run mode, always returns True without prompting.
        """
        if self._dry_run:
            self._output.print(f"[dim][dry-run] Would prompt: {message}[/dim]")
            return True
        if not self._config.global_settings.confirm_destructive:
            return True
        return self._output.confirm(message, default)


# Click decorator for passing context
pass_context = click.make_pass_decorator(DeployCtlContext, ensure=True)
