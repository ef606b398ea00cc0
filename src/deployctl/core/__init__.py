"""Core utilities and shared components for deployctl."""

# Note: Import context lazily to avoid circular imports
# Use: from deployctl.core.context import DeployCtlContext, pass_context
from deployctl.core.exceptions import DeployCtlError, ConfigError, ArtifactError, RolloutError
from deployctl.core.output import OutputFormatter, console

__all__ = [
    "DeployCtlError",
    "ConfigError",
    "ArtifactError",
    "RolloutError",
    "OutputFormatter",
    "console",
]
