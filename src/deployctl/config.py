"""Configuration management for deployctl using Pydantic."""

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from deployctl.core.exceptions import ConfigError
from deployctl.core.output import OutputFormat
from deployctl.core.logging import LogLevel


def _env_key(*parts: str) -> str:
    """Build a DEPLOYCTL_* environment variable name."""
    name = "_".join(parts)
    return "DEPLOYCTL_" + re.sub(r"[^A-Za-z0-9]", "_", name).upper()


class ArtifactConfig(BaseModel):
    """Built artifact location."""

    path: str | None = None
    name: str | None = None
    version: str | None = None
    verify_entry: str | None = None

    def get_path(self) -> str | None:
        """Get artifact path from config or environment."""
        return os.environ.get("DEPLOYCTL_ARTIFACT_PATH") or self.path


class TargetConfig(BaseModel):
    """Rollout destination."""

    id: str | None = None
    strategy: Literal["remote-api", "local-copy", "remote-copy"] = "remote-api"
    host: str = "localhost"
    port: int = 8080
    scheme: Literal["http", "https"] = "http"
    context_path: str = "/"
    index_resource: str = ""
    credentials: str | None = None
    lock_timeout: float | None = None

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError("port must be between 1 and 65535")
        return v

    def get_host(self) -> str:
        """Get target host from config or environment."""
        return os.environ.get("DEPLOYCTL_TARGET_HOST") or self.host

    def get_id(self) -> str:
        """Get target identifier, defaulting to host:port/context."""
        return self.id or f"{self.get_host()}:{self.port}{self.context_path}"


class ManagerConfig(BaseModel):
    """Manager API settings for remote-api rollouts."""

    base_path: str = "/manager/text"
    timeout: int = 120
    insecure: bool = False


class LocalCopyConfig(BaseModel):
    """Settings for copy-and-restart on the local machine."""

    service_root: str | None = None
    deploy_dir: str = "webapps"
    stop_command: str | None = None
    start_command: str | None = None
    command_timeout: int = 120

    def get_service_root(self) -> str | None:
        """Get service root from config or environment."""
        return os.environ.get("DEPLOYCTL_SERVICE_ROOT") or self.service_root


class RemoteCopyConfig(BaseModel):
    """Settings for copy-and-restart over SSH."""

    user: str | None = None
    ssh_port: int = 22
    service_root: str | None = None
    deploy_dir: str = "webapps"
    stop_command: str | None = None
    start_command: str | None = None
    identity_file: str | None = None
    ssh_options: list[str] = Field(default_factory=lambda: ["BatchMode=yes"])
    command_timeout: int = 300


class ProbeConfig(BaseModel):
    """Post-rollout health probe settings."""

    timeout: float = 5.0
    max_attempts: int = 10
    backoff: Literal["fixed", "exponential"] = "fixed"
    interval: float = 3.0
    max_interval: float = 30.0
    deadline: float = 120.0
    verify_after_failure: bool = True

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be at least 1")
        return v

    @field_validator("timeout", "deadline")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v


class CredentialConfig(BaseModel):
    """Credential reference entry. Secrets default to the environment."""

    username: str | None = None
    password: str | None = None
    key_file: str | None = None

    def get_username(self, ref: str) -> str | None:
        """Get username from config or environment."""
        return os.environ.get(_env_key("credentials", ref, "username")) or self.username

    def get_password(self, ref: str) -> str | None:
        """Get password from config or environment."""
        password = self.password
        if password == "from_env" or password is None:
            password = os.environ.get(_env_key("credentials", ref, "password"))
        return password

    def get_key_file(self, ref: str) -> str | None:
        """Get SSH key file from config or environment."""
        return os.environ.get(_env_key("credentials", ref, "key_file")) or self.key_file


class ProfileConfig(BaseModel):
    """Profile configuration grouping all rollout settings."""

    artifact: ArtifactConfig = Field(default_factory=ArtifactConfig)
    target: TargetConfig = Field(default_factory=TargetConfig)
    manager: ManagerConfig = Field(default_factory=ManagerConfig)
    local_copy: LocalCopyConfig = Field(default_factory=LocalCopyConfig)
    remote_copy: RemoteCopyConfig = Field(default_factory=RemoteCopyConfig)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    credentials: dict[str, CredentialConfig] = Field(default_factory=dict)


class GlobalConfig(BaseModel):
    """Global settings."""

    output_format: OutputFormat = OutputFormat.TABLE
    color: str = "auto"  # auto, always, never
    verbosity: LogLevel = LogLevel.INFO
    dry_run: bool = False
    confirm_destructive: bool = True
    history_dir: str | None = None

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        if v not in ("auto", "always", "never"):
            raise ValueError("color must be 'auto', 'always', or 'never'")
        return v

    def get_history_dir(self) -> Path:
        """Get run history directory from config or environment."""
        configured = os.environ.get("DEPLOYCTL_HISTORY_DIR") or self.history_dir
        if configured:
            return Path(configured).expanduser()
        return Path.home() / ".deployctl" / "runs"


class DeployCtlConfig(BaseModel):
    """Main configuration model."""

    model_config = {"populate_by_name": True}

    version: str = "1"
    global_settings: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    profiles: dict[str, ProfileConfig] = Field(default_factory=lambda: {"default": ProfileConfig()})

    def get_profile(self, name: str | None = None) -> ProfileConfig:
        """Get a profile by name, defaulting to 'default'."""
        profile_name = name or "default"
        if profile_name not in self.profiles:
            raise ConfigError(f"Profile '{profile_name}' not found")
        return self.profiles[profile_name]


class ConfigLoader:
    """Loads and merges configuration from multiple sources."""

    CONFIG_FILENAMES = ["deployctl.yaml", "deployctl.yml", ".deployctl.yaml", ".deployctl.yml"]

    def __init__(self):
        self._config: DeployCtlConfig | None = None

    def load(
        self,
        config_file: str | Path | None = None,
        profile: str | None = None,
    ) -> DeployCtlConfig:
        """Load configuration from files.

        Priority (highest to lowest):
        1. Explicitly specified config file
        2. Project config (./deployctl.yaml, searched upwards)
        3. User config (~/.deployctl/config.yaml)

        Args:
            config_file: Optional explicit config file path
            profile: Profile name that must exist in the result

        Returns:
            Merged configuration
        """
        configs: list[dict[str, Any]] = []

        user_config_path = Path.home() / ".deployctl" / "config.yaml"
        if user_config_path.exists():
            configs.append(self._load_yaml_file(user_config_path))

        project_config = self._find_project_config()
        if project_config:
            configs.append(self._load_yaml_file(project_config))

        if config_file:
            config_path = Path(config_file)
            if not config_path.exists():
                raise ConfigError(f"Config file not found: {config_file}")
            configs.append(self._load_yaml_file(config_path))

        merged = self._merge_configs(configs)

        try:
            self._config = DeployCtlConfig(**merged)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}")

        if profile:
            self._config.get_profile(profile)
        return self._config

    def _find_project_config(self) -> Path | None:
        """Find project config file in current or parent directories."""
        current = Path.cwd()

        while current != current.parent:
            for filename in self.CONFIG_FILENAMES:
                config_path = current / filename
                if config_path.exists():
                    return config_path
            current = current.parent

        return None

    def _load_yaml_file(self, path: Path) -> dict[str, Any]:
        """Load a YAML config file."""
        try:
            with open(path) as f:
                content = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")
        except OSError as e:
            raise ConfigError(f"Cannot read {path}: {e}")

        if not isinstance(content, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return content

    def _merge_configs(self, configs: list[dict[str, Any]]) -> dict[str, Any]:
        """Deep merge multiple configuration dictionaries."""
        result: dict[str, Any] = {}
        for config in configs:
            result = self._deep_merge(result, config)
        return result

    def _deep_merge(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result


# Global config loader instance
_config_loader = ConfigLoader()


def load_config(
    config_file: str | Path | None = None,
    profile: str | None = None,
) -> DeployCtlConfig:
    """Load deployctl configuration.

    Args:
        config_file: Optional explicit config file path
        profile: Profile name to use

    Returns:
        Loaded configuration
    """
    return _config_loader.load(config_file, profile)


def get_default_config() -> DeployCtlConfig:
    """Get default configuration without loading from files."""
    return DeployCtlConfig()
