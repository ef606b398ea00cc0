"""deployctl - artifact rollout orchestrator."""

__version__ = "0.1.0"
