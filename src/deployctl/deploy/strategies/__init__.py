"""Rollout strategies."""

from deployctl.config import ProfileConfig
from deployctl.deploy.models import StrategyTag
from deployctl.deploy.strategies.base import RolloutStep, RolloutStrategy
from deployctl.deploy.strategies.local_copy import LocalCopyRollout
from deployctl.deploy.strategies.remote_api import RemoteApiRollout
from deployctl.deploy.strategies.remote_copy import RemoteCopyRollout

__all__ = [
    "RolloutStep",
    "RolloutStrategy",
    "RemoteApiRollout",
    "LocalCopyRollout",
    "RemoteCopyRollout",
    "create_strategy",
]


def create_strategy(tag: StrategyTag | str, profile: ProfileConfig) -> RolloutStrategy:
    """Build the strategy selected by configuration."""
    tag = StrategyTag(tag)
    if tag == StrategyTag.REMOTE_API:
        return RemoteApiRollout(profile.manager)
    if tag == StrategyTag.LOCAL_COPY:
        return LocalCopyRollout(profile.local_copy)
    return RemoteCopyRollout(profile.remote_copy)
