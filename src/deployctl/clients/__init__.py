"""Transport clients used by rollout strategies."""

from deployctl.clients.manager import ManagerClient, ManagerResponse

__all__ = [
    "ManagerClient",
    "ManagerResponse",
]
