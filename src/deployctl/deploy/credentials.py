"""Credential resolution for rollouts."""

from contextlib import contextmanager
from typing import Iterator

from deployctl.config import CredentialConfig
from deployctl.core.exceptions import ConfigError
from deployctl.deploy.models import Credentials


class CredentialStore:
    """Resolve credential references from profile config and environment.

    Nothing is cached: every ``borrow`` resolves afresh and the yielded
    object is only meant to live for the enclosed block.
    """

    def __init__(self, entries: dict[str, CredentialConfig] | None = None):
        self._entries = dict(entries or {})

    def resolve(self, ref: str) -> Credentials:
        """Resolve a reference into a credential bundle."""
        entry = self._entries.get(ref, CredentialConfig())
        credentials = Credentials(
            username=entry.get_username(ref),
            password=entry.get_password(ref),
            key_file=entry.get_key_file(ref),
        )
        if not (credentials.username or credentials.key_file):
            raise ConfigError(f"Credentials '{ref}' are not configured")
        return credentials

    @contextmanager
    def borrow(self, ref: str | None) -> Iterator[Credentials | None]:
        """Lend credentials for one rollout call. ``None`` lends nothing."""
        if ref is None:
            yield None
            return
        yield self.resolve(ref)
