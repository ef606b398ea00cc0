"""External command execution and typed command builders."""

import re
import shlex
import subprocess
from dataclasses import dataclass, field
from typing import Callable

from deployctl.core.exceptions import ValidationError
from deployctl.core.logging import get_logger
from deployctl.deploy.models import validate_host

logger = get_logger(__name__)

_USER_RE = re.compile(r"^[a-z_][a-z0-9_.-]{0,31}$", re.IGNORECASE)
_SSH_OPTION_RE = re.compile(r"^[A-Za-z][A-Za-z0-9]*=[^\s]+$")


@dataclass
class CommandResult:
    """Result of one external command."""

    argv: list[str]
    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def summary(self) -> str:
        """Short failure description for warnings and results."""
        if self.error:
            return self.error
        detail = (self.stderr or self.stdout).strip().splitlines()
        tail = f": {detail[-1]}" if detail else ""
        return f"exit code {self.returncode}{tail}"


CommandRunner = Callable[[list[str], float], CommandResult]


def run_command(argv: list[str], timeout: float) -> CommandResult:
    """Run an argv list without a shell.

    Missing executables and timeouts are reported on the result rather
    than raised, so callers decide whether the failure is fatal.
    """
    logger.debug(f"$ {shlex.join(argv)}")

    try:
        proc = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return CommandResult(argv=argv, returncode=None, error=f"timed out after {timeout}s")
    except FileNotFoundError:
        return CommandResult(argv=argv, returncode=None, error=f"executable not found: {argv[0]}")
    except OSError as e:
        return CommandResult(argv=argv, returncode=None, error=str(e))

    return CommandResult(
        argv=argv,
        returncode=proc.returncode,
        stdout=proc.stdout,
        stderr=proc.stderr,
    )


def split_command(command: str | None, what: str) -> list[str]:
    """Split a configured command into argv, refusing empty values."""
    if not command or not command.strip():
        raise ValidationError(f"No {what} command configured")
    return shlex.split(command)


@dataclass(frozen=True)
class SshCommand:
    """Builds ``ssh``/``scp`` argv lists for one remote host."""

    host: str
    user: str | None = None
    port: int = 22
    identity_file: str | None = None
    options: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        validate_host(self.host)
        if self.user is not None and not _USER_RE.match(self.user):
            raise ValidationError(f"Invalid SSH user: {self.user!r}")
        if not 0 < self.port < 65536:
            raise ValidationError(f"Invalid SSH port: {self.port}")
        for option in self.options:
            if not _SSH_OPTION_RE.match(option):
                raise ValidationError(f"Invalid SSH option: {option!r}")

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}" if self.user else self.host

    def _common(self) -> list[str]:
        args: list[str] = []
        if self.identity_file:
            args += ["-i", self.identity_file]
        for option in self.options:
            args += ["-o", option]
        return args

    def copy(self, local_path: str, remote_path: str) -> list[str]:
        """``scp`` a local file to the remote host."""
        return ["scp", "-q", "-P", str(self.port), *self._common(), "--", local_path, f"{self.destination}:{remote_path}"]

    def run(self, remote_argv: list[str]) -> list[str]:
        """``ssh`` a command; remote words are quoted for the remote shell."""
        return ["ssh", "-p", str(self.port), *self._common(), "--", self.destination, shlex.join(remote_argv)]
