"""Process boundary to the go toolchain.

The updater never calls ``subprocess`` directly; it is handed a
:class:`CommandRunner` so tests can script the toolchain's behaviour.
"""

from __future__ import annotations

import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

log = structlog.get_logger("depsentinel.engine")


@dataclass(frozen=True)
class CommandResult:
    """Captured outcome of one toolchain invocation."""

    stdout: str
    stderr: str
    returncode: int
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


@runtime_checkable
class CommandRunner(Protocol):
    """Interface for running one external command to completion."""

    def __call__(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str],
    ) -> CommandResult: ...


def _decode(output: str | bytes | None) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


class SubprocessRunner:
    """Run commands with :func:`subprocess.run`, optionally under a timeout.

    A command that exceeds *timeout* seconds is killed and reported as a
    failed result carrying whatever stderr it produced before that.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout

    def __call__(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str],
    ) -> CommandResult:
        log.debug("toolchain.run", args=list(args), cwd=str(cwd))
        try:
            proc = subprocess.run(
                list(args),
                cwd=cwd,
                env=dict(env),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            log.warning("toolchain.timeout", args=list(args), timeout=self.timeout)
            stderr = _decode(exc.stderr)
            if stderr and not stderr.endswith("\n"):
                stderr += "\n"
            stderr += f"{' '.join(args)}: timed out after {self.timeout}s\n"
            return CommandResult(_decode(exc.stdout), stderr, -1, timed_out=True)
        return CommandResult(proc.stdout, proc.stderr, proc.returncode)
