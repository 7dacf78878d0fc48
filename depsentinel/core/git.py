"""Git helpers: clone a checkout and configure throwaway credentials."""

from __future__ import annotations

import shutil
import subprocess
import tempfile
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from urllib.parse import quote

import structlog

from depsentinel.core.config import Credential

log = structlog.get_logger("depsentinel.engine")

_GIT_USER_NAME = "depsentinel"
_GIT_USER_EMAIL = "noreply@depsentinel.invalid"


def clone(
    repo_url: str,
    ref: str | None,
    workdir: Path,
    *,
    env: Mapping[str, str] | None = None,
) -> Path:
    """Clone a repo into *workdir*, checkout *ref*, and return the clone path.

    *ref* can be a branch name, tag name, or commit SHA.
    If *ref* is None, the remote's default branch is used.

    The caller is responsible for cleaning up the directory.

    Raises ``RuntimeError`` on non-zero exit code.
    """
    target = workdir / f"repo-{uuid.uuid4().hex[:8]}"

    # Full history so any ref (branch, tag, SHA) can be checked out
    _run(["git", "clone", "--", repo_url, str(target)], env)

    if ref:
        _run(["git", "-C", str(target), "checkout", ref], env)

    log.info("git.cloned", repo_url=repo_url, ref=ref)
    return target


def _run(cmd: list[str], env: Mapping[str, str] | None) -> None:
    """Run a git command, raising RuntimeError on failure."""
    proc = subprocess.run(cmd, capture_output=True, text=True, env=env)
    if proc.returncode != 0:
        raise RuntimeError(
            f"git command failed (exit {proc.returncode}): {proc.stderr.strip()}"
        )


def _credential_store_lines(credentials: list[Credential]) -> list[str]:
    lines = []
    for cred in credentials:
        if cred.get("type") != "git_source" or not cred.get("password"):
            continue
        user = quote(cred.get("username") or "x-access-token", safe="")
        password = quote(cred["password"], safe="")
        lines.append(f"https://{user}:{password}@{cred['host']}")
    return lines


def _gitconfig(store_path: Path, credentials: list[Credential]) -> str:
    hosts = sorted({c["host"] for c in credentials if c.get("type") == "git_source"})
    sections = [
        "[user]",
        f"\tname = {_GIT_USER_NAME}",
        f"\temail = {_GIT_USER_EMAIL}",
        "[credential]",
        f"\thelper = store --file={store_path}",
    ]
    # Module fetches use ssh-style URLs for some hosts; route them through
    # https so the credential store applies.
    for host in hosts:
        sections += [
            f'[url "https://{host}/"]',
            f"\tinsteadOf = ssh://git@{host}/",
            f"\tinsteadOf = git@{host}:",
        ]
    return "\n".join(sections) + "\n"


@contextmanager
def git_configured(credentials: list[Credential]) -> Iterator[dict[str, str]]:
    """Provide a transient git identity and credential store.

    Yields environment variables that point git at a throwaway global
    config. The config and the stored credentials are deleted when the
    block exits, whether it succeeds or raises.
    """
    config_dir = Path(tempfile.mkdtemp(prefix="depsentinel-git-"))
    try:
        store_path = config_dir / "git.store"
        store_lines = _credential_store_lines(credentials)
        store_path.write_text("".join(f"{line}\n" for line in store_lines))
        store_path.chmod(0o600)
        gitconfig = config_dir / "gitconfig"
        gitconfig.write_text(_gitconfig(store_path, credentials))
        yield {
            "GIT_CONFIG_GLOBAL": str(gitconfig),
            "GIT_TERMINAL_PROMPT": "0",
        }
    finally:
        shutil.rmtree(config_dir, ignore_errors=True)
