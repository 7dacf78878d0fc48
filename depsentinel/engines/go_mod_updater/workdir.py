"""Scoped acquisition of the checkout an update runs in."""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

import structlog

from depsentinel.core.git import clone

log = structlog.get_logger("depsentinel.engine")

_TRACKED_FILES = ("go.mod", "go.sum")


@dataclass(frozen=True)
class RepoLocation:
    """Where the go.mod to update lives.

    Either an existing checkout (*repo_contents_path*) that is reused in
    place, or a *repo_url* (and optional *ref*) cloned fresh into a
    temporary directory. *directory* is the go.mod's directory relative to
    the repository root.
    """

    repo_contents_path: Path | None = None
    repo_url: str | None = None
    ref: str | None = None
    directory: str = "/"

    @property
    def go_mod_path(self) -> str:
        """go.mod path relative to the repository root (used in errors)."""
        return str(PurePosixPath(self.directory.strip("/")) / "go.mod")


@contextmanager
def checkout(location: RepoLocation, *, env: Mapping[str, str] | None = None) -> Iterator[Path]:
    """Yield the directory holding the go.mod, releasing it on exit.

    A reused checkout gets its go.mod/go.sum contents back and loses any
    file or directory the operation created next to them. A cloned
    checkout is deleted.
    """
    subdir = location.directory.strip("/")
    if location.repo_contents_path is not None:
        target = Path(location.repo_contents_path) / subdir
        if not target.is_dir():
            raise FileNotFoundError(f"{target} is not a directory")
        with _restored(target):
            yield target
    elif location.repo_url:
        with tempfile.TemporaryDirectory(prefix="depsentinel-") as tmpdir:
            repo = clone(location.repo_url, location.ref, Path(tmpdir), env=env)
            yield repo / subdir
    else:
        raise ValueError("RepoLocation needs repo_contents_path or repo_url")


@contextmanager
def _restored(path: Path) -> Iterator[None]:
    entries_before = {entry.name for entry in path.iterdir()}
    saved = {
        name: (path / name).read_bytes() for name in _TRACKED_FILES if (path / name).exists()
    }
    try:
        yield
    finally:
        for name, body in saved.items():
            (path / name).write_bytes(body)
        for entry in path.iterdir():
            if entry.name in entries_before:
                continue
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry, ignore_errors=True)
            else:
                entry.unlink(missing_ok=True)
        log.debug("workdir.restored", path=str(path))
