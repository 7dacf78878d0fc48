"""Placeholder modules for stubbed local replace targets."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import structlog

log = structlog.get_logger("depsentinel.engine")

# (file name, body) of each stub. An empty go.mod is enough for the go
# tooling to accept the directory as a module root.
_STUB_FILES = (
    ("go.mod", ""),
    ("main.go", "package dummypkg\n"),
)


def build_module_stubs(root: Path, stub_paths: Iterable[str]) -> list[Path]:
    """Create a minimal module at each of *stub_paths* under *root*.

    Lets ``go get`` work even when modules are replaced with local
    directories that are not available. Existing files are left alone, so
    re-running is a no-op and a real module at the same path is never
    clobbered.

    Returns the stub directories.
    """
    built = []
    for stub_path in stub_paths:
        stub_dir = root / stub_path
        stub_dir.mkdir(parents=True, exist_ok=True)
        for name, body in _STUB_FILES:
            target = stub_dir / name
            if not target.exists():
                target.write_text(body, encoding="utf-8")
        built.append(stub_dir)
    if built:
        log.debug("go_mod_updater.stubs_built", count=len(built))
    return built
