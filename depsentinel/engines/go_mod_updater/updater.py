"""GoModUpdater: apply target versions to a go.mod/go.sum pair.

The go tooling is used to work out the consequences of an update, but its
rewrite of go.mod is not minimal (it reformats, pins unrelated entries,
injects toolchain lines). The updater therefore only trusts it for *which*
requirements end up in the file, and applies that delta to the original
go.mod text.
"""

from __future__ import annotations

import json
import os
import re
from collections.abc import Iterable, Mapping
from pathlib import Path

import structlog
from pydantic import ValidationError

from depsentinel.core.config import Credential, Settings
from depsentinel.core.dependency import Dependency, Requirement
from depsentinel.core.errors import DependencyFileError, DependencyFileNotParseable
from depsentinel.core.git import git_configured
from depsentinel.engines.go_mod_updater.classifier import classify
from depsentinel.engines.go_mod_updater.modfile import ModFile
from depsentinel.engines.go_mod_updater.models import (
    GoModJson,
    ManifestSnapshot,
    ModuleRequire,
    UpdatedFiles,
)
from depsentinel.engines.go_mod_updater.stubs import build_module_stubs
from depsentinel.engines.go_mod_updater.substitutions import compute_substitutions
from depsentinel.engines.go_mod_updater.toolchain import CommandRunner, SubprocessRunner
from depsentinel.engines.go_mod_updater.workdir import RepoLocation, checkout

log = structlog.get_logger("depsentinel.engine")

_PLACEHOLDER_SOURCE = "package dummypkg\n"


def normalize_version(version: str) -> str:
    """Return *version* with exactly one leading ``v`` (``V1.2`` -> ``v1.2``)."""
    return "v" + re.sub(r"^v", "", version, count=1, flags=re.IGNORECASE)


def requirement_to_dependency(req: ModuleRequire) -> Dependency:
    # Only enough of a Dependency to feed a requirement back through
    # set_requirements: version, and direct vs indirect.
    requirements = [] if req.indirect else [Requirement(file="go.mod", requirement=req.version)]
    return Dependency(name=req.path, version=req.version, requirements=requirements)


class GoModWorkspace:
    """go.mod I/O and go toolchain calls inside one checkout directory.

    Every toolchain call checks the exit status; a failure is classified
    from stderr and raised.
    """

    def __init__(
        self,
        path: Path,
        runner: CommandRunner,
        env: Mapping[str, str],
        *,
        go_binary: str = "go",
        go_mod_path: str = "go.mod",
    ) -> None:
        self.path = path
        self.go_mod_path = go_mod_path
        self._runner = runner
        self._env = env
        self._go = go_binary

    # ── files ────────────────────────────────────────────────────────────

    def read_go_mod(self) -> str:
        return (self.path / "go.mod").read_text(encoding="utf-8")

    def write_go_mod(self, body: str) -> None:
        (self.path / "go.mod").write_text(body, encoding="utf-8")

    def read_go_sum(self) -> str | None:
        go_sum = self.path / "go.sum"
        return go_sum.read_text(encoding="utf-8") if go_sum.exists() else None

    # ── toolchain ────────────────────────────────────────────────────────

    def run(self, *args: str) -> str:
        result = self._runner([self._go, *args], cwd=self.path, env=self._env)
        if not result.ok:
            raise classify(result.stderr, self.go_mod_path, workdir=str(self.path))
        return result.stdout

    def parse_manifest(self) -> ManifestSnapshot:
        stdout = self.run("mod", "edit", "-json")
        try:
            payload = GoModJson.model_validate(json.loads(stdout or "null") or {})
        except (json.JSONDecodeError, ValidationError) as exc:
            raise DependencyFileNotParseable(
                self.go_mod_path, f"unreadable `go mod edit -json` output: {exc}"
            ) from exc
        return ManifestSnapshot.from_go_json(payload)

    def set_requirements(self, dependencies: Iterable[Dependency]) -> None:
        """Require each dependency at its normalized version.

        ``go mod edit`` cannot mark a requirement indirect, so the marker is
        set on the rewritten file afterwards.
        """
        deps = list(dependencies)
        if not deps:
            return
        self.run(
            "mod",
            "edit",
            *(f"-require={dep.name}@{normalize_version(dep.version)}" for dep in deps),
        )
        mod = ModFile(self.read_go_mod())
        for dep in deps:
            mod.set_indirect(dep.name, dep.indirect)
        self.write_go_mod(mod.render())

    def drop_requirements(self, paths: Iterable[str]) -> None:
        for path in paths:
            self.run("mod", "edit", f"-droprequire={path}")

    def resolve(self) -> None:
        """Run ``go get -d``, giving it a package to analyze if there is none."""
        if not any(self.path.glob("*.go")):
            (self.path / "main.go").write_text(_PLACEHOLDER_SOURCE, encoding="utf-8")
        self.run("get", "-d")

    def tidy(self) -> None:
        self.run("mod", "tidy")


class GoModUpdater:
    """Update a go.mod/go.sum pair to the requested dependency versions.

    Usage::

        updater = GoModUpdater(dependencies, credentials, RepoLocation(repo_contents_path=path))
        go_mod = updater.updated_go_mod_content()
        go_sum = updater.updated_go_sum_content()  # None if there was no go.sum

    The update runs once, on first access. It either produces both files or
    raises a single :class:`~depsentinel.core.errors.DependencyFileError`.
    """

    def __init__(
        self,
        dependencies: Iterable[Dependency],
        credentials: list[Credential],
        location: RepoLocation,
        *,
        runner: CommandRunner | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._dependencies = list(dependencies)
        self._credentials = credentials
        self._location = location
        self._settings = settings or Settings.from_env()
        self._runner = runner or SubprocessRunner(timeout=self._settings.command_timeout)
        self._updated_files: UpdatedFiles | None = None

    def updated_go_mod_content(self) -> str:
        return self.updated_files.go_mod

    def updated_go_sum_content(self) -> str | None:
        return self.updated_files.go_sum

    @property
    def updated_files(self) -> UpdatedFiles:
        if self._updated_files is None:
            self._updated_files = self._update_files()
        return self._updated_files

    def _update_files(self) -> UpdatedFiles:
        with git_configured(self._credentials) as git_env:
            env = {**os.environ, **git_env, **self._settings.go_environment()}
            with checkout(self._location, env=env) as path:
                workspace = GoModWorkspace(
                    path,
                    self._runner,
                    env,
                    go_binary=self._settings.go_binary,
                    go_mod_path=self._location.go_mod_path,
                )
                bound = log.bind(go_mod=workspace.go_mod_path)
                try:
                    return self._update_in(workspace, bound)
                except DependencyFileError as exc:
                    bound.warning("go_mod_updater.failed", error=type(exc).__name__)
                    raise

    def _update_in(self, ws: GoModWorkspace, bound: structlog.stdlib.BoundLogger) -> UpdatedFiles:
        original_go_mod = ws.read_go_mod()
        original_go_sum = ws.read_go_sum()

        # Each state is logged on entry, so a failure belongs to the last one.
        # The pre-snapshot is taken on the untouched file: the local replace
        # paths are needed to compute the substitutions.
        bound.debug("go_mod_updater.state", state="snapshot_pre")
        original = ws.parse_manifest()

        substitutions = compute_substitutions(original)
        bound.debug("go_mod_updater.state", state="substituted", paths=len(substitutions))
        substituted_go_mod = substitutions.apply(original_go_mod)
        ws.write_go_mod(substituted_go_mod)

        bound.debug("go_mod_updater.state", state="stubs_built")
        build_module_stubs(ws.path, substitutions.targets)

        bound.debug("go_mod_updater.state", state="delta_applying")
        ws.set_requirements(self._dependencies)

        # Let go work out everything else the update implies
        bound.debug("go_mod_updater.state", state="resolving")
        ws.resolve()
        ws.tidy()

        bound.debug("go_mod_updater.state", state="snapshot_post")
        updated = ws.parse_manifest()

        updated_paths = set(updated.require_paths)
        removed = [path for path in original.require_paths if path not in updated_paths]
        bound.debug("go_mod_updater.state", state="diffing", removed=removed)

        # Back to the original text, then apply only the requirement delta
        bound.debug("go_mod_updater.state", state="reapplying")
        ws.write_go_mod(substituted_go_mod)
        ws.drop_requirements(removed)
        ws.set_requirements(requirement_to_dependency(req) for req in updated.requires)

        bound.debug("go_mod_updater.state", state="unsubstituting")
        go_mod = substitutions.invert().apply(ws.read_go_mod())

        # go.sum is only part of the result if the project had one
        go_sum = ws.read_go_sum() if original_go_sum is not None else None
        bound.info(
            "go_mod_updater.done",
            dependencies=[d.name for d in self._dependencies],
            removed=len(removed),
        )
        return UpdatedFiles(go_mod=go_mod, go_sum=go_sum)
