"""Shared fixtures for depsentinel tests.

No network and no go toolchain needed: the updater is driven by
:class:`FakeGo`, which edits go.mod through :class:`GoModEditor` the way
the real commands would.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest

from depsentinel.engines.go_mod_updater.modfile import (
    ModFile,
    _Block,
    _comment_with_indirect,
    _is_indirect,
    _unquote,
)
from depsentinel.engines.go_mod_updater.models import ModuleReplace, ModuleRequire
from depsentinel.engines.go_mod_updater.toolchain import CommandResult

GO_SUM = "example.com/foo v1.2.0 h1:Zm9vYmFyYmF6=\nexample.com/foo v1.2.0/go.mod h1:bW9kZmlsZQ=\n"


def _step(args: Sequence[str]) -> str:
    if list(args[1:4]) == ["mod", "edit", "-json"]:
        return "inspect"
    if list(args[1:3]) == ["mod", "edit"]:
        return "edit"
    if args[1] == "get":
        return "get"
    if list(args[1:3]) == ["mod", "tidy"]:
        return "tidy"
    raise AssertionError(f"unexpected command {args!r}")


class GoModEditor(ModFile):
    """The slice of ``go mod edit``/``go get`` behaviour FakeGo needs."""

    def requires(self) -> list[ModuleRequire]:
        return [
            ModuleRequire(_unquote(e.tokens[0]), e.tokens[1], _is_indirect(e.comment))
            for e in self._entries()
            if e.verb == "require" and len(e.tokens) >= 2
        ]

    def replaces(self) -> list[ModuleReplace]:
        out = []
        for e in self._entries():
            if e.verb != "replace" or "=>" not in e.tokens:
                continue
            arrow = e.tokens.index("=>")
            old, new = e.tokens[:arrow], e.tokens[arrow + 1 :]
            if old and new:
                out.append(
                    ModuleReplace(
                        _unquote(old[0]),
                        _unquote(new[0]),
                        old[1] if len(old) > 1 else None,
                        new[1] if len(new) > 1 else None,
                    )
                )
        return out

    def module_path(self) -> str | None:
        for e in self._entries():
            if e.verb == "module" and e.tokens:
                return _unquote(e.tokens[0])
        return None

    def go_json(self) -> dict[str, Any]:
        """Render in the shape ``go mod edit -json`` prints."""
        out: dict[str, Any] = {"Module": {"Path": self.module_path() or ""}}
        requires = self.requires()
        if requires:
            out["Require"] = [
                {"Path": r.path, "Version": r.version, **({"Indirect": True} if r.indirect else {})}
                for r in requires
            ]
        replaces = self.replaces()
        if replaces:
            out["Replace"] = []
            for r in replaces:
                old: dict[str, Any] = {"Path": r.old_path}
                if r.old_version:
                    old["Version"] = r.old_version
                new: dict[str, Any] = {"Path": r.new_path}
                if r.new_version:
                    new["Version"] = r.new_version
                out["Replace"].append({"Old": old, "New": new})
        return out

    def set_require(self, path: str, version: str, indirect: bool | None = None) -> None:
        """Rewrite an existing line in place or append a new one.

        New lines go at the end of the last ``require`` block, after the
        last single-line ``require``, or at the end of the file.
        """
        for entry in self._require_entries(path):
            comment = entry.comment
            if indirect is not None:
                comment = _comment_with_indirect(comment, indirect)
            if entry.tokens[1] != version or comment != entry.comment:
                self._rewrite_require(entry, version, comment)
            return
        line = f"{path} {version}" + (" // indirect" if indirect else "")
        blocks = [b for b in self._scan() if isinstance(b, _Block) and b.verb == "require"]
        if blocks:
            self._lines.insert(blocks[-1].close, f"\t{line}\n")
            return
        singles = [e for e in self._entries() if e.verb == "require" and not e.in_block]
        if singles:
            at = singles[-1].index
            self._terminate(at)
            self._lines.insert(at + 1, f"require {line}\n")
            return
        if self._lines:
            self._terminate(len(self._lines) - 1)
            self._lines.append("\n")
        self._lines.append(f"require {line}\n")

    def drop_require(self, path: str) -> None:
        targets = [e.index for e in self._require_entries(path)]
        if not targets:
            return
        for index in reversed(targets):
            del self._lines[index]
        blocks = [b for b in self._scan() if isinstance(b, _Block)]
        for block in reversed(blocks):
            if block.verb == "require" and block.close == block.open + 1:
                del self._lines[block.open : block.close + 1]

    def _terminate(self, index: int) -> None:
        if not self._lines[index].endswith("\n"):
            self._lines[index] += "\n"


class FakeGo:
    """Scripted stand-in for the go toolchain.

    *on_get* maps module path -> ``(version, indirect)`` to require, or
    ``None`` to drop, when ``go get`` runs. *failures* maps a step name
    (inspect/edit/get/tidy) to the stderr of a failing run.
    """

    def __init__(
        self,
        *,
        on_get: dict[str, tuple[str, bool] | None] | None = None,
        failures: dict[str, str] | None = None,
        go_sum: str = GO_SUM,
        reformat: bool = True,
    ) -> None:
        self.on_get = on_get or {}
        self.failures = failures or {}
        self.go_sum = go_sum
        self.reformat = reformat
        self.calls: list[list[str]] = []
        self.go_mod_seen: dict[str, str] = {}
        self.envs: list[dict[str, str]] = []

    def steps(self) -> list[str]:
        return [_step(c) for c in self.calls]

    def __call__(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str],
    ) -> CommandResult:
        self.calls.append(list(args))
        self.envs.append(dict(env))
        step = _step(args)
        go_mod = cwd / "go.mod"
        self.go_mod_seen.setdefault(step, go_mod.read_text())

        if step in self.failures:
            return CommandResult("", self.failures[step], 1)

        mod = GoModEditor(go_mod.read_text())
        if step == "inspect":
            return CommandResult(json.dumps(mod.go_json()), "", 0)

        if step == "edit":
            for flag in args[3:]:
                if flag.startswith("-require="):
                    path, _, version = flag[len("-require=") :].rpartition("@")
                    mod.set_require(path, version)
                elif flag.startswith("-droprequire="):
                    mod.drop_require(flag[len("-droprequire=") :])
        elif step == "get":
            for path, change in self.on_get.items():
                if change is None:
                    mod.drop_require(path)
                else:
                    mod.set_require(path, change[0], change[1])
            text = mod.render()
            if self.reformat:
                # What real `go get` does to files it touches
                text = text.replace("\ngo 1.21\n", "\ngo 1.21\n\ntoolchain go1.22.4\n", 1)
            go_mod.write_text(text)
            return CommandResult("", "go: downloading example.com/foo v1.2.0\n", 0)
        elif step == "tidy":
            (cwd / "go.sum").write_text(self.go_sum)
            return CommandResult("", "", 0)

        go_mod.write_text(mod.render())
        return CommandResult("", "", 0)


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def make_fake_go():
    return FakeGo
