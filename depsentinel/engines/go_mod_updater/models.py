"""Data models for the go.mod updater engine."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field


# ── `go mod edit -json` payload ─────────────────────────────────────────


class _GoJsonModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ModuleVersionJson(_GoJsonModel):
    path: str = Field(alias="Path")
    version: str | None = Field(default=None, alias="Version")


class RequireJson(_GoJsonModel):
    path: str = Field(alias="Path")
    version: str = Field(alias="Version")
    indirect: bool = Field(default=False, alias="Indirect")


class ReplaceJson(_GoJsonModel):
    old: ModuleVersionJson = Field(alias="Old")
    new: ModuleVersionJson = Field(alias="New")


class GoModJson(_GoJsonModel):
    """The subset of ``go mod edit -json`` output the updater reads."""

    module: ModuleVersionJson | None = Field(default=None, alias="Module")
    require: list[RequireJson] | None = Field(default=None, alias="Require")
    replace: list[ReplaceJson] | None = Field(default=None, alias="Replace")


# ── snapshot ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ModuleRequire:
    path: str
    version: str
    indirect: bool = False


@dataclass(frozen=True)
class ModuleReplace:
    old_path: str
    new_path: str
    old_version: str | None = None
    new_version: str | None = None

    @property
    def is_local(self) -> bool:
        """True when the replacement is a filesystem path, not a module."""
        return self.new_path.startswith((".", "/"))


@dataclass(frozen=True)
class ManifestSnapshot:
    """Immutable view of a go.mod's requirements and replacements."""

    requires: tuple[ModuleRequire, ...] = ()
    replaces: tuple[ModuleReplace, ...] = ()
    module_path: str | None = None

    @property
    def require_paths(self) -> list[str]:
        return [r.path for r in self.requires]

    @classmethod
    def from_go_json(cls, payload: GoModJson) -> ManifestSnapshot:
        return cls(
            requires=tuple(
                ModuleRequire(r.path, r.version, r.indirect) for r in payload.require or []
            ),
            replaces=tuple(
                ModuleReplace(
                    old_path=r.old.path,
                    new_path=r.new.path,
                    old_version=r.old.version,
                    new_version=r.new.version,
                )
                for r in payload.replace or []
            ),
            module_path=payload.module.path if payload.module else None,
        )


@dataclass(frozen=True)
class UpdatedFiles:
    """Result of one update: the new go.mod body and go.sum (if there was one)."""

    go_mod: str
    go_sum: str | None
