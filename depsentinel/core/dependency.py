"""Dependency records shared by the update engines."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RequirementSource:
    """Where a requirement was declared to come from (container images)."""

    registry: str | None = None
    tag: str | None = None
    digest: str | None = None


@dataclass
class Requirement:
    """One declaration of a dependency inside a manifest file."""

    file: str
    requirement: str | None = None  # declared version constraint
    groups: list[str] = field(default_factory=list)
    source: RequirementSource | None = None


@dataclass
class Dependency:
    """A dependency and the manifest declarations that reference it.

    A dependency with no requirements is indirect: nothing in the
    project's own source asks for it.
    """

    name: str
    version: str
    requirements: list[Requirement] = field(default_factory=list)
    package_manager: str = "go_modules"

    @property
    def indirect(self) -> bool:
        return not self.requirements
