"""Parsers for base-image references.

Two kinds of file are read: Dockerfiles (``FROM`` lines) and Concourse
pipeline templates (``registry-image`` resources). When a set of files
contains any template, the Dockerfiles in it are ignored.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

import structlog
import yaml

from depsentinel.core.config import Credential
from depsentinel.core.dependency import Dependency, Requirement, RequirementSource
from depsentinel.core.errors import DependencyFileNotParseable
from depsentinel.engines.docker_registry.client import version_from_digest

log = structlog.get_logger("depsentinel.engine")

# Image reference grammar, after docker/distribution reference/regexp.go
_DOMAIN_COMPONENT = r"(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
_DOMAIN = rf"(?:{_DOMAIN_COMPONENT}(?:\.{_DOMAIN_COMPONENT})+)"
_REGISTRY = rf"(?P<registry>{_DOMAIN}(?::\d+)?)"

_NAME_COMPONENT = r"(?:[a-z\d]+(?:(?:[._]|__|-+)[a-z\d]+)*)"
_IMAGE = rf"(?P<image>{_NAME_COMPONENT}(?:/{_NAME_COMPONENT})*)"

_TAG = r":(?P<tag>[\w][\w.-]{0,127})"
_DIGEST = r"@(?P<digest>[^\s]+)"
_NAME = r"\s+AS\s+(?P<name>[\w-]+)"

_REFERENCE = rf"(?:{_REGISTRY}/)?{_IMAGE}(?:{_TAG})?(?:{_DIGEST})?(?:{_NAME})?"

FROM_LINE = re.compile(rf"^(?i:FROM)\s+{_REFERENCE}")
IMAGE_LINE = re.compile(rf"^{_REFERENCE}")

TEMPLATE_FILE_NAME = re.compile(r"template|docker-image-version", re.IGNORECASE)
DOCKERFILE_NAME = re.compile(r"dockerfile|custom", re.IGNORECASE)

_REGISTRY_IMAGE = "registry-image"
_FLOATING_TAG = "latest"

# (registry, image, digest, credentials) -> tag
DigestResolver = Callable[[str | None, str, str | None, list[Credential]], Awaitable[str | None]]


@dataclass(frozen=True)
class ImageReference:
    image: str
    registry: str | None = None
    tag: str | None = None
    digest: str | None = None


def _reference(match: re.Match[str] | None) -> ImageReference | None:
    if not match:
        return None
    registry = match.group("registry")
    if registry == "docker.io":
        registry = None
    return ImageReference(
        image=match.group("image"),
        registry=registry,
        tag=match.group("tag"),
        digest=match.group("digest"),
    )


def parse_from_line(line: str) -> ImageReference | None:
    """Return the image referenced by a ``FROM`` line, or None."""
    return _reference(FROM_LINE.match(line))


def parse_image_reference(text: str) -> ImageReference | None:
    """Return the image named by a bare ``[registry/]image[:tag][@digest]``."""
    return _reference(IMAGE_LINE.match(text))


def template_image_references(file_name: str, content: str) -> list[ImageReference]:
    """Pinned ``registry-image`` resources of a Concourse pipeline template.

    Resources of other types and those tracking ``latest`` are skipped.
    """
    try:
        parsed = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise DependencyFileNotParseable(file_name, str(exc)) from exc
    if parsed is None:
        return []
    if not isinstance(parsed, dict):
        raise DependencyFileNotParseable(file_name, "expected a mapping at the top level")

    refs = []
    for resource in parsed.get("resources") or []:
        if not isinstance(resource, dict) or resource.get("type") != _REGISTRY_IMAGE:
            continue
        source: dict[str, Any] = resource.get("source") or {}
        if not isinstance(source, dict):
            continue
        tag = source.get("tag")
        if tag == _FLOATING_TAG:
            continue
        repository = str(source.get("repository") or "")
        text = repository if tag is None else f"{repository}:{tag}"
        ref = parse_image_reference(text)
        if ref is None:
            log.debug(
                "dockerfile.unreadable_resource", resource=resource.get("name"), file=file_name
            )
            continue
        refs.append(ref)
    return refs


def dockerfile_image_references(content: str) -> list[ImageReference]:
    refs = (parse_from_line(line.strip()) for line in content.splitlines())
    return [ref for ref in refs if ref is not None]


class DockerfileParser:
    """Collect base-image dependencies from Dockerfiles and pipeline templates.

    The version of an image is its tag; for digest-only references the tag
    is looked up in the registry. The same image at the same version is
    reported once, with one requirement per distinct file and source.
    """

    def __init__(
        self,
        credentials: list[Credential],
        resolver: DigestResolver = version_from_digest,
    ) -> None:
        self._credentials = credentials
        self._resolver = resolver

    async def parse(self, file_name: str, content: str) -> list[Dependency]:
        """Dependencies of a single Dockerfile."""
        deps: dict[tuple[str, str], Dependency] = {}
        await self._collect(deps, file_name, dockerfile_image_references(content))
        return list(deps.values())

    async def parse_template(self, file_name: str, content: str) -> list[Dependency]:
        """Dependencies of a single pipeline template."""
        deps: dict[tuple[str, str], Dependency] = {}
        await self._collect(deps, file_name, template_image_references(file_name, content))
        return list(deps.values())

    async def parse_files(self, files: Iterable[tuple[str, str]]) -> list[Dependency]:
        """Dependencies of ``(file_name, content)`` pairs, selected by name.

        Templates match ``template`` or ``docker-image-version``; Dockerfiles
        match ``dockerfile`` or ``custom`` (case-insensitive). Files matching
        neither are ignored.
        """
        files = list(files)
        templates = [(n, c) for n, c in files if TEMPLATE_FILE_NAME.search(n)]
        deps: dict[tuple[str, str], Dependency] = {}
        if templates:
            for name, content in templates:
                await self._collect(deps, name, template_image_references(name, content))
        else:
            for name, content in files:
                if DOCKERFILE_NAME.search(name):
                    await self._collect(deps, name, dockerfile_image_references(content))
        return list(deps.values())

    async def _collect(
        self,
        deps: dict[tuple[str, str], Dependency],
        file_name: str,
        refs: Iterable[ImageReference],
    ) -> None:
        for ref in refs:
            version = ref.tag or await self._resolver(
                ref.registry, ref.image, ref.digest, self._credentials
            )
            if not version:
                log.debug("dockerfile.unversioned_image", image=ref.image, file=file_name)
                continue

            requirement = Requirement(
                file=file_name,
                requirement=None,
                groups=[],
                source=RequirementSource(registry=ref.registry, tag=ref.tag, digest=ref.digest),
            )
            key = (ref.image, version)
            if key in deps:
                if requirement not in deps[key].requirements:
                    deps[key].requirements.append(requirement)
            else:
                deps[key] = Dependency(
                    name=ref.image,
                    version=version,
                    requirements=[requirement],
                    package_manager="docker",
                )
