"""Docker registry engine: base-image parsing and digest-to-tag resolution."""

from depsentinel.engines.docker_registry.client import (
    DockerRegistryClient,
    RegistryAuthenticationError,
    RegistryNotFound,
    version_from_digest,
)
from depsentinel.engines.docker_registry.dockerfile import (
    DockerfileParser,
    parse_from_line,
    parse_image_reference,
)

__all__ = [
    "DockerRegistryClient",
    "DockerfileParser",
    "RegistryAuthenticationError",
    "RegistryNotFound",
    "parse_from_line",
    "parse_image_reference",
    "version_from_digest",
]
