"""Runtime configuration read from environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

DEFAULT_DOCKER_REGISTRY = "registry.hub.docker.com"
GIT_SOURCE_USERNAME = "dependabot-script"

Credential = dict[str, Any]


def _env_float(environ: Mapping[str, str], key: str, default: float) -> float:
    return float(environ.get(key, default))


@dataclass(frozen=True)
class Settings:
    """Knobs for the toolchain-driving engines."""

    go_binary: str = "go"
    # Module fetches bypass the shared proxy; private git sources behind
    # authentication are unreachable through it.
    go_private: str = "*"
    command_timeout: float | None = None  # seconds, per toolchain invocation

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``DEPSENTINEL_*`` variables.

        ``DEPSENTINEL_COMMAND_TIMEOUT`` of ``0`` (the default) disables the
        timeout.
        """
        env = os.environ if environ is None else environ
        timeout = _env_float(env, "DEPSENTINEL_COMMAND_TIMEOUT", 0)
        return cls(
            go_binary=env.get("DEPSENTINEL_GO_BINARY", "go"),
            go_private=env.get("DEPSENTINEL_GOPRIVATE", "*"),
            command_timeout=timeout if timeout > 0 else None,
        )

    def go_environment(self) -> dict[str, str]:
        return {"GOPRIVATE": self.go_private}


def credentials_from_env(environ: Mapping[str, str] | None = None) -> list[Credential]:
    """Assemble the credentials list from environment variables.

    ``GITHUB_ACCESS_TOKEN`` yields a ``git_source`` entry for github.com.
    ``DOCKER_REGISTRY`` / ``DOCKER_USER`` / ``DOCKER_PASS`` yield a
    ``docker_registry`` entry (registry defaults to Docker Hub) when a user
    or password is set.
    """
    env = os.environ if environ is None else environ
    credentials: list[Credential] = [
        {
            "type": "git_source",
            "host": "github.com",
            "username": GIT_SOURCE_USERNAME,
            "password": env.get("GITHUB_ACCESS_TOKEN"),
        }
    ]
    user = env.get("DOCKER_USER")
    password = env.get("DOCKER_PASS")
    if user or password:
        credentials.append(
            {
                "type": "docker_registry",
                "registry": env.get("DOCKER_REGISTRY") or DEFAULT_DOCKER_REGISTRY,
                "username": user,
                "password": password,
            }
        )
    return credentials


def credentials_for_registry(
    credentials: list[Credential], registry: str | None
) -> Credential | None:
    """Return the ``docker_registry`` credential matching *registry*, if any."""
    wanted = registry or DEFAULT_DOCKER_REGISTRY
    for cred in credentials:
        if cred.get("type") == "docker_registry" and cred.get("registry") == wanted:
            return cred
    return None
