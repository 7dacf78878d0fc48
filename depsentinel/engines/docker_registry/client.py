"""Async Docker registry (v2 API) client with token auth, pagination and retries."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import re
from typing import Any

import httpx
import structlog

from depsentinel.core.config import DEFAULT_DOCKER_REGISTRY, Credential, credentials_for_registry
from depsentinel.core.errors import PrivateSourceAuthenticationFailure

log = structlog.get_logger("depsentinel.engine")

_NEXT_LINK_RE = re.compile(r'<([^>]+)>;\s*rel="next"')
_CHALLENGE_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds

_MANIFEST_ACCEPT = ", ".join(
    [
        "application/vnd.docker.distribution.manifest.v2+json",
        "application/vnd.docker.distribution.manifest.list.v2+json",
        "application/vnd.oci.image.manifest.v1+json",
        "application/vnd.oci.image.index.v1+json",
    ]
)


class RegistryAuthenticationError(Exception):
    """The registry rejected our (possibly absent) credentials."""

    def __init__(self, registry: str, status_code: int) -> None:
        self.registry = registry
        self.status_code = status_code
        super().__init__(f"authentication to {registry} failed (HTTP {status_code})")


class RegistryNotFound(Exception):
    """The requested repository, tag or manifest does not exist."""


def standard_registry(registry: str | None) -> bool:
    return registry is None or registry == DEFAULT_DOCKER_REGISTRY


def docker_repo_name(image: str, registry: str | None) -> str:
    """Official Docker Hub images live under ``library/``."""
    if not standard_registry(registry):
        return image
    if "/" in image:
        return image
    return f"library/{image}"


class DockerRegistryClient:
    """Thin async wrapper around the registry HTTP API v2."""

    def __init__(
        self,
        registry: str | None = None,
        *,
        username: str | None = None,
        password: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.registry = registry or DEFAULT_DOCKER_REGISTRY
        self._auth = (username, password) if username and password else None
        self._client = httpx.AsyncClient(
            base_url=f"https://{self.registry}",
            timeout=30.0,
            transport=transport,
        )
        self._authorization: str | None = None

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> DockerRegistryClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def tags(self, repo: str, *, max_pages: int = 50) -> list[str]:
        """All tags of *repo*, following ``Link: <...>; rel="next"`` pages."""
        url: str | None = f"/v2/{repo}/tags/list"
        tags: list[str] = []
        page = 0
        while url and page < max_pages:
            response = await self._request("GET", url)
            tags.extend(response.json().get("tags") or [])
            url = self._parse_next_link(response.headers.get("Link", ""))
            page += 1
        return tags

    async def digest(self, repo: str, tag: str) -> str:
        """Content digest of the manifest *repo*:*tag* points at."""
        url = f"/v2/{repo}/manifests/{tag}"
        headers = {"Accept": _MANIFEST_ACCEPT}
        response = await self._request("HEAD", url, headers=headers)
        digest = response.headers.get("Docker-Content-Digest")
        if digest:
            return digest
        # Some registries omit the header on HEAD; hash the manifest body.
        response = await self._request("GET", url, headers=headers)
        return "sha256:" + hashlib.sha256(response.content).hexdigest()

    # ── internal ───────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send a request, answering one auth challenge, and map error statuses."""
        response = await self._request_with_retry(method, url, headers)
        if response.status_code == 401:
            challenge = response.headers.get("WWW-Authenticate", "")
            if await self._authorize(challenge):
                response = await self._request_with_retry(method, url, headers)

        if response.status_code in (401, 403):
            raise RegistryAuthenticationError(self.registry, response.status_code)
        if response.status_code == 404:
            raise RegistryNotFound(f"{self.registry}{url}")
        response.raise_for_status()
        return response

    async def _authorize(self, challenge: str) -> bool:
        """Set the Authorization header for *challenge*; False if we can't answer it."""
        scheme, _, params_text = challenge.partition(" ")
        scheme = scheme.lower()
        if scheme == "basic":
            if self._auth is None:
                return False
            user, password = self._auth
            encoded = base64.b64encode(f"{user}:{password}".encode()).decode()
            self._authorization = f"Basic {encoded}"
            return True
        if scheme != "bearer":
            return False

        params = dict(_CHALLENGE_PARAM_RE.findall(params_text))
        realm = params.pop("realm", None)
        if not realm:
            return False
        response = await self._client.get(realm, params=params, auth=self._auth)
        if response.status_code in (401, 403):
            raise RegistryAuthenticationError(self.registry, response.status_code)
        response.raise_for_status()
        body: dict[str, Any] = response.json()
        token = body.get("token") or body.get("access_token")
        if not token:
            return False
        self._authorization = f"Bearer {token}"
        return True

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Request with exponential backoff on 5xx and timeout errors."""
        request_headers = dict(headers or {})
        if self._authorization:
            request_headers["Authorization"] = self._authorization

        last_exc: Exception | None = None
        for attempt in range(_MAX_RETRIES):
            try:
                resp = await self._client.request(method, url, headers=request_headers)
                if resp.status_code < 500:
                    return resp

                log.warning(
                    "registry.server_error",
                    registry=self.registry,
                    url=url,
                    status=resp.status_code,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = httpx.HTTPStatusError(
                    f"{resp.status_code}", request=resp.request, response=resp
                )
            except httpx.TimeoutException as exc:
                log.warning(
                    "registry.timeout",
                    registry=self.registry,
                    url=url,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = exc

            if attempt < _MAX_RETRIES - 1:
                delay = _RETRY_BASE_DELAY * (2**attempt)
                await asyncio.sleep(delay)

        raise last_exc  # type: ignore[misc]

    @staticmethod
    def _parse_next_link(link_header: str) -> str | None:
        """Extract the ``next`` URL from a ``Link`` header."""
        match = _NEXT_LINK_RE.search(link_header)
        return match.group(1) if match else None


async def version_from_digest(
    registry: str | None,
    image: str,
    digest: str | None,
    credentials: list[Credential],
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str | None:
    """Return the tag of *image* whose manifest digest is *digest*, or None.

    Authentication failures against a private registry raise
    :class:`PrivateSourceAuthenticationFailure` naming the registry. The
    same failure against Docker Hub is unexpected and propagates as the
    original :class:`RegistryAuthenticationError`.
    """
    if not digest:
        return None

    repo = docker_repo_name(image, registry)
    cred = credentials_for_registry(credentials, registry) or {}
    try:
        async with DockerRegistryClient(
            registry,
            username=cred.get("username"),
            password=cred.get("password"),
            transport=transport,
        ) as client:
            for tag in await client.tags(repo):
                try:
                    if await client.digest(repo, tag) == digest:
                        return tag
                except RegistryNotFound:
                    # Listed tags without a manifest do exist in the wild
                    continue
            return None
    except RegistryAuthenticationError as exc:
        if standard_registry(registry):
            raise
        raise PrivateSourceAuthenticationFailure(registry or DEFAULT_DOCKER_REGISTRY) from exc
