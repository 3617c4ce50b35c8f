"""Resolution of floating references to immutable identifiers.

Actions are resolved through the GitHub commits API, container images through
the OCI distribution API of their registry. Both speak plain HTTPS, so the
standard ``urllib`` client is enough; results are cached for the run.
"""

from __future__ import annotations

import json
import logging
import os
import re
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass

from pushgate import __version__
from pushgate.errors import ResolutionError

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
DOCKER_HUB_REGISTRY = "registry-1.docker.io"
DEFAULT_TIMEOUT = 15

_USER_AGENT = f"pushgate/{__version__}"
_SHA40 = re.compile(r"^[0-9a-f]{40}$")
_DIGEST = re.compile(r"^sha256:[0-9a-f]{64}$")
_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')
_MANIFEST_TYPES = ", ".join(
    [
        "application/vnd.oci.image.index.v1+json",
        "application/vnd.docker.distribution.manifest.list.v2+json",
        "application/vnd.oci.image.manifest.v1+json",
        "application/vnd.docker.distribution.manifest.v2+json",
    ]
)


@dataclass(frozen=True)
class ImageName:
    """A parsed container image reference."""

    registry: str
    repository: str
    tag: str

    @classmethod
    def parse(cls, image: str) -> ImageName:
        """Split ``[registry/]repo[:tag]`` into its parts.

        Docker Hub short names (``node:18``) expand to ``library/node``.
        """
        name = image.removeprefix("docker://").split("@", 1)[0]
        tag = "latest"
        last = name.rsplit("/", 1)[-1]
        if ":" in last:
            name, tag = name.rsplit(":", 1)

        first, _, remainder = name.partition("/")
        if remainder and ("." in first or ":" in first or first == "localhost"):
            registry, repository = first, remainder
        else:
            registry, repository = DOCKER_HUB_REGISTRY, name
            if "/" not in repository:
                repository = f"library/{repository}"
        if registry == "docker.io":
            registry = DOCKER_HUB_REGISTRY
        return cls(registry=registry, repository=repository, tag=tag)


def split_action(value: str) -> tuple[str, str, str]:
    """Split ``owner/repo[/path]@ref`` into (owner/repo, path, ref)."""
    target, _, ref = value.rpartition("@")
    parts = target.split("/")
    if len(parts) < 2 or not parts[0] or not parts[1] or not ref:
        raise ResolutionError(f"Not a repository action reference: {value}")
    repository = "/".join(parts[:2])
    path = "/".join(parts[2:])
    return repository, path, ref


class BaseResolver(ABC):
    """Resolves floating tags to commit SHAs and image digests."""

    @abstractmethod
    def resolve_action(self, repository: str, ref: str) -> str:
        """Return the 40-character commit SHA ``ref`` points at in ``repository``.

        Raises:
            ResolutionError: If the reference cannot be resolved.
        """
        ...  # pragma: no cover

    @abstractmethod
    def resolve_image(self, image: str) -> str:
        """Return the ``sha256:<hex>`` manifest digest for ``image``.

        Raises:
            ResolutionError: If the image cannot be resolved.
        """
        ...  # pragma: no cover


class RemoteResolver(BaseResolver):
    """Resolver backed by the GitHub API and OCI registries."""

    def __init__(self, token: str | None = None, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.token = token if token is not None else os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN")
        self.timeout = timeout
        self._cache: dict[tuple[str, str], str] = {}

    def resolve_action(self, repository: str, ref: str) -> str:
        key = ("action", f"{repository}@{ref}")
        if key in self._cache:
            return self._cache[key]

        url = f"{GITHUB_API}/repos/{repository}/commits/{urllib.parse.quote(ref, safe='')}"
        headers = {"Accept": "application/vnd.github.sha", "User-Agent": _USER_AGENT}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        logger.debug("Resolving %s@%s via %s", repository, ref, url)
        try:
            with urllib.request.urlopen(urllib.request.Request(url, headers=headers), timeout=self.timeout) as resp:
                sha = resp.read().decode("utf-8").strip()
        except urllib.error.HTTPError as e:
            raise ResolutionError(f"GitHub could not resolve {repository}@{ref}: HTTP {e.code}") from e
        except (urllib.error.URLError, TimeoutError) as e:
            raise ResolutionError(f"Failed to reach GitHub for {repository}@{ref}: {e}") from e

        if not _SHA40.match(sha):
            raise ResolutionError(f"Unexpected response resolving {repository}@{ref}: {sha[:80]!r}")
        self._cache[key] = sha
        return sha

    def resolve_image(self, image: str) -> str:
        key = ("image", image)
        if key in self._cache:
            return self._cache[key]

        name = ImageName.parse(image)
        url = f"https://{name.registry}/v2/{name.repository}/manifests/{name.tag}"
        headers = {"Accept": _MANIFEST_TYPES, "User-Agent": _USER_AGENT}

        logger.debug("Resolving image %s via %s", image, url)
        try:
            digest = self._head_digest(url, headers)
        except urllib.error.HTTPError as e:
            if e.code != 401:
                raise ResolutionError(f"Registry could not resolve {image}: HTTP {e.code}") from e
            headers["Authorization"] = f"Bearer {self._registry_token(e.headers.get('WWW-Authenticate', ''), image)}"
            try:
                digest = self._head_digest(url, headers)
            except urllib.error.HTTPError as retry_error:
                raise ResolutionError(f"Registry could not resolve {image}: HTTP {retry_error.code}") from retry_error
            except (urllib.error.URLError, TimeoutError) as retry_error:
                raise ResolutionError(f"Failed to reach registry for {image}: {retry_error}") from retry_error
        except (urllib.error.URLError, TimeoutError) as e:
            raise ResolutionError(f"Failed to reach registry for {image}: {e}") from e

        if not digest or not _DIGEST.match(digest):
            raise ResolutionError(f"Registry returned no usable digest for {image}")
        self._cache[key] = digest
        return digest

    def _head_digest(self, url: str, headers: dict[str, str]) -> str:
        req = urllib.request.Request(url, headers=headers, method="HEAD")
        with urllib.request.urlopen(req, timeout=self.timeout) as resp:
            return resp.headers.get("Docker-Content-Digest", "")

    def _registry_token(self, challenge: str, image: str) -> str:
        """Fetch an anonymous pull token answering a Bearer challenge."""
        if not challenge.lower().startswith("bearer"):
            raise ResolutionError(f"Registry for {image} requires unsupported auth: {challenge or 'none'}")
        params = dict(_CHALLENGE_PARAM.findall(challenge))
        realm = params.pop("realm", "")
        if not realm:
            raise ResolutionError(f"Registry for {image} sent a challenge without realm")

        token_url = f"{realm}?{urllib.parse.urlencode(params)}"
        try:
            req = urllib.request.Request(token_url, headers={"User-Agent": _USER_AGENT})
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                payload = json.loads(resp.read())
        except (urllib.error.URLError, TimeoutError, json.JSONDecodeError) as e:
            raise ResolutionError(f"Failed to obtain registry token for {image}: {e}") from e

        token = payload.get("token") or payload.get("access_token")
        if not token:
            raise ResolutionError(f"Registry token response for {image} had no token")
        return token
