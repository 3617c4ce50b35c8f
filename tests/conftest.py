"""Shared test fixtures for pushgate tests."""

import pytest

from pushgate.config import PushGateConfig
from pushgate.errors import ResolutionError
from pushgate.pinning.resolver import BaseResolver

PINNED_SHA = "8e5e7e5ab8b370d6c329ec480221332ada57f0ab"
IMAGE_DIGEST = "sha256:" + "0123456789abcdef" * 4


class FakeResolver(BaseResolver):
    """Offline resolver returning fixed identifiers and recording calls."""

    def __init__(self, sha=PINNED_SHA, digest=IMAGE_DIGEST, fail=()):
        self.sha = sha
        self.digest = digest
        self.fail = set(fail)
        self.calls = []

    def resolve_action(self, repository, ref):
        self.calls.append(("action", repository, ref))
        if repository in self.fail:
            raise ResolutionError(f"cannot resolve {repository}@{ref}")
        return self.sha

    def resolve_image(self, image):
        self.calls.append(("image", image))
        if image in self.fail:
            raise ResolutionError(f"cannot resolve {image}")
        return self.digest


@pytest.fixture
def config():
    """Built-in default configuration."""
    return PushGateConfig()


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def workflows(tmp_path):
    """An empty .github/workflows directory under tmp_path."""
    directory = tmp_path / ".github" / "workflows"
    directory.mkdir(parents=True)
    return directory
