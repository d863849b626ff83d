"""Shared test fixtures."""

import pytest

from arbor_sync.core.write.client import RemoteMutationService
from arbor_sync.models.node import BranchNode
from tests.unit.fakes import (
    BODIES,
    OUTLINE,
    REPO_FILES,
    ROOT,
    SOURCE,
    FakeContentSource,
    FakeGitHub,
)


@pytest.fixture
def github() -> FakeGitHub:
    """A fake remote holding a small content repository."""
    fake = FakeGitHub()
    for path, body in REPO_FILES.items():
        fake.add_file(path, body)
    return fake


@pytest.fixture
def service(github: FakeGitHub) -> RemoteMutationService:
    return RemoteMutationService(github, SOURCE, principal="alice")


@pytest.fixture
def content_source() -> FakeContentSource:
    return FakeContentSource(OUTLINE, BODIES)


@pytest.fixture
def root() -> BranchNode:
    return BranchNode(id=ROOT, name="Demo", kind="root")
