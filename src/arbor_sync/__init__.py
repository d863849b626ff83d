"""Content graph and GitHub synchronization layer for Arbor knowledge trees."""

from arbor_sync.api import GitHubApi
from arbor_sync.core.navigation.navigator import Navigator
from arbor_sync.core.sources.session import SourceSession
from arbor_sync.core.write.client import RemoteMutationService
from arbor_sync.models.node import BranchNode, LeafNode, NodeId, TreeEntry
from arbor_sync.protocols import ApiProtocol, ContentSource, WriteTarget

__all__ = [
    "ApiProtocol",
    "BranchNode",
    "ContentSource",
    "GitHubApi",
    "LeafNode",
    "Navigator",
    "NodeId",
    "RemoteMutationService",
    "SourceSession",
    "TreeEntry",
    "WriteTarget",
]
