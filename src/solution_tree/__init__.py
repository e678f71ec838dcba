# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Solution-Tree - Lazily loaded solution trees that remember their state.

Builds a tree of solution/project/file nodes on demand, tracks which nodes
are expanded and which one had focus, and replays both after the tree is
torn down and rebuilt.
"""

__version__ = "0.1.0"

from .collection import TreeCollection
from .config import LoggingSettings, TreeSettings, get_settings
from .events import (
    EventAggregator,
    EventType,
    FileChangeType,
    FileEvent,
    SolutionEvent,
    Subscription,
)
from .exceptions import InvalidIndexError, SolutionTreeError, SourceLoadError
from .host import SourceDescriptor, SourceFinder, StateStore, TreeHost
from .logging import setup_logging
from .node import CollapseState, TreeNode, find_duplicate_ids, make_node_id
from .provider import SolutionTreeProvider, TreeItemView
from .restorer import ExpansionRestorer, RestorePhase, RestoreSession, WorkingIndicator
from .state import ExpansionState, JsonFileStateStore, MemoryStateStore

__all__ = [
    # Tree
    "TreeNode",
    "CollapseState",
    "make_node_id",
    "find_duplicate_ids",
    "TreeCollection",
    # State
    "ExpansionState",
    "MemoryStateStore",
    "JsonFileStateStore",
    "ExpansionRestorer",
    "RestoreSession",
    "RestorePhase",
    "WorkingIndicator",
    # Provider
    "SolutionTreeProvider",
    "TreeItemView",
    # Collaborators
    "SourceDescriptor",
    "SourceFinder",
    "StateStore",
    "TreeHost",
    # Events
    "EventAggregator",
    "EventType",
    "FileChangeType",
    "FileEvent",
    "SolutionEvent",
    "Subscription",
    # Configuration
    "TreeSettings",
    "LoggingSettings",
    "get_settings",
    "setup_logging",
    # Exceptions
    "SolutionTreeError",
    "SourceLoadError",
    "InvalidIndexError",
]
