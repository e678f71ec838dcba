# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Tree node classes."""

from __future__ import annotations

import asyncio
import os
import weakref
from collections import Counter
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Iterator, Sequence

if TYPE_CHECKING:
    from .host import ChildLoader

ID_SEPARATOR = '/'


class CollapseState(str, Enum):
    """How the host should draw a node's expander."""

    COLLAPSED = 'collapsed'
    EXPANDED = 'expanded'
    LEAF = 'leaf'


def make_node_id(parent_id: str | None, segment: str) -> str:
    """Build a child id from its parent's id and its own path segment.

    An ancestor's id is always a string prefix of its descendants' ids,
    which is what the prefix fallback of the collection relies on.

    Example:
        >>> make_node_id('MySolution.sln', 'App')
        'MySolution.sln/App'
    """
    if not parent_id:
        return segment
    return f"{parent_id}{ID_SEPARATOR}{segment}"


def normalize_path(path: str) -> str:
    return os.path.normcase(os.path.normpath(path))


class TreeNode:
    """A node in a solution tree (solution, project, folder or file).

    Each node has:
    - id: Deterministic identity, stable across rebuilds of the tree
    - label: The text the host shows
    - path: The underlying resource on disk, if any
    - parent: Weak reference to the node that materialized it
    - collapse_state: One of CollapseState
    - children: Loaded on first get_children() and cached afterwards

    Example:
        >>> async def load(node):
        ...     return [TreeNode(make_node_id(node.id, 'Program.cs'), 'Program.cs')]
        >>> project = TreeNode('App.sln/App', 'App', loader=load)
        >>> project.collapse_state
        <CollapseState.COLLAPSED: 'collapsed'>
    """

    __slots__ = (
        'id', 'label', 'path', 'context_value', 'collapse_state',
        '_parent_ref', '_loader', '_children', '_loading', '__weakref__',
    )

    def __init__(
        self,
        id: str,
        label: str | None = None,
        path: str | None = None,
        loader: ChildLoader | None = None,
        collapse_state: CollapseState | None = None,
        context_value: str | None = None,
        parent: TreeNode | None = None,
    ) -> None:
        """Initialize a TreeNode.

        Args:
            id: The node's deterministic id (see make_node_id).
            label: Display text. Defaults to the last id segment.
            path: Resource path matched by search().
            loader: Async callable producing the children. Nodes without
                a loader (and without a _load_children override) are leaves.
            collapse_state: Initial state. Defaults to LEAF for nodes
                without a loader, COLLAPSED otherwise.
            context_value: Host context key (e.g. 'project', 'file').
            parent: The node this one hangs from.
        """
        self.id = id
        self.label = label if label is not None else id.rsplit(ID_SEPARATOR, 1)[-1]
        self.path = path
        self.context_value = context_value
        self._loader = loader
        self._children: list[TreeNode] | None = None
        self._loading: asyncio.Future[list[TreeNode]] | None = None
        self._parent_ref: weakref.ref[TreeNode] | None = None
        self.parent = parent
        if collapse_state is None:
            collapse_state = (
                CollapseState.COLLAPSED if self.can_have_children else CollapseState.LEAF
            )
        self.collapse_state = collapse_state

    def __repr__(self) -> str:
        return f"TreeNode({self.id!r}, state={self.collapse_state.value})"

    @property
    def parent(self) -> TreeNode | None:
        """The parent node, or None for roots and orphaned nodes."""
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    @parent.setter
    def parent(self, value: TreeNode | None) -> None:
        self._parent_ref = weakref.ref(value) if value is not None else None

    @property
    def can_have_children(self) -> bool:
        return (
            self._loader is not None
            or type(self)._load_children is not TreeNode._load_children
        )

    @property
    def is_expanded(self) -> bool:
        return self.collapse_state is CollapseState.EXPANDED

    @property
    def children_loaded(self) -> bool:
        """True once get_children() has completed successfully."""
        return self._children is not None

    @property
    def loaded_children(self) -> list[TreeNode]:
        """Children already materialized, without triggering a load."""
        return self._children if self._children is not None else []

    async def _load_children(self) -> Sequence[TreeNode]:
        """Produce the children. Subclasses may override instead of passing a loader."""
        if self._loader is None:
            return []
        return await self._loader(self)

    async def get_children(self) -> list[TreeNode]:
        """Return the children, loading them on the first call.

        Later calls return the cached list. Concurrent first calls share
        one load. A failed load is not cached: the exception reaches every
        waiting caller and the next call tries again.
        """
        if self._children is not None:
            return self._children
        if self._loading is not None:
            return await asyncio.shield(self._loading)

        loop = asyncio.get_running_loop()
        self._loading = loop.create_future()
        try:
            children = list(await self._load_children())
        except asyncio.CancelledError:
            self._loading.cancel()
            self._loading = None
            raise
        except Exception as exc:
            self._loading.set_exception(exc)
            # mark as retrieved so an unwaited future doesn't warn
            self._loading.exception()
            self._loading = None
            raise
        for child in children:
            child.parent = self
        self._children = children
        self._loading.set_result(children)
        self._loading = None
        return children

    def iter_loaded(self) -> Iterator[TreeNode]:
        """Yield this node and its materialized descendants, parent first."""
        stack: list[TreeNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.loaded_children))

    async def search(self, target_path: str) -> TreeNode | None:
        """Find the first node whose path matches target_path.

        Walks depth-first, parent before children, loading children as it
        goes. The first match in that order wins, even if a shallower match
        sits in a later sibling.

        Args:
            target_path: Filesystem path of the resource to find.

        Returns:
            The matching node, or None.
        """
        target = normalize_path(target_path)
        stack: list[TreeNode] = [self]
        while stack:
            node = stack.pop()
            if node.path is not None and normalize_path(node.path) == target:
                return node
            children = await node.get_children()
            stack.extend(reversed(children))
        return None


def find_duplicate_ids(roots: Iterable[TreeNode]) -> dict[str, int]:
    """Count ids that occur more than once among the loaded nodes.

    Args:
        roots: Root nodes to walk. Only materialized children are visited.

    Returns:
        Mapping of duplicated id to number of occurrences (empty if ids
        are unique).
    """
    counts: Counter[str] = Counter()
    for root in roots:
        for node in root.iter_loaded():
            counts[node.id] += 1
    return {node_id: n for node_id, n in counts.items() if n > 1}
