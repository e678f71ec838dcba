# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""TreeCollection - the ordered root nodes of one build pass.

The collection distinguishes *unbuilt* (no list at all) from *built but
empty* (an empty list). Only an unbuilt collection makes the provider run
a build pass.

Lookups come in three flavours:
    - **find_loaded_by_id**: cheap, synchronous, only sees nodes the host
      already materialized
    - **find_and_expand_by_id**: loads children while it descends, so it
      finds nodes the host never showed
    - **find_closest_ancestor_by_id_prefix**: fallback for ids whose node
      disappeared; returns the deepest surviving node whose id prefixes it

Example:
    >>> collection = TreeCollection()
    >>> collection.has_children
    False
    >>> collection.mark_built()
    >>> collection.has_children, len(collection)
    (True, 0)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterator

from .exceptions import InvalidIndexError, SourceLoadError
from .logging import get_logger
from .node import TreeNode

if TYPE_CHECKING:
    from .host import NodeFactory, SourceDescriptor

logger = get_logger(__name__)


class TreeCollection:
    """An ordered holder of root nodes.

    Attributes:
        generation: Incremented by every reset(). Work started against one
            generation can check it to see whether its tree was discarded.
        load_errors: Failures recorded by the provider during the last
            build pass.
        last_visited_ids: Ids visited by the last find_and_expand_by_id(),
            in visitation order.
    """

    __slots__ = ('_children', 'generation', 'load_errors', 'last_visited_ids')

    def __init__(self) -> None:
        self._children: list[TreeNode] | None = None
        self.generation = 0
        self.load_errors: list[SourceLoadError] = []
        self.last_visited_ids: list[str] = []

    # ==================== Special Methods ====================

    def __repr__(self) -> str:
        if self._children is None:
            return "TreeCollection(unbuilt)"
        return f"TreeCollection({[node.id for node in self._children]})"

    def __len__(self) -> int:
        return len(self._children) if self._children is not None else 0

    def __iter__(self) -> Iterator[TreeNode]:
        return iter(self.items)

    # ==================== State ====================

    @property
    def has_children(self) -> bool:
        """True once a build pass produced a list, even an empty one."""
        return self._children is not None

    @property
    def items(self) -> list[TreeNode]:
        """The root nodes (empty list while unbuilt)."""
        return list(self._children) if self._children is not None else []

    def get_item(self, index: int) -> TreeNode:
        """Return the root at index.

        Raises:
            InvalidIndexError: If the collection is unbuilt or index is out
                of range.
        """
        if self._children is None or not -len(self._children) <= index < len(self._children):
            raise InvalidIndexError(f"Invalid index {index} in TreeCollection")
        return self._children[index]

    def reset(self) -> None:
        """Drop every root and go back to unbuilt."""
        self._children = None
        self.generation += 1

    def mark_built(self) -> None:
        """Turn an unbuilt collection into a built, empty one."""
        if self._children is None:
            self._children = []

    async def add_root(
        self,
        descriptor: SourceDescriptor,
        factory: NodeFactory,
        generation: int | None = None,
    ) -> TreeNode | None:
        """Build a root node from descriptor and append it.

        Args:
            descriptor: The solution file and its workspace folder.
            factory: Async callable turning a descriptor into a node.
            generation: If given, the root is only appended when the
                collection hasn't been reset since that generation.

        Returns:
            The appended root, or None if it was discarded because the
            collection was reset while the factory ran.

        Raises:
            SourceLoadError: If the factory fails; the original exception
                is chained.
        """
        try:
            root = await factory(descriptor)
        except Exception as exc:
            raise SourceLoadError(descriptor) from exc
        if generation is not None and generation != self.generation:
            logger.debug("stale_root_discarded", node_id=root.id)
            return None
        if self._children is None:
            self._children = []
        root.parent = None
        self._children.append(root)
        return root

    # ==================== Lookup ====================

    def find_loaded_by_id(self, node_id: str) -> TreeNode | None:
        """Depth-first search over already materialized nodes only."""
        for root in self.items:
            for node in root.iter_loaded():
                if node.id == node_id:
                    return node
        return None

    async def find_and_expand_by_id(self, node_id: str) -> TreeNode | None:
        """Depth-first search that loads children on the way down.

        Every visited id is recorded in last_visited_ids. A node whose
        children fail to load is treated as childless.

        Args:
            node_id: The id to look for.

        Returns:
            The node, or None if the tree has no such id.
        """
        visited: list[str] = []
        self.last_visited_ids = visited
        if self._children is None:
            return None

        found = None
        stack = list(reversed(self._children))
        while stack:
            node = stack.pop()
            visited.append(node.id or '(no id)')
            if node.id == node_id:
                found = node
                break
            stack.extend(reversed(await self._safe_children(node)))

        logger.debug("find_and_expand_visited", node_id=node_id, visited=visited)
        return found

    async def collect_all(self) -> list[TreeNode]:
        """Return every node of the tree in depth-first order, loading as needed."""
        if self._children is None:
            return []
        result: list[TreeNode] = []
        stack = list(reversed(self._children))
        while stack:
            node = stack.pop()
            result.append(node)
            stack.extend(reversed(await self._safe_children(node)))
        return result

    async def find_closest_ancestor_by_id_prefix(self, node_id: str) -> TreeNode | None:
        """Find the node with the longest id that is a prefix of node_id.

        Used when node_id itself is gone (deleted or renamed since it was
        saved). Among equally long matches the first in depth-first order
        wins.

        Example:
            With nodes 'a/b' and 'a/x' in the tree, 'a/b/c' resolves to 'a/b'.
        """
        best: TreeNode | None = None
        for node in await self.collect_all():
            if not node.id or not node_id.startswith(node.id):
                continue
            if best is None or len(node.id) > len(best.id):
                best = node
        return best

    @staticmethod
    async def _safe_children(node: TreeNode) -> list[TreeNode]:
        try:
            return await node.get_children()
        except Exception:
            logger.warning("children_load_failed", node_id=node.id, exc_info=True)
            return []
