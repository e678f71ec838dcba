# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""SolutionTreeProvider - the tree data provider the host view talks to.

The provider owns the TreeCollection and the ExpansionRestorer. It builds
the roots on demand (once, however many callers ask at the same time),
rebuilds them when solutions change, and feeds the host's expand, collapse
and selection callbacks into the persisted ExpansionState.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Coroutine, Sequence

from .collection import TreeCollection
from .config import TreeSettings, get_settings
from .events import EventAggregator, EventType, FileEvent, SolutionEvent, Subscription
from .exceptions import SourceLoadError
from .host import NodeFactory, SourceFinder, TreeHost
from .logging import get_logger
from .node import CollapseState, TreeNode
from .restorer import ExpansionRestorer
from .state import ExpansionState

logger = get_logger(__name__)

MULTIPLE_SELECTION_CONTEXT = 'multipleSelection'
LOCATING_INDICATOR_TEXT = 'Locating active document...'


@dataclass(frozen=True)
class TreeItemView:
    """What the host needs to render one node."""

    id: str
    label: str
    collapse_state: CollapseState
    path: str | None = None
    context_value: str | None = None


class SolutionTreeProvider:
    """Expose solution nodes to a host tree view and keep their state across rebuilds.

    Args:
        finder: Enumerates the workspace's solutions.
        factory: Builds the root node of one solution.
        host: The host tree view adapter.
        state: Saved expansion and focus state.
        collection: Root holder; a new one is created if omitted.
        events: Aggregator to subscribe to on register().
        settings: Engine settings; the process-wide ones if omitted.

    Example:
        >>> provider = SolutionTreeProvider(finder, factory, host, state, events=events)
        >>> provider.register()
        >>> roots = await provider.get_children()
    """

    def __init__(
        self,
        finder: SourceFinder,
        factory: NodeFactory,
        host: TreeHost,
        state: ExpansionState,
        collection: TreeCollection | None = None,
        events: EventAggregator | None = None,
        settings: TreeSettings | None = None,
    ) -> None:
        self.finder = finder
        self.factory = factory
        self.host = host
        self.state = state
        self.collection = collection if collection is not None else TreeCollection()
        self.events = events
        self.settings = settings or get_settings()
        self.restorer = ExpansionRestorer(self.collection, state, host, self.settings)
        self.selection_context: str | None = None
        self.registered = False
        self._pending_build: asyncio.Task[list[TreeNode]] | None = None
        self._subscriptions: list[Subscription] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    # ==================== Lifecycle ====================

    def register(self) -> None:
        """Start listening to solution and file events.

        Does nothing when show_mode is 'none' or when already registered.
        """
        if self.registered:
            return
        if self.settings.show_mode == 'none':
            logger.info("provider_hidden", show_mode=self.settings.show_mode)
            return
        if self.events is not None:
            self._subscriptions = [
                self.events.subscribe(EventType.SOLUTION, self.on_solution_event),
                self.events.subscribe(EventType.FILE, self.on_file_event),
            ]
        self.registered = True

    def unregister(self) -> None:
        """Drop the tree and stop listening to events."""
        self._invalidate()
        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions = []
        self.registered = False

    async def wait_idle(self) -> None:
        """Wait for the pending build, restore sessions and background selections."""
        while True:
            if self._pending_build is not None:
                await asyncio.gather(self._pending_build, return_exceptions=True)
            await self.restorer.wait_idle()
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)
                continue
            if self._pending_build is None or self._pending_build.done():
                return

    # ==================== Host queries ====================

    async def get_children(self, node: TreeNode | None = None) -> list[TreeNode]:
        """Return the children of node, or the roots when node is None.

        The first request for roots on an unbuilt collection starts a build
        pass; requests arriving while it runs wait for the same pass. Saved
        expansion is replayed in the background once the roots are back.

        Raises:
            Exception: Whatever the source finder raised while enumerating
                solutions.
        """
        if not self.finder.has_workspace_roots:
            logger.info("no_workspace_roots")
            return []

        if node is not None:
            return await node.get_children()

        if self._pending_build is not None:
            return list(await asyncio.shield(self._pending_build))

        if self.collection.has_children:
            return self.collection.items

        self.collection.reset()
        self.collection.load_errors = []
        build = asyncio.get_running_loop().create_task(
            self._build(self.collection.generation)
        )
        self._pending_build = build
        build.add_done_callback(self._clear_pending_build)
        return list(await asyncio.shield(build))

    def get_parent(self, node: TreeNode) -> TreeNode | None:
        return node.parent

    def get_tree_item(self, node: TreeNode) -> TreeItemView:
        return TreeItemView(
            id=node.id,
            label=node.label,
            collapse_state=node.collapse_state,
            path=node.path,
            context_value=node.context_value,
        )

    def get_selected_items(self) -> list[TreeNode]:
        return list(self.host.selection)

    def refresh(self, node: TreeNode | None = None) -> None:
        """Tell the host node changed; with no node, drop the whole tree first."""
        if node is None:
            self._invalidate()
        self.host.notify_changed(node)

    # ==================== Selection ====================

    async def select_by_path(self, path: str) -> TreeNode | None:
        """Select and reveal the first node whose resource is path.

        Roots are searched in order, each depth-first. Nothing happens while
        the tree is unbuilt or empty.

        Returns:
            The selected node, or None.
        """
        if not self.collection.has_children or len(self.collection) == 0:
            return None
        for root in self.collection.items:
            found = await root.search(path)
            if found is not None:
                await self.host.reveal(found, select=True, focus=True)
                return found
        return None

    async def select_active_document(self, path: str) -> TreeNode | None:
        """Locate the active editor's file in the tree; failures are only logged."""
        token = self.restorer.indicator.acquire(LOCATING_INDICATOR_TEXT)
        try:
            return await self.select_by_path(path)
        except Exception:
            logger.exception("select_active_document_failed", path=path)
            return None
        finally:
            self.restorer.indicator.release(token)

    async def focus(self) -> None:
        """Move keyboard focus to the current selection without changing it."""
        selection = self.host.selection
        if selection:
            await self.host.reveal(selection[0], select=False, focus=True)

    # ==================== Event handlers ====================

    def on_solution_event(self, event: SolutionEvent) -> None:
        logger.info("solution_changed", path=event.path)
        self.refresh()

    def on_file_event(self, event: FileEvent) -> None:
        if self.finder.is_workspace_solution_file(event.path):
            logger.info("solution_file_changed", path=event.path, change=event.change_type.value)
            self.refresh()

    def on_active_editor_changed(self, path: str | None, scheme: str = 'file') -> None:
        if not self.settings.track_active_item:
            return
        if not path or scheme != 'file':
            return
        self._spawn(self.select_active_document(path))

    # ==================== Host callbacks ====================

    def on_expand(self, node: TreeNode) -> None:
        if node.collapse_state is not CollapseState.LEAF:
            node.collapse_state = CollapseState.EXPANDED
        if node.id:
            self.state.add_expanded(node.id)

    def on_collapse(self, node: TreeNode) -> None:
        if node.collapse_state is CollapseState.EXPANDED:
            node.collapse_state = CollapseState.COLLAPSED
        if node.id:
            self.state.remove_expanded(node.id)

    def on_selection_changed(self, selection: Sequence[TreeNode]) -> None:
        """Track selection context and remember the focused node.

        Selections caused by focus restoration are not saved, so the saved
        id keeps pointing at what the user picked.
        """
        if len(selection) == 1:
            self.selection_context = selection[0].context_value
        elif len(selection) > 1:
            self.selection_context = MULTIPLE_SELECTION_CONTEXT
        else:
            self.selection_context = None

        if self.restorer.is_revealing or not selection or not selection[0].id:
            return
        self.state.set_last_focused(selection[0].id)
        logger.debug("last_focused_saved", node_id=selection[0].id)

    def on_visibility_changed(self, visible: bool) -> None:
        if not visible:
            return
        logger.debug("tree_visible")
        self._spawn(self.restorer.restore_focus())

    # ==================== Internals ====================

    def _invalidate(self) -> None:
        self.collection.reset()
        # a build still running belongs to the discarded generation
        self._pending_build = None

    def _clear_pending_build(self, task: asyncio.Task[list[TreeNode]]) -> None:
        if self._pending_build is task:
            self._pending_build = None

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _build(self, generation: int) -> list[TreeNode]:
        """Enumerate solutions and create one root per solution.

        Stops early, returning no roots, once the collection moves past
        generation.
        """
        logger.debug("build_started", generation=generation)

        sources = list(await self.finder.find_sources())
        if self.collection.generation != generation:
            logger.info("build_superseded", generation=generation)
            return []
        if not sources:
            logger.info("no_solutions_found")
            self.collection.mark_built()
            return []

        for descriptor in sources:
            error: SourceLoadError | None = None
            try:
                await self.collection.add_root(descriptor, self.factory, generation)
            except SourceLoadError as exc:
                logger.warning(
                    "solution_load_failed",
                    path=descriptor.primary_file,
                    error=repr(exc.__cause__),
                )
                error = exc
            if self.collection.generation != generation:
                logger.info("build_superseded", generation=generation)
                return []
            if error is not None:
                self.collection.load_errors.append(error)

        self.collection.mark_built()
        logger.info(
            "tree_built",
            roots=len(self.collection),
            failures=len(self.collection.load_errors),
        )
        self.restorer.schedule()
        return self.collection.items
