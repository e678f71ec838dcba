# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""ExpansionRestorer - replay saved expansion and focus onto a rebuilt tree.

A restore session walks the fresh roots breadth-first and expands only the
nodes whose ids were saved as expanded, so the work grows with the number
of expanded nodes rather than with the size of the tree. Nodes are handled
in fixed-size batches that run concurrently; control goes back to the event
loop between batches.

Session phases::

    IDLE -> LOADING_QUEUE -> EXPANDING_BATCH -> VALIDATING -> RESTORING_FOCUS -> IDLE

Only one session runs at a time. Calling restore() while a session is
active waits for that session and returns it instead of starting another.
A session that notices its collection was reset stops early and finishes
without error; its results are simply no longer visible.

Example:
    >>> restorer = ExpansionRestorer(collection, state, host)
    >>> session = await restorer.restore()
    >>> session.expanded
    3
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine

from .collection import TreeCollection
from .config import TreeSettings, get_settings
from .host import TreeHost
from .logging import get_logger
from .node import CollapseState, TreeNode, find_duplicate_ids
from .state import ExpansionState

logger = get_logger(__name__)

RESTORE_INDICATOR_TEXT = 'Restoring solution tree...'


class RestorePhase(str, Enum):
    IDLE = 'idle'
    LOADING_QUEUE = 'loading_queue'
    EXPANDING_BATCH = 'expanding_batch'
    VALIDATING = 'validating'
    RESTORING_FOCUS = 'restoring_focus'


class WorkingIndicator:
    """Shared holder of the host's single working indicator.

    Every user acquires a token and releases it when done. The host
    indicator is hidden only when the last token is released; until then
    it shows the text of the most recent holder still active.

    Example:
        >>> token = indicator.acquire('Restoring solution tree...')
        >>> indicator.visible
        True
        >>> indicator.release(token)
    """

    def __init__(self, host: TreeHost) -> None:
        self.host = host
        self._holders: list[tuple[int, str]] = []
        self._counter = 0

    @property
    def visible(self) -> bool:
        return bool(self._holders)

    @property
    def text(self) -> str | None:
        return self._holders[-1][1] if self._holders else None

    def acquire(self, text: str) -> int:
        self._counter += 1
        self._holders.append((self._counter, text))
        self.host.show_indicator(text)
        return self._counter

    def release(self, token: int) -> None:
        """Drop token; unknown or already released tokens are ignored."""
        for index, (held, _) in enumerate(self._holders):
            if held == token:
                was_top = index == len(self._holders) - 1
                del self._holders[index]
                break
        else:
            return
        if not self._holders:
            self.host.hide_indicator()
        elif was_top:
            self.host.show_indicator(self._holders[-1][1])


@dataclass
class RestoreSession:
    """One run of replaying saved state onto a freshly built tree.

    Attributes:
        number: Sequence number of the session within its restorer.
        generation: Collection generation the session started against.
        phase: Current phase; IDLE once the session has finished.
        expanded: Nodes expanded by this session.
        failures: Branches abandoned because their children failed to load.
        stale: True if the collection was reset while the session ran.
        focused: The node revealed for the saved focus, if any.
        done: Resolved with the session itself when it reaches IDLE.
    """

    number: int
    generation: int
    done: asyncio.Future[RestoreSession]
    phase: RestorePhase = RestorePhase.IDLE
    expanded: int = 0
    failures: int = 0
    stale: bool = False
    focused: TreeNode | None = field(default=None, repr=False)


class ExpansionRestorer:
    """Reproduce expanded nodes and the last focus after a rebuild."""

    def __init__(
        self,
        collection: TreeCollection,
        state: ExpansionState,
        host: TreeHost,
        settings: TreeSettings | None = None,
        indicator: WorkingIndicator | None = None,
    ) -> None:
        self.collection = collection
        self.state = state
        self.host = host
        self.settings = settings or get_settings()
        self.indicator = indicator if indicator is not None else WorkingIndicator(host)
        self._session: RestoreSession | None = None
        self._counter = 0
        self._restoring_focus = False
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def active_session(self) -> RestoreSession | None:
        return self._session

    @property
    def is_revealing(self) -> bool:
        """True while focus is being restored; selection events then are not user driven."""
        return self._restoring_focus

    # ==================== Sessions ====================

    async def restore(self) -> RestoreSession:
        """Run a restore session, or join the one already running.

        Never raises for failures inside the session: they are logged and
        the session still reaches IDLE.

        Returns:
            The session that ran (shared by every caller that joined it).
        """
        active = self._session
        if active is not None:
            logger.debug("restore_joined", session=active.number)
            return await asyncio.shield(active.done)

        self._counter += 1
        session = RestoreSession(
            number=self._counter,
            generation=self.collection.generation,
            done=asyncio.get_running_loop().create_future(),
        )
        self._session = session
        try:
            await self._run(session)
        except Exception:
            logger.exception("restore_failed", session=session.number)
        finally:
            session.phase = RestorePhase.IDLE
            self._session = None
            if not session.done.done():
                session.done.set_result(session)
        logger.debug(
            "restore_finished",
            session=session.number,
            expanded=session.expanded,
            failures=session.failures,
            stale=session.stale,
        )
        return session

    def schedule(self, delay: float | None = None) -> asyncio.Task[RestoreSession]:
        """Start a session in the background after delay seconds.

        If another session is still running when the delay expires, the new
        one starts after it finishes.
        """
        if delay is None:
            delay = self.settings.restore_delay_seconds

        async def _delayed() -> RestoreSession:
            await asyncio.sleep(delay)
            await self.wait_for_session()
            return await self.restore()

        return self._spawn(_delayed())

    async def wait_for_session(self) -> None:
        """Wait until no session is active."""
        while self._session is not None:
            await asyncio.shield(self._session.done)

    async def wait_idle(self) -> None:
        """Wait for scheduled sessions and the active one to finish."""
        while self._tasks or self._session is not None:
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)
            await self.wait_for_session()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _is_stale(self, session: RestoreSession) -> bool:
        if self.collection.generation != session.generation:
            session.stale = True
        return session.stale

    async def _run(self, session: RestoreSession) -> None:
        expanded_ids = set(self.state.expanded_ids)
        if not expanded_ids:
            logger.debug("restore_nothing_expanded", session=session.number)
            session.phase = RestorePhase.RESTORING_FOCUS
            session.focused = await self.restore_focus()
            return

        hide_indicator = self._show_indicator(RESTORE_INDICATOR_TEXT)
        try:
            session.phase = RestorePhase.LOADING_QUEUE
            queue: deque[tuple[TreeNode, int]] = deque(
                (root, 0) for root in self.collection.items
            )

            session.phase = RestorePhase.EXPANDING_BATCH
            while queue:
                if self._is_stale(session):
                    logger.info("restore_abandoned_stale_tree", session=session.number)
                    return
                width = min(self.settings.batch_size, len(queue))
                batch = [queue.popleft() for _ in range(width)]
                results = await asyncio.gather(
                    *(self._expand(session, node, depth, expanded_ids) for node, depth in batch)
                )
                for children in results:
                    queue.extend(children)
                if queue:
                    await asyncio.sleep(self.settings.yield_seconds)

            if self._is_stale(session):
                logger.info("restore_abandoned_stale_tree", session=session.number)
                return

            session.phase = RestorePhase.VALIDATING
            self.validate()

            session.phase = RestorePhase.RESTORING_FOCUS
            session.focused = await self.restore_focus()
        finally:
            await hide_indicator()

    async def _expand(
        self,
        session: RestoreSession,
        node: TreeNode,
        depth: int,
        expanded_ids: set[str],
    ) -> list[tuple[TreeNode, int]]:
        """Expand node if it was saved as expanded; return its children to visit next."""
        if node.id not in expanded_ids or node.collapse_state is CollapseState.LEAF:
            return []
        node.collapse_state = CollapseState.EXPANDED
        try:
            children = await node.get_children()
        except Exception:
            session.failures += 1
            logger.warning(
                "restore_expand_failed",
                session=session.number,
                node_id=node.id,
                exc_info=True,
            )
            return []
        session.expanded += 1
        logger.debug("restore_expanded", session=session.number, node_id=node.id)
        if depth + 1 >= self.settings.max_depth:
            logger.debug("restore_depth_limit", node_id=node.id, depth=depth)
            return []
        return [(child, depth + 1) for child in children]

    def validate(self) -> dict[str, int]:
        """Check that loaded node ids are unique; duplicates are logged, not raised."""
        duplicates = find_duplicate_ids(self.collection.items)
        if duplicates:
            logger.warning("duplicate_node_ids", duplicates=duplicates)
        return duplicates

    # ==================== Focus ====================

    async def restore_focus(self) -> TreeNode | None:
        """Reveal the last focused node, or its closest surviving ancestor.

        The reveal does not change the selection. While it runs,
        is_revealing is True so selection callbacks can tell it apart from
        a user action. A second call while one is running returns None.

        Returns:
            The revealed node, or None.
        """
        if self._restoring_focus:
            return None
        self._restoring_focus = True
        try:
            last_id = self.state.last_focused_id
            logger.debug("restore_focus_started", node_id=last_id)
            if not last_id:
                return None

            generation = self.collection.generation
            await asyncio.sleep(self.settings.reveal_delay_seconds)
            node = await self.collection.find_and_expand_by_id(last_id)
            logger.debug("restore_focus_lookup", node_id=last_id, found=node is not None)
            if node is None:
                node = await self.collection.find_closest_ancestor_by_id_prefix(last_id)
                logger.debug(
                    "restore_focus_fallback",
                    node_id=last_id,
                    ancestor_id=node.id if node is not None else None,
                )
            if node is None:
                logger.info("restore_focus_not_found", node_id=last_id)
                return None
            if self.collection.generation != generation:
                return None

            await self.host.reveal(node, select=False, focus=False)
            logger.debug("restore_focus_revealed", node_id=node.id)
            return node
        except Exception:
            logger.exception("restore_focus_failed")
            return None
        finally:
            self._restoring_focus = False

    # ==================== Indicator ====================

    def _show_indicator(self, text: str) -> Callable[[], Awaitable[None]]:
        """Show the working indicator; return a coroutine function that hides it.

        The indicator stays visible for at least indicator_min_seconds.
        """
        loop = asyncio.get_running_loop()
        token = self.indicator.acquire(text)
        started = loop.time()
        finished = False

        async def hide() -> None:
            nonlocal finished
            if finished:
                return
            finished = True
            remaining = self.settings.indicator_min_seconds - (loop.time() - started)
            try:
                if remaining > 0:
                    await asyncio.sleep(remaining)
            finally:
                self.indicator.release(token)

        return hide
