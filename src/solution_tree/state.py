# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Expansion and focus state that outlives tree rebuilds."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable

from .host import StateStore
from .logging import get_logger

logger = get_logger(__name__)

EXPANDED_IDS_KEY = 'solution_tree.expanded_ids'
LAST_FOCUSED_KEY = 'solution_tree.last_focused_id'


class MemoryStateStore:
    """StateStore kept in a dict. Useful for tests and ephemeral sessions."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = dict(data or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value


class JsonFileStateStore:
    """StateStore persisted as a single JSON object.

    The file is read lazily on first access and rewritten on every set().
    A missing or unreadable file starts an empty store.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is None:
            try:
                data = json.loads(self.path.read_text(encoding='utf-8'))
            except FileNotFoundError:
                data = {}
            except (OSError, ValueError):
                logger.warning("state_file_unreadable", path=str(self.path), exc_info=True)
                data = {}
            self._data = data if isinstance(data, dict) else {}
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding='utf-8')


class ExpansionState:
    """Which node ids are expanded and which one had focus last.

    Membership is by node id, so the state stays valid after the tree is
    rebuilt with new node instances. Every mutation is written to the
    store straight away.

    Example:
        >>> state = ExpansionState.load(MemoryStateStore())
        >>> state.add_expanded('App.sln')
        >>> state.is_expanded('App.sln')
        True
    """

    def __init__(
        self,
        store: StateStore,
        expanded_ids: Iterable[str] = (),
        last_focused_id: str | None = None,
    ) -> None:
        self.store = store
        self.expanded_ids: set[str] = set(expanded_ids)
        self.last_focused_id = last_focused_id

    @classmethod
    def load(cls, store: StateStore) -> ExpansionState:
        """Read the saved state from store (missing keys mean empty state)."""
        saved = store.get(EXPANDED_IDS_KEY, []) or []
        if not isinstance(saved, (list, tuple, set)):
            logger.warning(
                "expanded_ids_malformed",
                key=EXPANDED_IDS_KEY,
                value_type=type(saved).__name__,
            )
            saved = []
        last_focused = store.get(LAST_FOCUSED_KEY) or None
        state = cls(store, (str(i) for i in saved), last_focused)
        logger.debug(
            "expansion_state_loaded",
            expanded=len(state.expanded_ids),
            last_focused_id=last_focused,
        )
        return state

    def is_expanded(self, node_id: str) -> bool:
        return node_id in self.expanded_ids

    def add_expanded(self, node_id: str) -> None:
        self.expanded_ids.add(node_id)
        self._save_expanded()

    def remove_expanded(self, node_id: str) -> None:
        self.expanded_ids.discard(node_id)
        self._save_expanded()

    def set_last_focused(self, node_id: str | None) -> None:
        self.last_focused_id = node_id
        self.store.set(LAST_FOCUSED_KEY, node_id)

    def _save_expanded(self) -> None:
        self.store.set(EXPANDED_IDS_KEY, sorted(self.expanded_ids))
