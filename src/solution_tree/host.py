# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Interfaces of the collaborators the tree engine talks to.

The engine never imports a UI toolkit. A host adapter implements
:class:`TreeHost`; solution discovery implements :class:`SourceFinder`;
persistence implements :class:`StateStore`. Node factories and child
loaders are plain async callables.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Protocol,
    Sequence,
    runtime_checkable,
)

if TYPE_CHECKING:
    from .node import TreeNode


@dataclass(frozen=True)
class SourceDescriptor:
    """A solution file and the workspace folder that contains it."""

    primary_file: str
    root_folder: str


NodeFactory = Callable[[SourceDescriptor], Awaitable["TreeNode"]]
"""Builds the root node of one solution (may parse files, out of scope here)."""

ChildLoader = Callable[["TreeNode"], Awaitable[Sequence["TreeNode"]]]
"""Produces the children of a node the first time they are needed."""


@runtime_checkable
class SourceFinder(Protocol):
    """Enumerates the solutions of the current workspace."""

    @property
    def has_workspace_roots(self) -> bool: ...

    async def find_sources(self) -> Sequence[SourceDescriptor]: ...

    def is_workspace_solution_file(self, path: str) -> bool: ...


@runtime_checkable
class StateStore(Protocol):
    """Key/value persistence for expansion and focus state."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


@runtime_checkable
class TreeHost(Protocol):
    """The part of the host tree view the engine drives."""

    @property
    def selection(self) -> Sequence[TreeNode]: ...

    async def reveal(self, node: TreeNode, *, select: bool, focus: bool) -> None: ...

    def notify_changed(self, node: TreeNode | None) -> None: ...

    def show_indicator(self, text: str) -> None: ...

    def hide_indicator(self) -> None: ...
