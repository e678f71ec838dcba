# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Fakes for the collaborators of the solution tree engine."""

from __future__ import annotations

import asyncio
import posixpath
from typing import Any, Callable

import pytest

from solution_tree import (
    ExpansionState,
    MemoryStateStore,
    SourceDescriptor,
    TreeNode,
    TreeSettings,
    make_node_id,
)

# A tree layout maps a child name to either None (a file) or a nested layout (a folder).
Layout = dict[str, Any]


class TreeFactory:
    """Builds solution roots from nested dict layouts, recording every load."""

    def __init__(self, trees: dict[str, Layout], fail_roots: set[str] = (), fail_loads: set[str] = ()):
        self.trees = trees
        self.fail_roots = set(fail_roots)
        self.fail_loads = set(fail_loads)
        self.loads: list[str] = []
        self.roots_created = 0
        self.on_load: Callable[[TreeNode], None] | None = None

    async def __call__(self, descriptor: SourceDescriptor) -> TreeNode:
        await asyncio.sleep(0)
        name = posixpath.basename(descriptor.primary_file)
        if name in self.fail_roots:
            raise ValueError(f"cannot parse {name}")
        self.roots_created += 1
        return TreeNode(
            name,
            path=descriptor.primary_file,
            loader=self._loader(self.trees[name], descriptor.root_folder),
            context_value='solution',
        )

    def _loader(self, layout: Layout, root_folder: str):
        async def load(node: TreeNode) -> list[TreeNode]:
            await asyncio.sleep(0)
            self.loads.append(node.id)
            if self.on_load is not None:
                self.on_load(node)
            if node.id in self.fail_loads:
                raise OSError(f"cannot read {node.id}")
            children = []
            for name, sub in layout.items():
                node_id = make_node_id(node.id, name)
                path = posixpath.join(root_folder, *node_id.split('/')[1:])
                if sub is None:
                    children.append(TreeNode(node_id, path=path, context_value='file'))
                else:
                    children.append(
                        TreeNode(
                            node_id,
                            path=path,
                            loader=self._loader(sub, root_folder),
                            context_value='folder',
                        )
                    )
            return children

        return load


class FakeFinder:
    """SourceFinder over a fixed list of solution files."""

    def __init__(self, solutions: list[str], root: str = '/ws', has_workspace_roots: bool = True):
        self.solutions = solutions
        self.root = root
        self.has_workspace_roots = has_workspace_roots
        self.calls = 0
        self.error: Exception | None = None

    async def find_sources(self) -> list[SourceDescriptor]:
        self.calls += 1
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return [
            SourceDescriptor(posixpath.join(self.root, name), self.root)
            for name in self.solutions
        ]

    def is_workspace_solution_file(self, path: str) -> bool:
        return path.endswith('.sln') and posixpath.basename(path) in self.solutions


class FakeHost:
    """TreeHost recording every call made by the engine."""

    def __init__(self) -> None:
        self.selection: list[TreeNode] = []
        self.reveals: list[tuple[TreeNode, bool, bool]] = []
        self.notified: list[TreeNode | None] = []
        self.indicator: list[str] = []
        self.on_reveal: Callable[[TreeNode], None] | None = None
        self.reveal_error: Exception | None = None

    async def reveal(self, node: TreeNode, *, select: bool, focus: bool) -> None:
        await asyncio.sleep(0)
        if self.reveal_error is not None:
            raise self.reveal_error
        self.reveals.append((node, select, focus))
        if self.on_reveal is not None:
            self.on_reveal(node)

    def notify_changed(self, node: TreeNode | None) -> None:
        self.notified.append(node)

    def show_indicator(self, text: str) -> None:
        self.indicator.append(f"show:{text}")

    def hide_indicator(self) -> None:
        self.indicator.append("hide")


SAMPLE_TREE: Layout = {
    'App': {
        'Program.cs': None,
        'Models': {'User.cs': None, 'Order.cs': None},
    },
    'Lib': {
        'Util.cs': None,
        'Deep': {'Deeper': {'Deepest.cs': None}},
    },
    'README.md': None,
}


@pytest.fixture
def settings() -> TreeSettings:
    return TreeSettings(
        restore_delay_seconds=0,
        reveal_delay_seconds=0,
        indicator_min_seconds=0,
        yield_seconds=0,
    )


@pytest.fixture
def store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def state(store) -> ExpansionState:
    return ExpansionState.load(store)


@pytest.fixture
def factory() -> TreeFactory:
    return TreeFactory({'App.sln': SAMPLE_TREE, 'Other.sln': {'Tool': {'main.py': None}}})


@pytest.fixture
def finder() -> FakeFinder:
    return FakeFinder(['App.sln'])


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()
