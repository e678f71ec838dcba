# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Tests for SolutionTreeProvider."""

import asyncio

import pytest

from solution_tree import (
    CollapseState,
    EventAggregator,
    EventType,
    ExpansionState,
    FileEvent,
    SolutionEvent,
    SolutionTreeProvider,
    TreeItemView,
)
from solution_tree.provider import LOCATING_INDICATOR_TEXT, MULTIPLE_SELECTION_CONTEXT
from solution_tree.restorer import RESTORE_INDICATOR_TEXT
from solution_tree.state import EXPANDED_IDS_KEY, LAST_FOCUSED_KEY


@pytest.fixture
def events():
    return EventAggregator()


@pytest.fixture
def provider(finder, factory, host, state, events, settings):
    return SolutionTreeProvider(finder, factory, host, state, events=events, settings=settings)


class TestGetChildren:
    """Tests for building and returning nodes."""

    @pytest.mark.asyncio
    async def test_builds_roots_on_first_request(self, provider, finder):
        """Test the first request builds the roots."""
        roots = await provider.get_children()
        assert [n.id for n in roots] == ['App.sln']
        assert finder.calls == 1
        assert provider.collection.has_children

    @pytest.mark.asyncio
    async def test_single_flight(self, provider, finder, factory):
        """Test concurrent requests share one build pass."""
        results = await asyncio.gather(*(provider.get_children() for _ in range(3)))
        assert finder.calls == 1
        assert factory.roots_created == 1
        assert results[0][0] is results[1][0] is results[2][0]

    @pytest.mark.asyncio
    async def test_built_collection_is_reused(self, provider, finder):
        """Test later requests return the built roots without enumerating."""
        first = await provider.get_children()
        second = await provider.get_children()
        assert first[0] is second[0]
        assert finder.calls == 1

    @pytest.mark.asyncio
    async def test_no_workspace_roots(self, provider, finder):
        """Test nothing is enumerated without workspace roots."""
        finder.has_workspace_roots = False
        assert await provider.get_children() == []
        assert finder.calls == 0

    @pytest.mark.asyncio
    async def test_no_solutions_is_built_empty(self, provider, finder):
        """Test an empty enumeration leaves a built, empty collection."""
        finder.solutions = []
        assert await provider.get_children() == []
        assert await provider.get_children() == []
        assert finder.calls == 1
        assert provider.collection.has_children is True

    @pytest.mark.asyncio
    async def test_children_of_node(self, provider):
        """Test get_children(node) delegates to the node."""
        (root,) = await provider.get_children()
        children = await provider.get_children(root)
        assert [n.label for n in children] == ['App', 'Lib', 'README.md']
        assert provider.get_parent(children[0]) is root
        assert provider.get_parent(root) is None

    @pytest.mark.asyncio
    async def test_failing_root_does_not_abort_build(self, provider, finder, factory):
        """Test one failing solution is recorded while the others load."""
        finder.solutions = ['App.sln', 'Other.sln']
        factory.fail_roots.add('App.sln')
        roots = await provider.get_children()
        assert [n.id for n in roots] == ['Other.sln']
        assert len(provider.collection.load_errors) == 1
        assert provider.collection.load_errors[0].descriptor.primary_file == '/ws/App.sln'

    @pytest.mark.asyncio
    async def test_enumeration_failure_propagates(self, provider, finder):
        """Test a failing enumeration reaches the caller and allows a retry."""
        finder.error = OSError("workspace gone")
        with pytest.raises(OSError, match="workspace gone"):
            await provider.get_children()
        assert provider.collection.has_children is False

        finder.error = None
        await asyncio.sleep(0)
        assert len(await provider.get_children()) == 1

    @pytest.mark.asyncio
    async def test_reset_during_build_discards_stale_roots(self, provider, finder, factory):
        """Test a build superseded by a reset leaves the new generation unbuilt."""
        finder.solutions = ['App.sln', 'Other.sln']
        build = asyncio.create_task(provider.get_children())
        await asyncio.sleep(0)
        provider.refresh()
        stale = await build
        assert stale == []
        assert provider.collection.has_children is False

        roots = await provider.get_children()
        assert [n.id for n in roots] == ['App.sln', 'Other.sln']

    @pytest.mark.asyncio
    async def test_get_tree_item(self, provider):
        """Test the host projection of a node."""
        (root,) = await provider.get_children()
        item = provider.get_tree_item(root)
        assert item == TreeItemView(
            id='App.sln',
            label='App.sln',
            collapse_state=CollapseState.COLLAPSED,
            path='/ws/App.sln',
            context_value='solution',
        )


class TestRefreshAndEvents:
    """Tests for invalidation through refresh and events."""

    @pytest.mark.asyncio
    async def test_refresh_all_resets(self, provider, host):
        """Test refresh() drops the tree and notifies for everything."""
        await provider.get_children()
        provider.refresh()
        assert provider.collection.has_children is False
        assert host.notified == [None]

    @pytest.mark.asyncio
    async def test_refresh_node_keeps_tree(self, provider, host):
        """Test refresh(node) only notifies."""
        (root,) = await provider.get_children()
        provider.refresh(root)
        assert provider.collection.has_children is True
        assert host.notified == [root]

    @pytest.mark.asyncio
    async def test_solution_event_rebuilds(self, provider, events, host, finder):
        """Test a solution event resets and refreshes."""
        provider.register()
        first = await provider.get_children()
        events.publish(SolutionEvent('/ws/App.sln'))
        assert host.notified == [None]
        second = await provider.get_children()
        assert second[0] is not first[0]
        assert finder.calls == 2

    @pytest.mark.asyncio
    async def test_file_event_filtered(self, provider, events, host):
        """Test only workspace solution files trigger a rebuild."""
        provider.register()
        await provider.get_children()

        events.publish(FileEvent('/ws/App/Program.cs'))
        assert provider.collection.has_children is True
        assert host.notified == []

        events.publish(FileEvent('/ws/App.sln'))
        assert provider.collection.has_children is False
        assert host.notified == [None]

    def test_register_twice_subscribes_once(self, provider, events):
        """Test register() is idempotent."""
        provider.register()
        provider.register()
        assert events.subscriber_count(EventType.SOLUTION) == 1
        assert events.subscriber_count(EventType.FILE) == 1

    def test_show_mode_none_does_not_register(self, finder, factory, host, state, events, settings):
        """Test a hidden view subscribes to nothing."""
        settings.show_mode = 'none'
        provider = SolutionTreeProvider(finder, factory, host, state, events=events, settings=settings)
        provider.register()
        assert provider.registered is False
        assert events.subscriber_count(EventType.SOLUTION) == 0

    @pytest.mark.asyncio
    async def test_unregister(self, provider, events):
        """Test unregister() drops the tree and the subscriptions."""
        provider.register()
        await provider.get_children()
        provider.unregister()
        assert provider.collection.has_children is False
        assert events.subscriber_count(EventType.FILE) == 0
        assert provider.registered is False


class TestHostCallbacks:
    """Tests for expand/collapse/selection tracking."""

    @pytest.mark.asyncio
    async def test_expand_and_collapse_persist(self, provider, store):
        """Test expand and collapse update and persist the state."""
        (root,) = await provider.get_children()
        provider.on_expand(root)
        assert root.is_expanded
        assert store.get(EXPANDED_IDS_KEY) == ['App.sln']

        provider.on_collapse(root)
        assert root.collapse_state is CollapseState.COLLAPSED
        assert store.get(EXPANDED_IDS_KEY) == []

    @pytest.mark.asyncio
    async def test_selection_saves_focus_and_context(self, provider, store):
        """Test selection updates the focus id and the selection context."""
        (root,) = await provider.get_children()
        app, lib, readme = await root.get_children()

        provider.on_selection_changed([readme])
        assert store.get(LAST_FOCUSED_KEY) == 'App.sln/README.md'
        assert provider.selection_context == 'file'

        provider.on_selection_changed([app, lib])
        assert provider.selection_context == MULTIPLE_SELECTION_CONTEXT
        assert store.get(LAST_FOCUSED_KEY) == 'App.sln/App'

        provider.on_selection_changed([])
        assert provider.selection_context is None
        assert store.get(LAST_FOCUSED_KEY) == 'App.sln/App'

    @pytest.mark.asyncio
    async def test_focus_restore_does_not_overwrite_saved_focus(self, provider, state, host, store):
        """Test selection events during a focus restore are not saved."""
        state.set_last_focused('App.sln/App/Deleted.cs')
        host.on_reveal = lambda node: provider.on_selection_changed([node])
        await provider.get_children()
        await provider.wait_idle()

        assert host.reveals[0][0].id == 'App.sln/App'
        assert store.get(LAST_FOCUSED_KEY) == 'App.sln/App/Deleted.cs'

    @pytest.mark.asyncio
    async def test_visibility_restores_focus(self, provider, state, host):
        """Test becoming visible reveals the saved focus."""
        await provider.get_children()
        await provider.wait_idle()
        state.set_last_focused('App.sln/Lib/Util.cs')

        provider.on_visibility_changed(False)
        await provider.wait_idle()
        assert host.reveals == []

        provider.on_visibility_changed(True)
        await provider.wait_idle()
        assert host.reveals[0][0].id == 'App.sln/Lib/Util.cs'

    @pytest.mark.asyncio
    async def test_focus_reveals_selection(self, provider, host):
        """Test focus() reveals the current selection without selecting."""
        (root,) = await provider.get_children()
        await provider.focus()
        assert host.reveals == []
        host.selection = [root]
        assert provider.get_selected_items() == [root]
        await provider.focus()
        assert host.reveals == [(root, False, True)]


class TestSelectByPath:
    """Tests for locating files in the tree."""

    @pytest.mark.asyncio
    async def test_selects_matching_node(self, provider, host):
        """Test the found node is revealed with selection."""
        await provider.get_children()
        node = await provider.select_by_path('/ws/App/Models/User.cs')
        assert node.id == 'App.sln/App/Models/User.cs'
        assert host.reveals == [(node, True, True)]

    @pytest.mark.asyncio
    async def test_unbuilt_is_noop(self, provider, factory, host):
        """Test nothing is searched while the tree is unbuilt."""
        assert await provider.select_by_path('/ws/App/Program.cs') is None
        assert factory.loads == []
        assert host.reveals == []

    @pytest.mark.asyncio
    async def test_searches_every_root(self, provider, finder, host):
        """Test roots are searched in order until one matches."""
        finder.solutions = ['App.sln', 'Other.sln']
        await provider.get_children()
        node = await provider.select_by_path('/ws/Tool/main.py')
        assert node.id == 'Other.sln/Tool/main.py'

    @pytest.mark.asyncio
    async def test_missing_path(self, provider, host):
        """Test no reveal when no node matches."""
        await provider.get_children()
        assert await provider.select_by_path('/ws/nope.txt') is None
        assert host.reveals == []

    @pytest.mark.asyncio
    async def test_active_editor_tracking(self, provider, host):
        """Test the active editor's file gets selected."""
        await provider.get_children()
        await provider.wait_idle()

        provider.on_active_editor_changed('/ws/Lib/Util.cs')
        await provider.wait_idle()

        assert host.reveals[-1][0].id == 'App.sln/Lib/Util.cs'
        assert host.indicator == [f'show:{LOCATING_INDICATOR_TEXT}', 'hide']

    @pytest.mark.asyncio
    async def test_lookup_keeps_restore_indicator(self, provider, state, host, settings):
        """Test a document lookup during a restore leaves the restore indicator up."""
        settings.indicator_min_seconds = 0.2
        state.add_expanded('App.sln')
        await provider.get_children()
        await asyncio.sleep(0.01)
        assert provider.restorer.active_session is not None

        await provider.select_active_document('/ws/App/Program.cs')

        assert provider.restorer.active_session is not None
        assert provider.restorer.indicator.visible is True
        assert provider.restorer.indicator.text == RESTORE_INDICATOR_TEXT
        assert 'hide' not in host.indicator

        await provider.wait_idle()
        assert provider.restorer.indicator.visible is False
        assert host.indicator == [
            f'show:{RESTORE_INDICATOR_TEXT}',
            f'show:{LOCATING_INDICATOR_TEXT}',
            f'show:{RESTORE_INDICATOR_TEXT}',
            'hide',
        ]

    @pytest.mark.asyncio
    async def test_active_editor_ignored(self, provider, host, settings):
        """Test non-file documents and disabled tracking are ignored."""
        await provider.get_children()
        await provider.wait_idle()

        provider.on_active_editor_changed('/ws/Lib/Util.cs', scheme='untitled')
        provider.on_active_editor_changed(None)
        settings.track_active_item = False
        provider.on_active_editor_changed('/ws/Lib/Util.cs')
        await provider.wait_idle()

        assert host.reveals == []

    @pytest.mark.asyncio
    async def test_active_document_failure_is_logged(self, provider, factory, host):
        """Test a failing search during tracking doesn't escape."""
        factory.fail_loads.add('App.sln')
        await provider.get_children()
        assert await provider.select_active_document('/ws/App/Program.cs') is None
        assert host.indicator[-1] == 'hide'


class TestRebuildRoundTrip:
    """End-to-end: expand, rebuild, restore."""

    @pytest.mark.asyncio
    async def test_state_restored_after_rebuild(self, finder, factory, host, store, events, settings):
        """Test expansion and focus survive a rebuild and a new session."""
        provider = SolutionTreeProvider(
            finder, factory, host, ExpansionState.load(store), events=events, settings=settings
        )
        provider.register()
        (root,) = await provider.get_children()
        provider.on_expand(root)
        app = (await root.get_children())[0]
        provider.on_expand(app)
        models = (await app.get_children())[1]
        provider.on_expand(models)
        user = (await models.get_children())[0]
        provider.on_selection_changed([user])
        await provider.wait_idle()

        # a new editor session: fresh provider, same store
        provider.unregister()
        host.reveals.clear()
        restarted = SolutionTreeProvider(
            finder, factory, host, ExpansionState.load(store), events=EventAggregator(), settings=settings
        )
        (new_root,) = await restarted.get_children()
        await restarted.wait_idle()

        assert new_root is not root
        for node_id in ('App.sln', 'App.sln/App', 'App.sln/App/Models'):
            assert restarted.collection.find_loaded_by_id(node_id).is_expanded
        assert restarted.collection.find_loaded_by_id('App.sln/Lib').is_expanded is False
        assert host.reveals[0][0].id == 'App.sln/App/Models/User.cs'
        assert host.reveals[0][1:] == (False, False)
