import asyncio
import logging
from unittest.mock import MagicMock, patch

import pytest

from mnty.core.exceptions import ConfigurationError, PluginNotResolvedError
from mnty.core.observable import Observable
from mnty.core.plugin import PluginState, UnresolvedPlugin
from mnty.core.plugin_manager import PLUGINS_EXECUTED, PREPARED, READY, PluginManager
from mnty.domain.tree import Node, build_tree
from mnty.runtime.logging_config import is_logging_enabled
from mnty.runtime.utils import import_by_path
from tests.plugins.widgets import Colorizer, Hider


async def _until_executed(mount_pass, timeout=1):
    await asyncio.wait_for(asyncio.gather(mount_pass.ready, mount_pass.executed), timeout=timeout)


def _cancel_joins(mount_pass):
    mount_pass.ready.cancel()
    mount_pass.executed.cancel()


@pytest.mark.asyncio
async def test_mount_files_one_instance_per_declared_plugin(manager, page):
    header, nav, footer = page.children

    mount_pass = await manager.mount(page)

    nav_id = manager.identities.identity_of(nav)
    assert manager.instances.names(manager.identities.identity_of(header)) == ['widgets/Colorizer']
    assert sorted(manager.instances.names(nav_id)) == ['widgets/Colorizer', 'widgets/Hider']
    assert mount_pass.requested == ['widgets/Colorizer', 'widgets/Hider']
    assert len(mount_pass.mounted) == 3
    assert mount_pass.nodes == [header, nav]

    hider = manager.get_instance(nav, 'widgets/Hider')
    assert isinstance(hider, Hider)
    assert hider.options == {'color': 'blue', 'test': 'attribute'}
    assert hider.node is nav and hider.manager is manager
    assert isinstance(manager.get_instance(header, 'widgets/Colorizer'), Colorizer)

    # Nodes without mounted plugins never receive an identity.
    assert manager.identities.identity_of(footer) is None
    assert manager.identities.identity_of(page) is None
    assert manager.instances_of(footer) == {}

    await _until_executed(mount_pass)
    assert mount_pass.is_ready and mount_pass.is_executed
    assert all(p.state is PluginState.EXECUTED for _, _, p in manager.instances.items())
    manager.unmount(page)


@pytest.mark.asyncio
async def test_prepared_fires_before_ready_and_ready_waits_for_every_plugin(manager):
    # 1. Setup
    node = Node(attributes={'data-mount': 'widgets/Gated, widgets/Colorizer'})
    events = []
    for event in (PREPARED, READY, PLUGINS_EXECUTED):
        manager.on(event, lambda mount_pass, event=event: events.append((event, mount_pass)))

    # 2. Execute
    mount_pass = await manager.mount(node)

    # 3. Assert
    assert events == [(PREPARED, mount_pass)]
    colorizer = manager.get_instance(node, 'widgets/Colorizer')
    await asyncio.wait_for(colorizer._lifecycle_task, timeout=1)
    await asyncio.sleep(0)
    assert colorizer.is_executed
    assert not mount_pass.ready.done()
    assert len(events) == 1

    manager.get_instance(node, 'widgets/Gated').gate.set()
    await _until_executed(mount_pass)

    assert [event for event, _ in events] == [PREPARED, READY, PLUGINS_EXECUTED]
    assert all(p is mount_pass for _, p in events)
    manager.unmount(node)


@pytest.mark.asyncio
async def test_each_plugin_name_is_loaded_once_per_pass(manager, page):
    with patch('mnty.core.loader.import_by_path', wraps=import_by_path) as importer:
        mount_pass = await manager.mount(page)

    paths = sorted(call.args[0] for call in importer.call_args_list)
    assert paths == ['tests.plugins.widgets:Colorizer', 'tests.plugins.widgets:Hider']
    await _until_executed(mount_pass)
    manager.unmount(page)


@pytest.mark.asyncio
async def test_load_failure_mounts_siblings_and_never_reports_ready(manager, caplog):
    node = Node(attributes={'data-mount': 'widgets/Missing,widgets/Colorizer'})

    with caplog.at_level(logging.WARNING, logger='mnty'):
        mount_pass = await manager.mount(node)

    stub = manager.get_instance(node, 'widgets/Missing')
    colorizer = manager.get_instance(node, 'widgets/Colorizer')
    assert isinstance(stub, UnresolvedPlugin)
    assert stub.state is PluginState.UNRESOLVED
    assert 'Could not load plugin "widgets/Missing" due to error:' in caplog.text

    await asyncio.wait_for(colorizer._lifecycle_task, timeout=1)
    assert colorizer.is_executed

    # The stub never fires "initialized", so the pass stays unready by design.
    done, _ = await asyncio.wait({mount_pass.ready, mount_pass.executed}, timeout=0.05)
    assert not done

    _cancel_joins(mount_pass)
    manager.unmount(node)


@pytest.mark.asyncio
async def test_disabled_plugins_are_neither_loaded_nor_mounted(page):
    manager = PluginManager({'loadFrom': 'tests.plugins', 'loggingEnabled': True, 'disabledPlugins': 'widgets/Hider'})
    nav = page.children[1]

    with patch('mnty.core.loader.import_by_path', wraps=import_by_path) as importer:
        mount_pass = await manager.mount(page)

    assert [call.args[0] for call in importer.call_args_list] == ['tests.plugins.widgets:Colorizer']
    assert mount_pass.requested == ['widgets/Colorizer']
    assert list(manager.instances_of(nav)) == ['widgets/Colorizer']
    assert all(name != 'widgets/Hider' for _, name, _ in manager.instances.items())
    await _until_executed(mount_pass)
    manager.unmount(page)


@pytest.mark.asyncio
async def test_disabled_check_also_applies_at_mount_time(manager):
    node = Node(attributes={'data-mount': 'widgets/Hider'})
    manager.reconfigure({'disabledPlugins': ['widgets/Hider']})

    mount_pass = manager.mount_all([node], {'widgets/Hider': Hider})

    assert mount_pass.mounted == []
    assert manager.identities.identity_of(node) is None
    await _until_executed(mount_pass)


@pytest.mark.asyncio
async def test_removed_node_has_its_plugins_unmounted_once(manager, page):
    header, nav, _ = page.children
    mount_pass = await manager.mount(page)
    await _until_executed(mount_pass)
    nav_id = manager.identities.identity_of(nav)
    nav_plugins = list(manager.instances_of(nav).values())

    nav.remove()
    await asyncio.sleep(0)

    assert nav_id not in manager.instances
    assert [p.destroyed for p in nav_plugins] == [1, 1]
    assert all(p.state is PluginState.UNMOUNTED for p in nav_plugins)
    assert list(manager.instances_of(header)) == ['widgets/Colorizer']
    manager.unmount(page)


@pytest.mark.asyncio
async def test_unmount_without_mounted_descendants_is_a_noop(manager):
    listener = MagicMock()
    for event in (PREPARED, READY, PLUGINS_EXECUTED):
        manager.on(event, listener)
    root = Node(children=[Node('p')])

    assert await manager.mount(root) is None
    manager.unmount(root)
    manager.unmount(root)
    manager.unmount(Node())

    listener.assert_not_called()
    assert not manager.router.is_observing
    assert len(manager.instances) == 0


@pytest.mark.asyncio
async def test_unmount_root_tears_everything_down(manager, page):
    mount_pass = await manager.mount(page)
    await _until_executed(mount_pass)
    plugins = [p for _, _, p in manager.instances.items()]

    manager.unmount(page)
    manager.unmount(page)

    assert len(manager.instances) == 0
    assert [p.destroyed for p in plugins] == [1, 1, 1]

    # Observation stopped: later insertions are not mounted.
    late = page.append_child(Node(attributes={'data-mount': 'widgets/Colorizer'}))
    await asyncio.sleep(0)
    await manager.wait_pending()
    assert manager.instances_of(late) == {}


@pytest.mark.asyncio
async def test_inserted_nodes_are_mounted_in_their_own_pass(manager, page):
    passes = []
    manager.on(PREPARED, passes.append)
    first = await manager.mount(page)

    aside = Node('aside', {'data-mount': 'widgets/Hider'}, [Node('span', {'data-mount': 'widgets/Colorizer'})])
    page.append_child(aside)
    page.append_child(Node('p'))
    await asyncio.sleep(0)
    await manager.wait_pending()

    assert isinstance(manager.get_instance(aside, 'widgets/Hider'), Hider)
    assert isinstance(manager.get_instance(aside.children[0], 'widgets/Colorizer'), Colorizer)
    assert [p.number for p in passes] == [first.number, first.number + 1]
    assert passes[1].nodes == [aside, aside.children[0]]
    await _until_executed(passes[1])
    manager.unmount(page)


@pytest.mark.asyncio
async def test_mount_attribute_changes_are_not_acted_on(manager, page):
    header = page.children[0]
    await manager.mount(page)

    header.set_attribute('data-mount', 'widgets/Colorizer,widgets/Hider')
    await asyncio.sleep(0)
    await manager.wait_pending()

    assert list(manager.instances_of(header)) == ['widgets/Colorizer']
    manager.unmount(page)


@pytest.mark.asyncio
async def test_instantiation_failures_are_isolated(manager, caplog):
    node = Node(attributes={
        'data-mount': 'widgets/Broken,widgets/Colorizer,widgets/Sized',
        'data-widgets-sized': "'size': 0",
    })

    with caplog.at_level(logging.ERROR, logger='mnty'):
        mount_pass = await manager.mount(node)

    assert list(manager.instances_of(node)) == ['widgets/Colorizer']
    assert [f.plugin for f in mount_pass.failures] == ['widgets/Broken', 'widgets/Sized']
    broken = mount_pass.failures[0]
    assert isinstance(broken.error, RuntimeError)
    assert broken.location is not None and 'widgets.py' in broken.location
    assert 'RuntimeError occurred while instantiating plugin "widgets/Broken"' in caplog.text
    assert 'broken on purpose' in caplog.text

    await _until_executed(mount_pass)
    manager.unmount(node)


class _ListensOnlyToInitialized(Observable):
    def on(self, event, handler, once=False):
        if event == 'executed':
            raise RuntimeError('cannot listen to executed')
        super().on(event, handler, once)


@pytest.mark.asyncio
async def test_instance_that_cannot_be_listened_to_does_not_stop_the_pass(manager, caplog):
    # 1. Setup
    lonely = Node('main', {'data-mount': 'widgets/SkipsBaseInit'})
    mixed = Node('nav', {'data-mount': 'widgets/SkipsBaseInit,widgets/Colorizer'})
    root = Node('body', children=[lonely, mixed])
    prepared = []
    manager.on(PREPARED, prepared.append)

    # 2. Execute
    with caplog.at_level(logging.ERROR, logger='mnty'):
        mount_pass = await manager.mount(root)

    # 3. Assert
    assert prepared == [mount_pass]
    assert manager.identities.identity_of(lonely) is None
    assert list(manager.instances_of(mixed)) == ['widgets/Colorizer']
    assert [f.plugin for f in mount_pass.failures] == ['widgets/SkipsBaseInit', 'widgets/SkipsBaseInit']
    assert all(isinstance(f.error, AttributeError) for f in mount_pass.failures)
    assert 'AttributeError occurred while instantiating plugin "widgets/SkipsBaseInit"' in caplog.text

    await _until_executed(mount_pass)
    manager.unmount(root)


@pytest.mark.asyncio
async def test_partially_registered_instance_leaves_no_wait_behind(manager):
    manager.loader.register('Half', lambda options, node, owner: _ListensOnlyToInitialized())
    node = Node(attributes={'data-mount': 'Half'})

    mount_pass = await manager.mount(node)

    assert [f.plugin for f in mount_pass.failures] == ['Half']
    assert manager.instances_of(node) == {}
    # The initialized wait was rolled back, so both joins complete.
    await _until_executed(mount_pass)
    manager.unmount(node)


@pytest.mark.asyncio
async def test_copy_of_a_mounted_node_gets_its_own_identity_and_instances(manager):
    original = Node('nav', {'data-mount': 'widgets/Colorizer'})
    first = await manager.mount(original)

    copy = build_tree(original.to_dict())
    second = await manager.process(copy)

    assert second.mounted and second.mounted[0][1] == 'widgets/Colorizer'
    assert manager.identities.identity_of(copy) != manager.identities.identity_of(original)
    copied = manager.get_instance(copy, 'widgets/Colorizer')
    assert isinstance(copied, Colorizer)
    assert copied is not manager.get_instance(original, 'widgets/Colorizer')
    assert copied.node is copy

    await _until_executed(first)
    await _until_executed(second)
    manager.unmount(original)
    manager.unmount_plugins_of_root(copy)
    assert manager.instances.count() == 0


@pytest.mark.asyncio
async def test_concurrent_passes_join_only_their_own_plugins(manager):
    # 1. Setup
    main = Node('main', {'data-mount': 'widgets/Gated'})
    root = Node('body', children=[main])
    prepared, ready, executed = [], [], []
    manager.on(PREPARED, prepared.append)
    manager.on(READY, ready.append)
    manager.on(PLUGINS_EXECUTED, executed.append)
    first = await manager.mount(root)

    # 2. Execute: a second pass while the first is still waiting on its gate
    aside = Node('aside', {'data-mount': 'widgets/Colorizer'})
    root.append_child(aside)
    await asyncio.sleep(0)
    await manager.wait_pending()
    second = prepared[1]
    await _until_executed(second)

    # 3. Assert
    assert second is not first
    assert [name for _, name in first.mounted] == ['widgets/Gated']
    assert [name for _, name in second.mounted] == ['widgets/Colorizer']
    assert ready == [second] and executed == [second]
    assert not first.ready.done()

    manager.get_instance(main, 'widgets/Gated').gate.set()
    await _until_executed(first)
    assert ready == [second, first]
    assert executed == [second, first]
    manager.unmount(root)


def test_insertions_outside_a_running_loop_are_reported(caplog):
    manager = PluginManager({'loadFrom': 'tests.plugins', 'loggingEnabled': True})
    root = Node('body')
    manager.router.observe(root)

    with caplog.at_level(logging.WARNING, logger='mnty'):
        root.append_child(Node('p', {'data-mount': 'widgets/Colorizer'}))

    assert 'No running event loop' in caplog.text
    assert 'Mutation callback failed' not in caplog.text
    manager.router.disconnect()


@pytest.mark.asyncio
async def test_name_missing_from_resolved_mapping_is_an_instantiation_failure(manager):
    node = Node(attributes={'data-mount': 'Unknown'})

    mount_pass = manager.mount_all([node], {})

    assert isinstance(mount_pass.failures[0].error, PluginNotResolvedError)
    assert manager.identities.identity_of(node) is None
    # Nothing registered, so both joins complete straight away.
    await _until_executed(mount_pass)


@pytest.mark.asyncio
async def test_already_mounted_plugins_are_skipped(manager, page):
    nav = page.children[1]
    first = await manager.mount(page)
    hider = manager.get_instance(nav, 'widgets/Hider')

    second = await manager.process(page)

    assert second.mounted == []
    assert manager.get_instance(nav, 'widgets/Hider') is hider
    await _until_executed(first)
    await _until_executed(second)

    twice = Node(attributes={'data-mount': 'widgets/Colorizer, widgets/Colorizer'})
    third = await manager.process(twice)
    assert len(third.mounted) == 1
    await _until_executed(third)
    manager.unmount(page)
    manager.unmount(twice)


@pytest.mark.asyncio
async def test_failing_teardown_does_not_block_other_unmounts(manager, caplog):
    node = Node(attributes={'data-mount': 'widgets/FailingTeardown,widgets/Colorizer'})
    mount_pass = await manager.mount(node)
    await _until_executed(mount_pass)
    plugins = list(manager.instances_of(node).values())

    with caplog.at_level(logging.ERROR, logger='mnty'):
        manager.unmount(node)

    assert [p.destroyed for p in plugins] == [1, 1]
    assert len(manager.instances) == 0
    assert 'Unmounting plugin widgets/FailingTeardown' in caplog.text


@pytest.mark.asyncio
async def test_unmount_plugin_reports_whether_something_was_removed(manager):
    node = Node(attributes={'data-mount': 'widgets/Colorizer'})
    mount_pass = await manager.mount(node)
    identity = manager.identities.identity_of(node)

    assert manager.unmount_plugin(identity, 'widgets/Colorizer') is True
    assert manager.unmount_plugin(identity, 'widgets/Colorizer') is False
    assert identity not in manager.instances
    _cancel_joins(mount_pass)
    manager.unmount(node)


def test_reconfigure_runs_update_hooks(tmp_path):
    manager = PluginManager({'loggingEnabled': True})

    config = manager.reconfigure({
        'mountPoint': 'plugins',
        'id_property': 'key',
        'loadFrom': 'tests/plugins/',
        'baseUrl': str(tmp_path),
        'somethingElse': 1,
    })

    assert config is manager.config
    assert manager.scanner.mount_point == 'data-plugins'
    assert manager.router.attribute_name == 'data-plugins'
    assert manager.identities.id_property == 'data-key'
    assert manager.loader.load_from == 'tests.plugins'
    assert manager.loader.base_path == str(tmp_path)

    manager.reconfigure({'baseUrl': ''})
    assert manager.loader.base_path is None

    manager.reconfigure({'loggingEnabled': False})
    assert not is_logging_enabled()


def test_invalid_reconfigure_keeps_previous_config():
    manager = PluginManager({'loggingEnabled': True, 'mountPoint': 'plugins'})
    with pytest.raises(ConfigurationError):
        manager.reconfigure({'mountPoint': '   '})
    assert manager.config.mount_point == 'data-plugins'


def test_logging_is_disabled_by_default():
    PluginManager()
    assert not is_logging_enabled()


@pytest.mark.asyncio
async def test_custom_mount_point_and_id_property():
    manager = PluginManager({'loadFrom': 'tests.plugins', 'loggingEnabled': True, 'mountPoint': 'plugins', 'idProperty': 'key'})
    node = Node(attributes={'data-plugins': 'widgets/Colorizer', 'data-mount': 'widgets/Hider'})

    mount_pass = await manager.mount(node)

    assert node.has_attribute('data-key')
    assert not node.has_attribute('data-mid')
    assert list(manager.instances_of(node)) == ['widgets/Colorizer']
    await _until_executed(mount_pass)
    manager.unmount(node)
