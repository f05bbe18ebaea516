# mnty/core/plugin_manager.py
from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from pydantic import ValidationError

from mnty.configs.manager_config import ManagerConfig
from mnty.core.barrier import LifecycleBarrier
from mnty.core.exceptions import ConfigurationError, PluginNotResolvedError
from mnty.core.identity import IdentityRegistry
from mnty.core.loader import ComponentLoader
from mnty.core.mutation_router import MutationRouter
from mnty.core.observable import Observable
from mnty.core.plugin import EXECUTED, INITIALIZED, Implementation
from mnty.core.registry import InstanceRegistry
from mnty.core.scanner import DeclarationScanner
from mnty.domain.tree import Node
from mnty.runtime.logging_config import set_logging_enabled
from mnty.runtime.option_parser import parse_options
from mnty.runtime.utils import describe_exception_origin

__all__: Sequence[str] = ('PluginManager', 'MountPass', 'MountFailure', 'PREPARED', 'READY', 'PLUGINS_EXECUTED')
logger = logging.getLogger(__name__)

PREPARED = 'prepared'
READY = 'ready'
PLUGINS_EXECUTED = 'pluginsexecuted'


@dataclass
class MountFailure:
    plugin: str
    identity: Optional[int]
    error: BaseException
    location: Optional[str] = None


@dataclass(eq=False)
class MountPass:
    """Outcome of one scan, load and mount pass."""
    number: int
    nodes: List[Node]
    requested: List[str]
    mounted: List[Tuple[int, str]] = field(default_factory=list)
    failures: List[MountFailure] = field(default_factory=list)
    ready: Optional[asyncio.Task] = None
    executed: Optional[asyncio.Task] = None

    @property
    def is_ready(self) -> bool:
        return self.ready is not None and self.ready.done() and not self.ready.cancelled()

    @property
    def is_executed(self) -> bool:
        return self.executed is not None and self.executed.done() and not self.executed.cancelled()


class PluginManager(Observable):
    """
    Mounts plugins onto the nodes of a tree and keeps them in sync with it.

    ``mount(root)`` starts watching ``root`` and runs a first pass over it.
    Every pass scans for declaring nodes, loads the declared plugins and
    instantiates them, then fires on the manager:

    * ``prepared`` once every instantiation has been attempted,
    * ``ready`` once every mounted instance fired ``initialized``,
    * ``pluginsexecuted`` once every mounted instance fired ``executed``.

    Each event is fired with the :class:`MountPass` it belongs to. Inserted
    nodes get their own pass; removed nodes have their plugins unmounted.
    """

    def __init__(
        self,
        config: Union[ManagerConfig, Mapping[str, Any], None] = None,
        *,
        loader: Optional[ComponentLoader] = None,
        instances: Optional[InstanceRegistry] = None,
        identities: Optional[IdentityRegistry] = None,
        option_parser: Callable[[str], Dict[str, Any]] = parse_options,
    ) -> None:
        super().__init__()
        self.config = config if isinstance(config, ManagerConfig) else self._validate_config(config or {})
        self.loader = loader if loader is not None else ComponentLoader()
        self.instances = instances if instances is not None else InstanceRegistry()
        self.identities = identities if identities is not None else IdentityRegistry(self.config.id_property)
        self.scanner = DeclarationScanner(self.config.mount_point, option_parser)
        self.router = MutationRouter(self._schedule_process, self.unmount_plugins_of_root, self.config.mount_point)
        self._pass_counter = itertools.count(1)
        self._pending_passes: Set[asyncio.Task] = set()
        self._pending_joins: Set[asyncio.Task] = set()
        self._update_hooks: Dict[str, Callable[[Any], None]] = {
            'logging_enabled': self._update_logging_enabled,
            'base_url': self._update_base_url,
            'load_from': self._update_load_from,
            'mount_point': self._update_mount_point,
            'id_property': self._update_id_property,
        }
        self._run_update_hooks(self._update_hooks)

    # ------------------------------------------------------------------ #
    # configuration
    # ------------------------------------------------------------------ #
    def reconfigure(self, values: Mapping[str, Any]) -> ManagerConfig:
        """
        Apply ``values`` (camelCase or snake_case keys) to the configuration.

        Unknown keys are ignored. The update hook of every given field runs
        after the whole new configuration validated.
        """
        updates = ManagerConfig.normalize_keys(values)
        ignored = [str(key) for key in values if ManagerConfig.field_for_key(str(key)) is None]
        if ignored:
            logger.debug('Ignoring unknown config keys: %s', ', '.join(sorted(ignored)))
        if not updates:
            return self.config
        self.config = self._validate_config({**self.config.model_dump(), **updates})
        self._run_update_hooks(updates)
        return self.config

    def is_plugin_disabled(self, plugin_name: str) -> bool:
        return self.config.is_disabled(plugin_name)

    @staticmethod
    def _validate_config(values: Mapping[str, Any]) -> ManagerConfig:
        try:
            return ManagerConfig.model_validate(ManagerConfig.normalize_keys(values))
        except ValidationError as exc:
            raise ConfigurationError(f'Invalid manager configuration: {exc}') from exc

    def _run_update_hooks(self, fields: Iterable[str]) -> None:
        for name in fields:
            hook = self._update_hooks.get(name)
            if hook is not None:
                hook(getattr(self.config, name))

    def _update_logging_enabled(self, enabled: bool) -> None:
        set_logging_enabled(enabled)

    def _update_base_url(self, base_url: str) -> None:
        self.loader.base_path = base_url or None

    def _update_load_from(self, load_from: str) -> None:
        self.loader.load_from = load_from

    def _update_mount_point(self, mount_point: str) -> None:
        self.scanner.mount_point = mount_point
        self.router.attribute_name = mount_point

    def _update_id_property(self, id_property: str) -> None:
        self.identities.id_property = id_property

    # ------------------------------------------------------------------ #
    # lifecycle facade
    # ------------------------------------------------------------------ #
    async def mount(self, root: Node) -> Optional[MountPass]:
        logger.debug('MOUNT')
        self.router.observe(root)
        return await self.process(root)

    async def process(self, root: Node) -> Optional[MountPass]:
        """Run one pass over ``root``; ``None`` when nothing below it declares plugins."""
        nodes = self.scanner.find_declaring_nodes(root)
        if not nodes:
            return None
        logger.debug('Processing %d node(s)...', len(nodes))
        requested = self.scanner.used_components(nodes, self.is_plugin_disabled)
        implementations = await self.loader.resolve(requested)
        return self.mount_all(nodes, implementations, requested)

    def unmount(self, root: Node) -> None:
        logger.debug('UNMOUNT')
        self.router.disconnect()
        self.unmount_plugins_of_root(root)

    async def wait_pending(self) -> None:
        """Wait for the passes scheduled by tree insertions so far, and any they trigger."""
        while self._pending_passes:
            await asyncio.gather(*tuple(self._pending_passes), return_exceptions=True)

    # ------------------------------------------------------------------ #
    # mounting
    # ------------------------------------------------------------------ #
    def mount_all(self, nodes: Iterable[Node], implementations: Mapping[str, Implementation], requested: Sequence[str] = ()) -> MountPass:
        nodes = list(nodes)
        mount_pass = MountPass(number=next(self._pass_counter), nodes=nodes, requested=list(requested))
        initialized = LifecycleBarrier(INITIALIZED)
        executed = LifecycleBarrier(EXECUTED)

        logger.debug('Mounting plugins to nodes (pass %d)...', mount_pass.number)
        for node in nodes:
            identity = self.identities.identity_of(node)
            declared = self.scanner.declared_components(node)
            logger.debug('Processing node %r [identity: %s, plugins: [%s]]...', node, identity, ', '.join(declared))

            for raw_name in declared:
                plugin_name = raw_name.strip()
                if not plugin_name or self.is_plugin_disabled(plugin_name):
                    continue
                if identity is not None and self.instances.has(identity, plugin_name):
                    logger.debug('Plugin %s is already mounted to node[%s], skipping', plugin_name, identity)
                    continue

                logger.debug('Mounting plugin %s to node[%s]...', plugin_name, identity)
                try:
                    instance = self._instantiate(node, plugin_name, implementations)
                    self._register_waits(instance, initialized, executed)
                except Exception as exc:
                    location = describe_exception_origin(exc)
                    logger.error(
                        '%s occurred while instantiating plugin "%s"%s: %s',
                        type(exc).__name__,
                        plugin_name,
                        f' in file {location}' if location else '',
                        exc,
                    )
                    mount_pass.failures.append(MountFailure(plugin_name, identity, exc, location))
                    continue

                identity = self.identities.ensure_identity(node)
                self.instances.file(identity, plugin_name, instance)
                mount_pass.mounted.append((identity, plugin_name))
                logger.debug('Successfully mounted instance of plugin "%s" to node[%d]', plugin_name, identity)

        logger.debug('Done. Waiting for %d plugin(s) to be initialized...', len(initialized))
        self.fire(PREPARED, mount_pass)

        mount_pass.ready = self._spawn_join(initialized, READY, mount_pass, 'All plugins initialized. Waiting for all plugins to be executed...')
        mount_pass.executed = self._spawn_join(executed, PLUGINS_EXECUTED, mount_pass, 'All plugins executed.')
        return mount_pass

    def _instantiate(self, node: Node, plugin_name: str, implementations: Mapping[str, Implementation]) -> Any:
        implementation = implementations.get(plugin_name)
        if implementation is None:
            raise PluginNotResolvedError('No implementation was resolved for this pass', plugin=plugin_name)
        options = self.scanner.options_for(node, plugin_name)
        return implementation(options, node, self)

    @staticmethod
    def _register_waits(instance: Any, initialized: LifecycleBarrier, executed: LifecycleBarrier) -> None:
        ready_wait = initialized.add(instance)
        try:
            executed.add(instance)
        except Exception:
            initialized.discard(ready_wait)
            raise

    def _spawn_join(self, barrier: LifecycleBarrier, event: str, mount_pass: MountPass, message: str) -> asyncio.Task:
        async def _join() -> None:
            await barrier.join()
            logger.debug('Pass %d: %s', mount_pass.number, message)
            self.fire(event, mount_pass)

        task = asyncio.get_running_loop().create_task(_join(), name=f'mnty-pass{mount_pass.number}-{event}')
        self._pending_joins.add(task)
        task.add_done_callback(self._pending_joins.discard)
        return task

    def _schedule_process(self, node: Node) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning('No running event loop, plugins of inserted node %r are not mounted', node)
            return
        task = loop.create_task(self.process(node), name='mnty-insert-pass')
        self._pending_passes.add(task)
        task.add_done_callback(self._on_scheduled_pass_done)

    def _on_scheduled_pass_done(self, task: asyncio.Task) -> None:
        self._pending_passes.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error('Mount pass for inserted node failed: %s', exc, exc_info=exc)

    # ------------------------------------------------------------------ #
    # unmounting
    # ------------------------------------------------------------------ #
    def unmount_plugins_of_root(self, root: Node) -> None:
        for node in root.select(self.identities.id_property):
            self.unmount_plugins_from_node(node)

    def unmount_plugins_from_node(self, node: Node) -> None:
        identity = self.identities.identity_of(node)
        if identity is None:
            return
        for plugin_name in self.instances.names(identity):
            self.unmount_plugin(identity, plugin_name)

    def unmount_plugin(self, identity: int, plugin_name: str) -> bool:
        instance = self.instances.get(identity, plugin_name)
        if instance is None:
            return False

        logger.debug('Unmounting plugin %s from node[%d]...', plugin_name, identity)
        try:
            instance.unmount()
        except Exception as exc:
            logger.exception('Unmounting plugin %s from node[%d] failed: %s', plugin_name, identity, exc)
        else:
            logger.debug('Successfully unmounted plugin %s from node[%d].', plugin_name, identity)
        finally:
            self.instances.remove(identity, plugin_name)
        return True

    # ------------------------------------------------------------------ #
    # lookups
    # ------------------------------------------------------------------ #
    def instances_of(self, node: Node) -> Dict[str, Any]:
        identity = self.identities.identity_of(node)
        if identity is None:
            return {}
        return self.instances.instances(identity)

    def get_instance(self, node: Node, plugin_name: str) -> Any:
        identity = self.identities.identity_of(node)
        if identity is None:
            return None
        return self.instances.get(identity, plugin_name)
