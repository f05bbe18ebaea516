# mnty/core/plugin.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Dict, Mapping, Optional, Sequence, Type, Union

from pydantic import BaseModel, ValidationError

from mnty.core.exceptions import PluginInstantiationError
from mnty.core.observable import Observable
from mnty.domain.tree import Node

if TYPE_CHECKING:
    from mnty.core.plugin_manager import PluginManager

__all__: Sequence[str] = ('Plugin', 'PluginState', 'UnresolvedPlugin', 'UnresolvedImplementation', 'Implementation')
logger = logging.getLogger(__name__)

INITIALIZED = 'initialized'
EXECUTED = 'executed'


class PluginState(str, Enum):
    PENDING = 'pending'
    INITIALIZED = 'initialized'
    EXECUTED = 'executed'
    FAILED = 'failed'
    UNRESOLVED = 'unresolved'
    UNMOUNTED = 'unmounted'


class Plugin(Observable):
    """
    Base class for behaviour mounted onto a tree node.

    Constructed as ``Plugin(options, node, manager)`` inside the manager's
    event loop. The constructor merges the class-level ``config`` defaults
    with ``options``, validates them against ``options_model`` when one is
    set, calls ``init()`` and schedules the asynchronous lifecycle:
    ``initialize()`` then ``initialized`` is fired, ``execute()`` then
    ``executed`` is fired. Each event fires at most once; a hook that raises
    leaves the remaining events unfired.

    Subclasses override the hooks, not ``__init__`` where avoidable.
    """

    name: ClassVar[str] = 'Plugin'
    config: ClassVar[Dict[str, Any]] = {}
    options_model: ClassVar[Optional[Type[BaseModel]]] = None

    def __init__(self, options: Optional[Mapping[str, Any]], node: Node, manager: Optional['PluginManager']) -> None:
        super().__init__()
        self.node = node
        self.manager = manager
        self.settings: Optional[BaseModel] = None
        self.options: Dict[str, Any] = self._build_options(options or {})
        self._state = PluginState.PENDING
        self._unmounted = False
        self._lifecycle_task: Optional[asyncio.Task] = None
        self.init()
        self._start_lifecycle()

    # ------------------------------------------------------------------ #
    # hooks
    # ------------------------------------------------------------------ #
    def init(self) -> None:
        pass

    async def initialize(self) -> None:
        pass

    async def execute(self) -> None:
        pass

    def destroy(self) -> None:
        pass

    # ------------------------------------------------------------------ #
    @property
    def state(self) -> PluginState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state in (PluginState.INITIALIZED, PluginState.EXECUTED)

    @property
    def is_executed(self) -> bool:
        return self._state is PluginState.EXECUTED

    @property
    def is_unmounted(self) -> bool:
        return self._unmounted

    def unmount(self) -> None:
        """Stop the lifecycle and release resources. Safe to call repeatedly."""
        if self._unmounted:
            return
        self._unmounted = True
        self._state = PluginState.UNMOUNTED
        if self._lifecycle_task is not None and not self._lifecycle_task.done():
            self._lifecycle_task.cancel()
        self.destroy()

    # ------------------------------------------------------------------ #
    def _build_options(self, options: Mapping[str, Any]) -> Dict[str, Any]:
        merged = {**self.config, **options}
        if self.options_model is None:
            return merged
        try:
            self.settings = self.options_model.model_validate(merged)
        except ValidationError as exc:
            raise PluginInstantiationError(f'Invalid options: {exc.error_count()} validation error(s): {exc}', plugin=self.name) from exc
        return self.settings.model_dump()

    def _start_lifecycle(self) -> None:
        self._lifecycle_task = asyncio.get_running_loop().create_task(self._run_lifecycle(), name=f'{self.name}-lifecycle')

    async def _run_lifecycle(self) -> None:
        try:
            await self.initialize()
        except Exception as exc:
            self._state = PluginState.FAILED
            logger.error("Plugin '%s' failed to initialize: %s", self.name, exc, exc_info=True)
            return
        self._state = PluginState.INITIALIZED
        self.fire(INITIALIZED, self)

        try:
            await self.execute()
        except Exception as exc:
            self._state = PluginState.FAILED
            logger.error("Plugin '%s' failed to execute: %s", self.name, exc, exc_info=True)
            return
        self._state = PluginState.EXECUTED
        self.fire(EXECUTED, self)


class UnresolvedPlugin(Plugin):
    """
    Stand-in for a plugin whose implementation could not be loaded.

    It only logs the load failure. It never fires ``initialized`` or
    ``executed``, so a pass containing one never reports ``ready``.
    """

    name = 'UnresolvedPlugin'

    def __init__(self, requested_name: str, load_error: BaseException, options: Optional[Mapping[str, Any]], node: Node, manager: Optional['PluginManager']) -> None:
        self.requested_name = requested_name
        self.load_error = load_error
        super().__init__(options, node, manager)
        self._state = PluginState.UNRESOLVED

    def init(self) -> None:
        logger.warning('Could not load plugin "%s" due to error:\n%s', self.requested_name, self.load_error)

    def _start_lifecycle(self) -> None:
        return None


@dataclass(frozen=True)
class UnresolvedImplementation:
    """What the loader binds a name to when its implementation failed to load."""
    name: str
    error: BaseException

    def __call__(self, options: Optional[Mapping[str, Any]], node: Node, manager: Optional['PluginManager']) -> UnresolvedPlugin:
        return UnresolvedPlugin(self.name, self.error, options, node, manager)

    @property
    def message(self) -> str:
        return str(self.error)


Implementation = Union[Type[Plugin], UnresolvedImplementation, Callable[..., Any]]
