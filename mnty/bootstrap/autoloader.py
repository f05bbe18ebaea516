# mnty/bootstrap/autoloader.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping, Optional, Sequence, Union

from mnty.configs.manager_config import ManagerConfig
from mnty.core.plugin_manager import MountPass, PluginManager
from mnty.domain.tree import Node
from mnty.runtime.option_parser import parse_options

__all__: Sequence[str] = ('AutoLoader',)
logger = logging.getLogger(__name__)

ConfigSource = Union[ManagerConfig, Mapping[str, Any], str, None]


class AutoLoader:
    """
    Drives a manager over one document: reconfigure and mount on start,
    unmount on stop.

    ``config`` may be a ManagerConfig, a mapping, or a compact option string
    such as ``"'loadFrom': 'app.plugins', 'loggingEnabled': true"``.
    """

    def __init__(self, manager: Optional[PluginManager] = None, config: ConfigSource = None) -> None:
        self.manager = manager if manager is not None else PluginManager()
        self.config = self._normalize(config)
        self.document: Optional[Node] = None

    @staticmethod
    def _normalize(config: ConfigSource) -> Mapping[str, Any]:
        if config is None:
            return {}
        if isinstance(config, ManagerConfig):
            return config.model_dump()
        if isinstance(config, str):
            return parse_options(config)
        return dict(config)

    async def start(self, document: Node) -> Optional[MountPass]:
        if self.config:
            self.manager.reconfigure(self.config)
        self.document = document
        logger.debug('Auto-loading plugins for %r', document)
        return await self.manager.mount(document)

    def stop(self, document: Optional[Node] = None) -> None:
        target = document if document is not None else self.document
        if target is None:
            logger.debug('AutoLoader.stop() called before start(), nothing to unmount')
            return
        self.manager.unmount(target)
        if target is self.document:
            self.document = None

    @asynccontextmanager
    async def run(self, document: Node) -> AsyncIterator[Optional[MountPass]]:
        mount_pass = await self.start(document)
        try:
            yield mount_pass
        finally:
            self.stop(document)
