# mnty/core/loader.py
from __future__ import annotations

import asyncio
import importlib
import logging
import os
import sys
from typing import Dict, Iterable, List, Optional, Sequence

from mnty.core.exceptions import PluginLoadError
from mnty.core.plugin import Implementation, UnresolvedImplementation
from mnty.runtime.utils import import_by_path

__all__: Sequence[str] = ('ComponentLoader',)
logger = logging.getLogger(__name__)


class ComponentLoader:
    """
    Resolves plugin names to implementations.

    Names registered through :meth:`register` win. Any other name is imported:
    ``widgets/Hider`` under ``load_from='app.plugins'`` is the ``Hider``
    attribute of module ``app.plugins.widgets``; a name containing ``:`` is
    taken as an explicit ``module:attribute`` path. Nothing is cached between
    :meth:`resolve` calls.
    """

    def __init__(self, load_from: str = '', base_path: Optional[str] = None) -> None:
        self._registered: Dict[str, Implementation] = {}
        self._load_from = ''
        self._base_path: Optional[str] = None
        self._inserted_path = False
        self.load_from = load_from
        self.base_path = base_path

    # ------------------------------------------------------------------ #
    @property
    def load_from(self) -> str:
        return self._load_from

    @load_from.setter
    def load_from(self, value: str) -> None:
        self._load_from = (value or '').strip().rstrip('./').replace('/', '.')

    @property
    def base_path(self) -> Optional[str]:
        """
        Directory put in front of ``sys.path`` while set.

        ``sys.path`` is shared by the whole process, so the loader only removes
        an entry it inserted itself; a directory that was already on the path
        stays there.
        """
        return self._base_path

    @base_path.setter
    def base_path(self, value: Optional[str]) -> None:
        new_path = os.path.abspath(value) if value else None
        if new_path == self._base_path:
            return
        if self._inserted_path and self._base_path in sys.path:
            sys.path.remove(self._base_path)
        self._inserted_path = False
        if new_path is not None and new_path not in sys.path:
            sys.path.insert(0, new_path)
            self._inserted_path = True
        self._base_path = new_path
        importlib.invalidate_caches()
        logger.debug('Plugin search path set to %s', new_path)

    def register(self, name: str, implementation: Implementation) -> None:
        if not callable(implementation):
            raise TypeError(f"Implementation for plugin '{name}' must be callable, got {type(implementation).__name__}")
        self._registered[name] = implementation
        logger.debug("Registered implementation for plugin '%s'", name)

    def unregister(self, name: str) -> None:
        self._registered.pop(name, None)

    def registered_names(self) -> List[str]:
        return list(self._registered)

    # ------------------------------------------------------------------ #
    def import_path_for(self, name: str) -> str:
        name = name.strip()
        if ':' in name:
            return name
        parts = [part for part in name.replace('/', '.').split('.') if part]
        if not parts:
            raise PluginLoadError('Empty plugin name', plugin=name)
        module = '.'.join(filter(None, [self._load_from, *parts[:-1]]))
        if not module:
            raise PluginLoadError(f"Cannot derive a module for '{name}': set load_from or use a 'package/Name' form", plugin=name)
        return f'{module}:{parts[-1]}'

    async def resolve(self, names: Iterable[str]) -> Dict[str, Implementation]:
        """
        Load every distinct name concurrently. Failed names are bound to an
        UnresolvedImplementation, so this never raises.
        """
        unique = list(dict.fromkeys(names))
        if not unique:
            return {}
        logger.debug('Fetching %d plugin(s): %s', len(unique), ', '.join(unique))
        loaded = await asyncio.gather(*(self._resolve_one(name) for name in unique))
        return dict(zip(unique, loaded))

    async def _resolve_one(self, name: str) -> Implementation:
        try:
            return await self._load(name)
        except Exception as exc:
            error = exc if isinstance(exc, PluginLoadError) else PluginLoadError(str(exc), plugin=name)
            if error is not exc:
                error.__cause__ = exc
            logger.debug("Substituting stub for plugin '%s': %s", name, error)
            return UnresolvedImplementation(name, error)

    async def _load(self, name: str) -> Implementation:
        if name in self._registered:
            return self._registered[name]
        path = self.import_path_for(name)
        implementation = await asyncio.to_thread(import_by_path, path)
        if not callable(implementation):
            raise PluginLoadError(f"'{path}' is not a plugin class or factory", plugin=name)
        logger.debug("Loaded plugin '%s' from %s", name, path)
        return implementation
