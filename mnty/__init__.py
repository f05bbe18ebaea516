# mnty/__init__.py
from __future__ import annotations

from .configs.manager_config import ManagerConfig
from .core.exceptions import *
from .core.plugin import Plugin, PluginState, UnresolvedImplementation, UnresolvedPlugin
from .core.plugin_manager import PLUGINS_EXECUTED, PREPARED, READY, MountFailure, MountPass, PluginManager
from .domain.tree import Node, build_tree, load_tree

__version__ = '1.0.0'
__description__ = 'Mounts plugins onto tree nodes declared through data attributes'

__all__ = [
    'PluginManager', 'MountPass', 'MountFailure', 'PREPARED', 'READY', 'PLUGINS_EXECUTED',
    'Plugin', 'PluginState', 'UnresolvedPlugin', 'UnresolvedImplementation',
    'ManagerConfig',
    'Node', 'build_tree', 'load_tree',
    'MntyError', 'PluginLoadError', 'PluginInstantiationError', 'PluginNotResolvedError',
    'OptionParseError', 'ConfigurationError',
]
