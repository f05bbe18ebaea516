# mnty/__main__.py
"""
Mount the plugins declared in a YAML tree document and report the result.

    python -m mnty tree.yaml --load-from app.plugins --timeout 5
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from mnty import __version__
from mnty.bootstrap.autoloader import AutoLoader
from mnty.configs.config_loader import ConfigLoader
from mnty.configs.manager_config import ManagerConfig
from mnty.core.exceptions import ConfigurationError
from mnty.core.plugin_manager import MountPass, PluginManager
from mnty.domain.tree import Node, load_tree
from mnty.runtime.logging_config import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_TIMEOUT = 1
EXIT_BAD_INPUT = 2


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='mnty',
        description='Mount the plugins declared in a tree document',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  # Mount plugins from the app.plugins package
  python -m mnty page.yaml --load-from app.plugins

  # Skip a plugin and give slow plugins more time
  python -m mnty page.yaml --disable widgets/Hider --timeout 30
        ''',
    )
    parser.add_argument('tree', type=Path, help='YAML document describing the node tree')
    parser.add_argument('--config', '-c', type=Path, help='YAML/JSON manager configuration file')
    parser.add_argument('--load-from', help='Package plugin names are resolved against')
    parser.add_argument('--base-url', help='Directory added to the import path for plugin packages')
    parser.add_argument('--disable', action='append', metavar='NAME', help='Plugin name to disable (repeatable)')
    parser.add_argument('--timeout', '-t', type=float, default=10.0, help='Seconds to wait for all plugins to execute (default: 10)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    parser.add_argument('--version', action='version', version=f'mnty {__version__}')
    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    provided: Dict[str, Any] = {}
    if args.load_from is not None:
        provided['load_from'] = args.load_from
    if args.base_url is not None:
        provided['base_url'] = args.base_url
    if args.disable:
        provided['disabled_plugins'] = args.disable
    if args.verbose:
        provided['logging_enabled'] = True
    return provided


def print_summary(manager: PluginManager, mount_pass: MountPass) -> None:
    print(f'\n=== Mount Summary (pass {mount_pass.number}) ===')
    print(f'Declaring nodes: {len(mount_pass.nodes)}')
    print(f"Requested plugins: {', '.join(mount_pass.requested) or '-'}")
    print(f'Mounted instances: {manager.instances.count()}')
    for identity, name, instance in manager.instances.items():
        state = getattr(instance, 'state', None)
        state_label = f' [{state.value}]' if state is not None else ''
        print(f'  node[{identity}] {name} -> {type(instance).__name__}{state_label}')
    if mount_pass.failures:
        print(f'Failures: {len(mount_pass.failures)}')
        for failure in mount_pass.failures:
            print(f'  ✗ {failure.plugin}: {type(failure.error).__name__}: {failure.error}')


async def run(document: Node, config: ManagerConfig, timeout: float) -> int:
    manager = PluginManager(config)
    async with AutoLoader(manager).run(document) as mount_pass:
        if mount_pass is None:
            print('No nodes declare plugins, nothing to mount.')
            return EXIT_OK
        try:
            await asyncio.wait_for(asyncio.shield(mount_pass.executed), timeout=timeout)
            await asyncio.wait_for(manager.wait_pending(), timeout=timeout)
        except asyncio.TimeoutError:
            print_summary(manager, mount_pass)
            print(f'\n✗ Timed out after {timeout:g}s waiting for plugins to execute')
            return EXIT_TIMEOUT
        print_summary(manager, mount_pass)
        print('\n✓ All plugins executed')
        return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)
    if args.verbose:
        configure_logging(logging.DEBUG)

    try:
        document = load_tree(args.tree)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f'Error: could not read tree document {args.tree}: {exc}', file=sys.stderr)
        return EXIT_BAD_INPUT

    try:
        config = ConfigLoader().load(args.config, provided=_overrides(args))
    except ConfigurationError as exc:
        print(f'Error: {exc}', file=sys.stderr)
        return EXIT_BAD_INPUT

    return asyncio.run(run(document, config, args.timeout))


if __name__ == '__main__':
    sys.exit(main())
