# mnty/core/scanner.py
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Sequence

from mnty.domain.tree import Node
from mnty.runtime.option_parser import parse_options

__all__: Sequence[str] = ('DeclarationScanner', 'options_attribute_for', 'DEFAULT_MOUNT_POINT')
logger = logging.getLogger(__name__)

DEFAULT_MOUNT_POINT = 'data-mount'
PLUGIN_DELIMITER = ','


def options_attribute_for(plugin_name: str) -> str:
    """``widgets/Hider`` keeps its options in ``data-widgets-hider``."""
    return 'data-' + plugin_name.replace('/', '-').lower()


class DeclarationScanner:
    """Finds nodes that declare plugins and reads what they declare."""

    def __init__(self, mount_point: str = DEFAULT_MOUNT_POINT, option_parser: Callable[[str], Dict[str, Any]] = parse_options) -> None:
        self.mount_point = mount_point
        self._parse = option_parser

    def find_declaring_nodes(self, root: Node) -> List[Node]:
        return root.select(self.mount_point)

    def declared_components(self, node: Node) -> List[str]:
        # Names are returned untrimmed; the orchestrator trims them when mounting.
        value = node.get_attribute(self.mount_point)
        if not value:
            return []
        return value.split(PLUGIN_DELIMITER)

    def options_for(self, node: Node, plugin_name: str) -> Dict[str, Any]:
        raw = node.get_attribute(options_attribute_for(plugin_name), '')
        return self._parse(raw)

    def used_components(self, nodes: Iterable[Node], is_disabled: Callable[[str], bool]) -> List[str]:
        """The distinct, enabled plugin names declared by ``nodes``, in first-seen order."""
        used: Dict[str, None] = {}
        for node in nodes:
            for raw_name in self.declared_components(node):
                name = raw_name.strip()
                if not name or name in used:
                    continue
                if is_disabled(name):
                    logger.debug("Plugin '%s' is disabled, not loading it", name)
                    continue
                used[name] = None
        return list(used)
