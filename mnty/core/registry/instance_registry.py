import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


class InstanceRegistry:
    """
    Table of mounted plugin instances, keyed by node identity then plugin name.
    An identity is present only while at least one instance is filed under it.
    """

    def __init__(self) -> None:
        self._instances: Dict[int, Dict[str, Any]] = {}

    def file(self, identity: int, name: str, instance: Any) -> None:
        """
        File an instance under (identity, name), replacing any previous entry.
        """
        plugins = self._instances.setdefault(identity, {})
        if name in plugins:
            logger.warning("Replacing instance of plugin '%s' on node[%s]", name, identity)
        plugins[name] = instance
        logger.debug("Filed plugin '%s' (%s) under node[%s]", name, type(instance).__name__, identity)

    def get(self, identity: int, name: str, default: Any = None) -> Any:
        return self._instances.get(identity, {}).get(name, default)

    def has(self, identity: Optional[int], name: str) -> bool:
        return identity is not None and name in self._instances.get(identity, {})

    def remove(self, identity: int, name: str) -> Optional[Any]:
        """
        Drop one instance and, when it was the last one, the identity entry.
        Returns the removed instance or None if nothing was filed.
        """
        plugins = self._instances.get(identity)
        if not plugins or name not in plugins:
            return None
        instance = plugins.pop(name)
        if not plugins:
            del self._instances[identity]
            logger.debug('Node[%s] has no mounted plugins left', identity)
        return instance

    def names(self, identity: int) -> List[str]:
        return list(self._instances.get(identity, {}))

    def instances(self, identity: int) -> Dict[str, Any]:
        return dict(self._instances.get(identity, {}))

    def identities(self) -> List[int]:
        return list(self._instances)

    def items(self) -> Iterator[Tuple[int, str, Any]]:
        for identity, plugins in list(self._instances.items()):
            for name, instance in list(plugins.items()):
                yield identity, name, instance

    def count(self) -> int:
        return sum(len(plugins) for plugins in self._instances.values())

    def snapshot(self) -> Dict[int, Dict[str, str]]:
        return {
            identity: {name: type(instance).__name__ for name, instance in plugins.items()}
            for identity, plugins in self._instances.items()
        }

    def clear(self) -> None:
        self._instances.clear()

    def __contains__(self, identity: object) -> bool:
        return identity in self._instances

    def __len__(self) -> int:
        return len(self._instances)
