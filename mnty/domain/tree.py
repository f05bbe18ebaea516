# mnty/domain/tree.py
"""
In-memory tree the manager mounts plugins onto.

Nodes carry a tag, string attributes and ordered children. Every structural
or attribute change is reported to the mutation listeners registered on the
changed node or on any of its ancestors.
"""
from __future__ import annotations

import logging
import pathlib
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from mnty.domain.mutation import MutationListener, MutationRecord

__all__: Sequence[str] = ('Node', 'build_tree', 'load_tree')
logger = logging.getLogger(__name__)


class Node:

    def __init__(self, tag: str = 'div', attributes: Optional[Mapping[str, Any]] = None, children: Optional[Sequence['Node']] = None) -> None:
        self.tag = tag
        self.parent: Optional[Node] = None
        self._attributes: Dict[str, str] = {str(k): str(v) for k, v in (attributes or {}).items()}
        self._children: List[Node] = []
        self._listeners: List[MutationListener] = []
        for child in children or ():
            self.append_child(child)

    def __repr__(self) -> str:
        attrs = ' '.join(f'{k}="{v}"' for k, v in self._attributes.items())
        return f'<{self.tag}{" " + attrs if attrs else ""}>'

    # ------------------------------------------------------------------ #
    # attributes
    # ------------------------------------------------------------------ #
    @property
    def attributes(self) -> Mapping[str, str]:
        return MappingProxyType(self._attributes)

    def get_attribute(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._attributes.get(name, default)

    def has_attribute(self, name: str) -> bool:
        return name in self._attributes

    def set_attribute(self, name: str, value: Any) -> None:
        old_value = self._attributes.get(name)
        self._attributes[name] = str(value)
        self._queue_record(MutationRecord.attributes(self, name, old_value))

    def remove_attribute(self, name: str) -> None:
        if name not in self._attributes:
            return
        old_value = self._attributes.pop(name)
        self._queue_record(MutationRecord.attributes(self, name, old_value))

    def data(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._attributes.get(f'data-{key}', default)

    # ------------------------------------------------------------------ #
    # structure
    # ------------------------------------------------------------------ #
    @property
    def children(self) -> tuple['Node', ...]:
        return tuple(self._children)

    @property
    def root(self) -> 'Node':
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    def append_child(self, child: 'Node') -> 'Node':
        return self.insert_before(child, None)

    def insert_before(self, child: 'Node', reference: Optional['Node']) -> 'Node':
        if child is self or child.contains(self):
            raise ValueError('A node cannot be inserted into its own subtree')
        if reference is not None and reference.parent is not self:
            raise ValueError('Reference node is not a child of this node')
        if child.parent is not None:
            child.parent.remove_child(child)
        index = len(self._children) if reference is None else self._children.index(reference)
        self._children.insert(index, child)
        child.parent = self
        self._queue_record(MutationRecord.child_list(self, added=[child]))
        return child

    def remove_child(self, child: 'Node') -> 'Node':
        if child.parent is not self:
            raise ValueError('Node is not a child of this node')
        self._children.remove(child)
        child.parent = None
        self._queue_record(MutationRecord.child_list(self, removed=[child]))
        return child

    def remove(self) -> None:
        if self.parent is not None:
            self.parent.remove_child(self)

    def contains(self, other: 'Node') -> bool:
        node: Optional[Node] = other
        while node is not None:
            if node is self:
                return True
            node = node.parent
        return False

    def iter(self) -> Iterator['Node']:
        """Walk the subtree in document order, this node first."""
        stack: List[Node] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node._children))

    def select(self, attribute: str) -> List['Node']:
        return [node for node in self.iter() if node.has_attribute(attribute)]

    # ------------------------------------------------------------------ #
    # mutation listeners
    # ------------------------------------------------------------------ #
    def add_listener(self, listener: MutationListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: MutationListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _queue_record(self, record: MutationRecord) -> None:
        notified: List[object] = []
        node: Optional[Node] = self
        while node is not None:
            for listener in tuple(node._listeners):
                if any(listener.observer is seen for seen in notified):
                    continue
                accepted = listener.accepts(record, node)
                if accepted is not None:
                    notified.append(listener.observer)
                    listener.deliver(accepted)
            node = node.parent

    # ------------------------------------------------------------------ #
    # construction helpers
    # ------------------------------------------------------------------ #
    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Node':
        if not isinstance(data, Mapping):
            raise ValueError(f'Tree node definition must be a mapping, got {type(data).__name__}')
        attributes = data.get('attributes') or {}
        if not isinstance(attributes, Mapping):
            raise ValueError(f"'attributes' must be a mapping, got {type(attributes).__name__}")
        children = data.get('children') or []
        if not isinstance(children, list):
            raise ValueError(f"'children' must be a list, got {type(children).__name__}")
        return cls(str(data.get('tag', 'div')), attributes, [cls.from_dict(child) for child in children])

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'tag': self.tag}
        if self._attributes:
            data['attributes'] = dict(self._attributes)
        if self._children:
            data['children'] = [child.to_dict() for child in self._children]
        return data


def build_tree(data: Mapping[str, Any]) -> Node:
    return Node.from_dict(data)


def load_tree(path: str | pathlib.Path) -> Node:
    import yaml
    with pathlib.Path(path).expanduser().open('r', encoding='utf-8') as fh:
        data = yaml.safe_load(fh)
    if isinstance(data, Mapping) and 'tree' in data:
        data = data['tree']
    logger.debug('Loaded tree document from %s', path)
    return build_tree(data)
