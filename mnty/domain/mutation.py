# mnty/domain/mutation.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Protocol, Sequence, Tuple, runtime_checkable

if TYPE_CHECKING:
    from mnty.domain.tree import Node

__all__: Sequence[str] = ('MutationType', 'MutationRecord', 'MutationListener')


class MutationType(str, Enum):
    CHILD_LIST = 'childList'
    ATTRIBUTES = 'attributes'

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class MutationRecord:
    """A single change to the tree, as delivered to observers in batches."""
    type: MutationType
    target: 'Node'
    added_nodes: Tuple['Node', ...] = field(default_factory=tuple)
    removed_nodes: Tuple['Node', ...] = field(default_factory=tuple)
    attribute_name: Optional[str] = None
    old_value: Optional[str] = None

    @classmethod
    def child_list(cls, target: 'Node', added: Sequence['Node'] = (), removed: Sequence['Node'] = ()) -> 'MutationRecord':
        return cls(MutationType.CHILD_LIST, target, tuple(added), tuple(removed))

    @classmethod
    def attributes(cls, target: 'Node', name: str, old_value: Optional[str]) -> 'MutationRecord':
        return cls(MutationType.ATTRIBUTES, target, attribute_name=name, old_value=old_value)


@runtime_checkable
class MutationListener(Protocol):
    """Registration a node consults when one of its descendants (or itself) changes."""
    observer: object

    def accepts(self, record: MutationRecord, node: 'Node') -> Optional[MutationRecord]:
        ...

    def deliver(self, record: MutationRecord) -> None:
        ...
