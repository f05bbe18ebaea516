# mnty/core/mutation_router.py
from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, Optional, Sequence

from mnty.domain.mutation import MutationRecord, MutationType
from mnty.domain.tree import Node
from mnty.infrastructure.mutation_observer import MutationObserver

__all__: Sequence[str] = ('MutationRouter',)
logger = logging.getLogger(__name__)

NodeCallback = Callable[[Node], None]


class MutationRouter:
    """
    Turns tree mutation batches into mount and unmount calls.

    Inserted nodes are handed to ``on_insert``, removed nodes to
    ``on_remove``. Changes of the mount attribute are observed but not acted
    on.
    """

    def __init__(
        self,
        on_insert: NodeCallback,
        on_remove: NodeCallback,
        attribute_name: str,
        observer_factory: Callable[..., MutationObserver] = MutationObserver,
    ) -> None:
        self._on_insert = on_insert
        self._on_remove = on_remove
        self._attribute_name = attribute_name
        self._observer_factory = observer_factory
        self._observer: Optional[MutationObserver] = None
        self._root: Optional[Node] = None
        self._handlers: Dict[MutationType, Callable[[MutationRecord], None]] = {
            MutationType.CHILD_LIST: self._handle_child_list,
            MutationType.ATTRIBUTES: self._handle_attribute_change,
        }

    @property
    def attribute_name(self) -> str:
        return self._attribute_name

    @attribute_name.setter
    def attribute_name(self, value: str) -> None:
        if value == self._attribute_name:
            return
        self._attribute_name = value
        if self._root is not None:
            # The attribute filter is fixed per observe() call.
            self.observe(self._root)

    @property
    def is_observing(self) -> bool:
        return self._observer is not None and self._observer.is_observing

    @property
    def root(self) -> Optional[Node]:
        return self._root

    def observe(self, root: Node) -> None:
        if self._observer is None:
            self._observer = self._observer_factory(self.handle_mutations)
        self._observer.observe(
            root,
            child_list=True,
            subtree=True,
            attributes=True,
            attribute_old_value=True,
            attribute_filter=[self._attribute_name],
        )
        self._root = root
        logger.debug('Observing mutations below %r (filter=%s)', root, self._attribute_name)

    def disconnect(self) -> None:
        if self._observer is None:
            return
        self._observer.disconnect()
        self._observer = None
        self._root = None
        logger.debug('Stopped observing mutations')

    def handle_mutations(self, records: Iterable[MutationRecord], observer: Optional[MutationObserver] = None) -> None:
        for record in records:
            self.handle_mutation(record)

    def handle_mutation(self, record: MutationRecord) -> None:
        handler = self._handlers.get(record.type)
        if handler is None:
            logger.debug('No handler for mutation type %s', record.type)
            return
        handler(record)

    def _handle_child_list(self, record: MutationRecord) -> None:
        for node in record.added_nodes:
            self._on_insert(node)
        for node in record.removed_nodes:
            self._on_remove(node)

    def _handle_attribute_change(self, record: MutationRecord) -> None:
        # Re-mounting on declaration changes is not supported.
        logger.debug(
            "Ignoring change of '%s' on %r (was %r)", record.attribute_name, record.target, record.old_value
        )
