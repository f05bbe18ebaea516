# mnty/infrastructure/mutation_observer.py
from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, List, Optional, Sequence

from mnty.domain.mutation import MutationRecord, MutationType
from mnty.domain.tree import Node

__all__: Sequence[str] = ('MutationObserver', 'ObserverOptions')
logger = logging.getLogger(__name__)

MutationCallback = Callable[[List[MutationRecord], 'MutationObserver'], None]


@dataclass(frozen=True)
class ObserverOptions:
    child_list: bool = False
    attributes: bool = False
    subtree: bool = False
    attribute_old_value: bool = False
    attribute_filter: Optional[FrozenSet[str]] = None


class _Registration:

    def __init__(self, observer: 'MutationObserver', node: Node, options: ObserverOptions) -> None:
        self.observer = observer
        self.node = node
        self.options = options

    def accepts(self, record: MutationRecord, node: Node) -> Optional[MutationRecord]:
        opts = self.options
        if node is not record.target and not opts.subtree:
            return None
        if record.type is MutationType.CHILD_LIST:
            return record if opts.child_list else None
        if not opts.attributes:
            return None
        if opts.attribute_filter is not None and record.attribute_name not in opts.attribute_filter:
            return None
        if not opts.attribute_old_value and record.old_value is not None:
            return dataclasses.replace(record, old_value=None)
        return record

    def deliver(self, record: MutationRecord) -> None:
        self.observer._enqueue(record)


class MutationObserver:
    """
    Watches nodes and reports their mutations to a callback.

    Records are queued as they happen and handed to the callback in one batch
    on the next event loop iteration. Without a running loop the batch is
    delivered immediately.
    """

    def __init__(self, callback: MutationCallback) -> None:
        self._callback = callback
        self._records: List[MutationRecord] = []
        self._registrations: List[_Registration] = []
        self._delivery_scheduled = False

    def observe(
        self,
        target: Node,
        *,
        child_list: bool = False,
        attributes: Optional[bool] = None,
        subtree: bool = False,
        attribute_old_value: bool = False,
        attribute_filter: Optional[Iterable[str]] = None,
    ) -> None:
        if attributes is None:
            attributes = attribute_old_value or attribute_filter is not None
        if not child_list and not attributes:
            raise ValueError('observe() needs child_list or attributes enabled')
        options = ObserverOptions(
            child_list=child_list,
            attributes=attributes,
            subtree=subtree,
            attribute_old_value=attribute_old_value,
            attribute_filter=frozenset(attribute_filter) if attribute_filter is not None else None,
        )
        for registration in self._registrations:
            if registration.node is target:
                registration.options = options
                logger.debug('Updated observation options for %r', target)
                return
        registration = _Registration(self, target, options)
        target.add_listener(registration)
        self._registrations.append(registration)
        logger.debug('Observing %r (%s)', target, options)

    def disconnect(self) -> None:
        for registration in self._registrations:
            registration.node.remove_listener(registration)
        self._registrations.clear()
        self._records.clear()

    def take_records(self) -> List[MutationRecord]:
        records, self._records = self._records, []
        return records

    @property
    def is_observing(self) -> bool:
        return bool(self._registrations)

    def _enqueue(self, record: MutationRecord) -> None:
        self._records.append(record)
        if self._delivery_scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deliver()
            return
        self._delivery_scheduled = True
        loop.call_soon(self._deliver)

    def _deliver(self) -> None:
        self._delivery_scheduled = False
        records = self.take_records()
        if not records:
            return
        try:
            self._callback(records, self)
        except Exception as exc:
            logger.exception('Mutation callback failed for %d record(s): %s', len(records), exc)
