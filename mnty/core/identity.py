# mnty/core/identity.py
from __future__ import annotations

import itertools
import logging
import weakref
from typing import Optional, Sequence

from mnty.domain.tree import Node

__all__: Sequence[str] = ('IdentityRegistry', 'DEFAULT_ID_PROPERTY')
logger = logging.getLogger(__name__)

DEFAULT_ID_PROPERTY = 'data-mid'

# Shared by every registry in the process so two nodes never get the same number.
_identity_counter = itertools.count(1)
# identity -> the live node it was handed to
_owners: 'weakref.WeakValueDictionary[int, Node]' = weakref.WeakValueDictionary()


class IdentityRegistry:
    """
    Hands out the integer identities stored on mounted nodes.

    An identity belongs to the node it was handed to for as long as that node
    is alive. A copy of the attribute on another node (a tree rebuilt from
    ``to_dict()`` or reloaded from YAML while the original is still mounted)
    does not count: ``identity_of`` ignores it and ``ensure_identity``
    replaces it with a fresh one.
    """

    def __init__(self, id_property: str = DEFAULT_ID_PROPERTY) -> None:
        self.id_property = id_property

    def ensure_identity(self, node: Node) -> int:
        identity = self.identity_of(node)
        if identity is not None:
            _owners.setdefault(identity, node)
            return identity
        identity = next(_identity_counter)
        while identity in _owners:
            identity = next(_identity_counter)
        _owners[identity] = node
        node.set_attribute(self.id_property, identity)
        logger.debug('Assigned identity %d to %r', identity, node)
        return identity

    def identity_of(self, node: Node) -> Optional[int]:
        raw = node.get_attribute(self.id_property)
        if raw is None:
            return None
        try:
            identity = int(raw)
        except ValueError:
            logger.warning("Ignoring non-integer %s='%s' on %r", self.id_property, raw, node)
            return None
        owner = _owners.get(identity)
        if owner is not None and owner is not node:
            logger.debug('Ignoring %s=%d on %r, it belongs to %r', self.id_property, identity, node, owner)
            return None
        return identity
