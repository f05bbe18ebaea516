from .mutation import MutationListener, MutationRecord, MutationType
from .tree import Node, build_tree, load_tree

__all__ = ['Node', 'build_tree', 'load_tree', 'MutationRecord', 'MutationType', 'MutationListener']
