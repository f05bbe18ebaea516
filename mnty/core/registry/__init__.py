from .instance_registry import InstanceRegistry

__all__ = ['InstanceRegistry']
