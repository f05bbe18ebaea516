from .autoloader import AutoLoader

__all__ = ['AutoLoader']
