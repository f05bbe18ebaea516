from .mutation_observer import MutationObserver, ObserverOptions

__all__ = ['MutationObserver', 'ObserverOptions']
