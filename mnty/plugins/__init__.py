from .inspector import Inspector, InspectorOptions

__all__ = ['Inspector', 'InspectorOptions']
