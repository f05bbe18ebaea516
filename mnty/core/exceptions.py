"""
Exception classes for the mnty mount manager.

None of these abort a mount or unmount pass: the manager catches them per
plugin, logs them and carries on with the remaining plugins.
"""

from typing import Optional


class MntyError(RuntimeError):
    """
    Base exception for all mnty errors.

    Carries the plugin name and node identity involved, when known, and
    renders them after the message.
    """

    def __init__(self, message: str, plugin: Optional[str] = None, node_id: Optional[int] = None):
        super().__init__(message)
        self.plugin = plugin
        self.node_id = node_id

    def __str__(self) -> str:
        base_msg = super().__str__()

        context_parts = []
        if self.plugin:
            context_parts.append(f"plugin={self.plugin}")
        if self.node_id is not None:
            context_parts.append(f"node={self.node_id}")

        if context_parts:
            return f"{base_msg} ({', '.join(context_parts)})"
        return base_msg


class PluginLoadError(MntyError):
    """
    Raised when a plugin implementation cannot be resolved.

    The loader never lets this escape; it is stored on the stub that
    replaces the missing implementation for the current pass.
    """
    pass


class PluginInstantiationError(MntyError):
    """Raised when a plugin cannot be constructed, e.g. for invalid options."""
    pass


class PluginNotResolvedError(PluginInstantiationError):
    """Raised at mount time for a declared name with no resolved implementation."""
    pass


class OptionParseError(MntyError, ValueError):
    """Raised internally when an option string is not a valid mapping."""
    pass


class ConfigurationError(MntyError):
    """Raised when manager configuration cannot be read or validated."""
    pass


__all__ = [
    'MntyError',
    'PluginLoadError',
    'PluginInstantiationError',
    'PluginNotResolvedError',
    'OptionParseError',
    'ConfigurationError',
]
