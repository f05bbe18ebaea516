# mnty/core/__init__.py
# Submodules are imported directly (mnty.core.plugin_manager, ...) to keep
# this package free of import cycles.
