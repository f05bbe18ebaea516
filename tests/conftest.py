import logging

import pytest

from mnty.core.plugin_manager import PluginManager
from mnty.domain.tree import Node
from mnty.runtime.logging_config import LOGGER_NAME, set_logging_enabled


@pytest.fixture(autouse=True)
def mnty_logging():
    # Managers switch the mnty logger off unless loggingEnabled is set; keep it
    # on and propagating so caplog sees every record.
    mnty_logger = logging.getLogger(LOGGER_NAME)
    mnty_logger.propagate = True
    set_logging_enabled(True)
    yield
    mnty_logger.propagate = True
    set_logging_enabled(True)


@pytest.fixture
def manager():
    return PluginManager({'loadFrom': 'tests.plugins', 'loggingEnabled': True})


@pytest.fixture
def page():
    """A small document: one plain node and two declaring ones."""
    header = Node('header', {'data-mount': 'widgets/Colorizer'})
    nav = Node('nav', {'data-mount': 'widgets/Colorizer,widgets/Hider', 'data-widgets-hider': "'color': 'blue'"})
    footer = Node('footer')
    return Node('body', children=[header, nav, footer])
