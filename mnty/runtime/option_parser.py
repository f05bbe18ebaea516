# mnty/runtime/option_parser.py
"""
Parses the compact option strings found in ``data-<plugin>`` attributes.

The encoding is the body of a JSON object, with single quotes allowed in
place of double quotes: ``'color': 'red', 'delay': 200``. Surrounding braces
are optional.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Sequence, Union

from mnty.core.exceptions import OptionParseError

__all__: Sequence[str] = ('parse_options', 'decode_options')
logger = logging.getLogger(__name__)


def decode_options(option_string: str) -> Dict[str, Any]:
    document = option_string.strip().replace("'", '"')
    if not (document.startswith('{') and document.endswith('}')):
        document = '{' + document + '}'
    try:
        options = json.loads(document)
    except json.JSONDecodeError as exc:
        raise OptionParseError(f'Error while parsing options string "{document}": {exc.msg} at column {exc.colno}') from exc
    if not isinstance(options, dict):
        raise OptionParseError(f'Options string "{document}" does not describe a mapping')
    return options


def parse_options(option_string: Union[str, Mapping[str, Any], None]) -> Dict[str, Any]:
    """Return the options mapping, or an empty one if the string cannot be parsed."""
    if isinstance(option_string, Mapping):
        return dict(option_string)
    if not option_string or not option_string.strip():
        return {}
    try:
        return decode_options(option_string)
    except OptionParseError as exc:
        logger.error('%s', exc)
        return {}
