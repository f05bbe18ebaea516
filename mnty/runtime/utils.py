# mnty/runtime/utils.py
import importlib
import logging
import traceback
from typing import Any, Optional
logger = logging.getLogger(__name__)

def import_by_path(path: str, suppress_expected_errors: bool=True) -> Any:
    if not isinstance(path, str):
        raise TypeError(f'Import path must be a string, got {type(path)}')
    if ':' in path:
        module_name, attr_name = path.split(':', 1)
    elif '.' in path:
        module_name, attr_name = path.rsplit('.', 1)
    else:
        raise ValueError(f"Import path '{path}' is ambiguous. Use 'pkg.mod:Class' or 'pkg.mod.Class'.")

    if not module_name or not attr_name:
        raise ValueError(f'Invalid import path format: {path}. Could not determine module and attribute.')

    log_level_if_not_found = logging.DEBUG if suppress_expected_errors else logging.ERROR

    try:
        module = importlib.import_module(module_name)
        logger.debug('Successfully imported module: %s', module_name)
    except ImportError as e:
        logger.log(log_level_if_not_found, "Failed to import module '%s' from path '%s': %s", module_name, path, e)
        raise ImportError(f"Could not import module '{module_name}': {e}") from e
    try:
        return getattr(module, attr_name)
    except AttributeError as e:
        logger.log(log_level_if_not_found, "Attribute '%s' not found in module '%s' (from path '%s')", attr_name, module_name, path)
        raise AttributeError(f"Attribute '{attr_name}' not found in module '{module_name}'") from e

def describe_exception_origin(exc: BaseException) -> Optional[str]:
    """``file:line`` of the innermost frame that raised ``exc``, if known."""
    frames = traceback.extract_tb(exc.__traceback__) if exc.__traceback__ else []
    if not frames:
        return None
    frame = frames[-1]
    return f'{frame.filename}:{frame.lineno}'
