from __future__ import annotations
import copy
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Final, Mapping, MutableMapping, Optional, Sequence
import yaml
from pydantic import ValidationError

from mnty.configs.manager_config import ManagerConfig
from mnty.core.exceptions import ConfigurationError

__all__: Sequence[str] = ('ConfigLoader', 'DEFAULT_CONFIG')
logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = ManagerConfig().model_dump()
_SECTION_KEY: Final[str] = 'mnty'
_TRUE_VALUES: Final[frozenset[str]] = frozenset({'1', 'true', 'yes', 'on'})
_RE_ENV_DEFAULT: Final[re.Pattern[str]] = re.compile('\\$\\{([A-Za-z_][A-Za-z0-9_]*)[:-]-?(.*?)\\}')


def _interpolate_env(value: str) -> str:
    if not isinstance(value, str):
        return value

    def _repl(match: re.Match[str]) -> str:
        var, default = (match.group(1), match.group(2))
        return os.getenv(var, default)

    before = value
    value = _RE_ENV_DEFAULT.sub(_repl, value)
    value = os.path.expandvars(value)

    if before != value:
        logger.debug("Env expand: '%s' → '%s'", before, value)
    elif '${' in before:
        logger.warning("Unresolved env var in '%s'", before)

    return value


def _expand_tree(node: Any) -> Any:
    if isinstance(node, dict):
        return {k: _expand_tree(v) for k, v in node.items()}
    if isinstance(node, list):
        return [_expand_tree(v) for v in node]
    if isinstance(node, str):
        return _interpolate_env(node)
    return node


def _load_file(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding='utf-8')
    except FileNotFoundError:
        logger.warning('Config file not found: %s', path)
        return {}
    except OSError as exc:
        raise ConfigurationError(f'Failed to read {path}: {exc}') from exc

    try:
        if path.suffix.lower() == '.json':
            data = json.loads(text) if text.strip() else {}
        else:
            data = yaml.safe_load(text) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f'Failed to parse {path}: {exc}') from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f'{path} does not contain a top-level mapping')
    section = data.get(_SECTION_KEY)
    return dict(section) if isinstance(section, dict) else data


class ConfigLoader:
    """
    Builds a ManagerConfig from layered sources, later layers winning:
    defaults, a YAML/JSON file, ``MNTY_*`` environment variables, and an
    explicitly provided mapping.
    """

    def __init__(self, env_prefix: str = 'MNTY_', environ: Optional[Mapping[str, str]] = None) -> None:
        self._env_prefix = env_prefix
        self._environ = environ if environ is not None else os.environ

    def load(self, path: Optional[str | Path] = None, provided: Optional[Mapping[str, Any]] = None) -> ManagerConfig:
        cfg: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)

        if path is not None:
            file_cfg = ManagerConfig.normalize_keys(_load_file(Path(path).expanduser()))
            self._merge(cfg, file_cfg, f'file {path}')

        self._merge(cfg, self._env_overrides(), 'environment')

        if provided:
            self._merge(cfg, ManagerConfig.normalize_keys(provided), 'provided config')

        cfg = _expand_tree(cfg)
        try:
            config = ManagerConfig.model_validate(cfg)
        except ValidationError as exc:
            raise ConfigurationError(f'Invalid mnty configuration: {exc}') from exc
        logger.debug('Resolved mnty config: %s', config.model_dump())
        return config

    def _env_overrides(self) -> Dict[str, Any]:
        overrides: Dict[str, Any] = {}
        for field_name, info in ManagerConfig.model_fields.items():
            raw = self._environ.get(f'{self._env_prefix}{field_name.upper()}')
            if raw is None:
                continue
            if info.annotation is bool:
                overrides[field_name] = raw.strip().lower() in _TRUE_VALUES
            else:
                overrides[field_name] = raw
        return overrides

    @staticmethod
    def _merge(base: MutableMapping[str, Any], override: Mapping[str, Any], label: str) -> None:
        if not override:
            return
        logger.debug('Merging %s: %s', label, sorted(override))
        for key, value in override.items():
            base[key] = copy.deepcopy(value)
