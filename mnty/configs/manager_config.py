# mnty/configs/manager_config.py
from __future__ import annotations
import pathlib
from typing import Any, Dict, List, Mapping, Sequence
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

__all__: Sequence[str] = ('ManagerConfig',)

_DATA_PREFIX = 'data-'


def _ensure_data_attribute(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError('attribute name must not be empty')
    if not value.startswith(_DATA_PREFIX):
        value = _DATA_PREFIX + value
    return value


class ManagerConfig(BaseModel):
    """Settings of a PluginManager. Keys are accepted in snake_case or camelCase."""

    model_config = ConfigDict(
        extra='ignore',
        validate_assignment=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    load_from: str = Field(default='', description="Package plugins are imported from, e.g. 'app.plugins'.")
    logging_enabled: bool = Field(default=False, description='Whether the mnty loggers emit anything.')
    disabled_plugins: List[str] = Field(default_factory=list, description='Plugin names that are never loaded or mounted.')
    base_url: str = Field(default='', description='Directory added to the import search path for plugin packages.')
    mount_point: str = Field(default='data-mount', description='Attribute listing the plugins a node declares.')
    id_property: str = Field(default='data-mid', description='Attribute the node identity is stored in.')

    @field_validator('mount_point', 'id_property')
    @classmethod
    def _validate_attribute(cls, v: str) -> str:
        return _ensure_data_attribute(v)

    @field_validator('load_from')
    @classmethod
    def _validate_load_from(cls, v: str) -> str:
        return v.strip().rstrip('/.')

    @field_validator('disabled_plugins', mode='before')
    @classmethod
    def _split_disabled(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [name.strip() for name in v.split(',') if name.strip()]
        return v

    def is_disabled(self, plugin_name: str) -> bool:
        return plugin_name in self.disabled_plugins

    @classmethod
    def field_for_key(cls, key: str) -> str | None:
        """Map a snake_case or camelCase key to its field name."""
        if key in cls.model_fields:
            return key
        for name, info in cls.model_fields.items():
            if info.alias == key:
                return name
        return None

    @classmethod
    def normalize_keys(cls, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Known keys renamed to field names; unknown keys dropped."""
        normalized: Dict[str, Any] = {}
        for key, value in data.items():
            field = cls.field_for_key(str(key))
            if field is not None:
                normalized[field] = value
        return normalized

    @classmethod
    def from_yaml(cls, path: str | pathlib.Path) -> 'ManagerConfig':
        import yaml
        with pathlib.Path(path).expanduser().open('r', encoding='utf-8') as fh:
            data = yaml.safe_load(fh) or {}
        if isinstance(data, Mapping) and isinstance(data.get('mnty'), Mapping):
            data = data['mnty']
        return cls.model_validate(cls.normalize_keys(data))
