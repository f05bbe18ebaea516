# mnty/plugins/inspector.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mnty.core.plugin import Plugin

logger = logging.getLogger(__name__)


class InspectorOptions(BaseModel):
    model_config = ConfigDict(extra='forbid', alias_generator=to_camel, populate_by_name=True)

    label: str = Field(default='inspector', description='Prefix of the report log line')
    include_attributes: bool = Field(default=True, description='Whether node attributes are part of the report')
    mark_attribute: Optional[str] = Field(default=None, description='Attribute set to "inspected" on the node once executed')


class Inspector(Plugin):
    """
    Diagnostic plugin: reports the node it is mounted on and its sibling
    plugins once the lifecycle has run.

    ``data-mount="Inspector" data-inspector="'label': 'nav', 'markAttribute': 'data-seen'"``
    """

    name = 'Inspector'
    options_model = InspectorOptions

    def init(self) -> None:
        self.report: Dict[str, Any] = {}

    async def execute(self) -> None:
        settings: InspectorOptions = self.settings
        self.report = {
            'tag': self.node.tag,
            'plugins': self._sibling_plugins(),
            'children': len(self.node.children),
        }
        if settings.include_attributes:
            self.report['attributes'] = dict(self.node.attributes)
        logger.info('[%s] %s', settings.label, self.report)
        if settings.mark_attribute:
            self.node.set_attribute(settings.mark_attribute, 'inspected')

    def _sibling_plugins(self) -> List[str]:
        if self.manager is None:
            return []
        return [name for name in self.manager.instances_of(self.node) if self.manager.get_instance(self.node, name) is not self]

    def destroy(self) -> None:
        logger.debug('[%s] inspector detached from %r', self.options.get('label'), self.node)
