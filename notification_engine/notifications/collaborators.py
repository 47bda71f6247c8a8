"""Collaborator interfaces consumed by the notification service.

Templates, enable/disable settings and recipient preferences are owned by
other parts of the business. The service only depends on the protocols
below; the in-memory implementations back the CLI and the tests.
"""

from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Tuple, Union

import yaml
from pydantic import ValidationError

from notification_engine.config.exceptions import ConfigurationError
from notification_engine.domain.models import Channel, NotificationTemplate
from notification_engine.logging import get_logger

logger = get_logger(__name__, component="notification")

ALL_TYPES = "*"


class TemplateRepository(Protocol):
    def get_by_type_and_channel(
        self, notification_type: str, channel: Channel
    ) -> Optional[NotificationTemplate]:
        ...


class NotificationSettings(Protocol):
    def is_enabled(self, notification_type: str, channel: Optional[Channel] = None) -> bool:
        ...


class RecipientPreferences(Protocol):
    def is_opted_out(self, recipient_id: str, notification_type: str) -> bool:
        ...


class InMemoryTemplateRepository:
    """Templates keyed by (type, channel). The latest version of a pair wins."""

    def __init__(self, templates: Iterable[NotificationTemplate] = ()):
        self._templates: Dict[Tuple[str, str], NotificationTemplate] = {}
        for template in templates:
            self.add(template)

    def add(self, template: NotificationTemplate) -> None:
        key = (template.type, Channel(template.channel).value)
        existing = self._templates.get(key)
        if existing is None or template.version >= existing.version:
            self._templates[key] = template

    def get_by_type_and_channel(
        self, notification_type: str, channel: Union[Channel, str]
    ) -> Optional[NotificationTemplate]:
        return self._templates.get((notification_type, Channel(channel).value))

    def all(self) -> List[NotificationTemplate]:
        return list(self._templates.values())

    def __len__(self) -> int:
        return len(self._templates)


def load_templates_file(path: Union[str, Path]) -> InMemoryTemplateRepository:
    """Load templates from a YAML file with a top-level ``templates`` list.

    Raises:
        ConfigurationError: If the file is missing, unparsable or a template is invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(
            f"Templates file not found: {path}",
            suggestions=["Check notifications.templates_file in config.yaml"],
        )

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML syntax in templates file {path}", errors=[str(e)]) from e

    entries = data.get("templates") if isinstance(data, Mapping) else None
    if not isinstance(entries, list):
        raise ConfigurationError(
            f"Templates file {path} must contain a top-level 'templates' list"
        )

    templates = []
    errors = []
    for index, entry in enumerate(entries):
        try:
            templates.append(NotificationTemplate.model_validate(entry))
        except ValidationError as e:
            for error in e.errors():
                loc = ".".join(str(part) for part in error["loc"])
                errors.append(f"templates[{index}].{loc}: {error['msg']}")

    if errors:
        raise ConfigurationError(f"Invalid templates in {path}", errors=errors)

    logger.info(
        f"Loaded {len(templates)} templates from {path}",
        extra={"event": "templates.loaded", "count": len(templates)},
    )
    return InMemoryTemplateRepository(templates)


class StaticSettings:
    """Settings backed by fixed disabled-type and disabled-channel lists."""

    def __init__(
        self,
        disabled_types: Iterable[str] = (),
        disabled_channels: Iterable[Union[Channel, str]] = (),
    ):
        self.disabled_types = set(disabled_types)
        self.disabled_channels = {Channel(c).value for c in disabled_channels}

    def is_enabled(self, notification_type: str, channel: Optional[Channel] = None) -> bool:
        if notification_type in self.disabled_types:
            return False
        if channel is not None and Channel(channel).value in self.disabled_channels:
            return False
        return True


class StaticPreferences:
    """Opt-outs keyed by recipient id; ``"*"`` opts out of every type."""

    def __init__(self, opt_outs: Optional[Mapping[str, Iterable[str]]] = None):
        self.opt_outs: Dict[str, set] = {
            recipient: set(types) for recipient, types in (opt_outs or {}).items()
        }

    def opt_out(self, recipient_id: str, notification_type: str = ALL_TYPES) -> None:
        self.opt_outs.setdefault(recipient_id, set()).add(notification_type)

    def is_opted_out(self, recipient_id: str, notification_type: str) -> bool:
        types = self.opt_outs.get(recipient_id)
        if not types:
            return False
        return ALL_TYPES in types or notification_type in types
