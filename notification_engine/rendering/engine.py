"""Template rendering for email and SMS notifications using Jinja2.

Templates use ``{{ path.to.value }}`` placeholders. Rendering is lenient:
unresolved references render as an empty string so a missing optional value
never blocks a delivery. Business identity fields are always available under
``business.*``.
"""

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from jinja2 import ChainableUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from notification_engine.domain.models import (
    BusinessContext,
    Channel,
    NotificationTemplate,
    TemplateVariable,
)
from notification_engine.logging import get_logger

logger = get_logger(__name__, component="rendering")

SMS_SINGLE_SEGMENT_LENGTH = 160
SMS_MULTI_SEGMENT_LENGTH = 153
SHORTENED_URL_LENGTH = 23
DEFAULT_VARIABLE_LENGTH = 50

_PLACEHOLDER = re.compile(r"\{\{\s*(.*?)\s*\}\}", re.DOTALL)
_REFERENCE_PATH = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*")
_URL = re.compile(r"https?://[^\s<>\"']+")


class TemplateRenderError(Exception):
    """Raised when a template cannot be parsed or rendered."""


@dataclass
class RenderedOutput:
    """Result of rendering a template."""

    text: str
    subject: Optional[str] = None
    html: Optional[str] = None
    character_count: int = 0
    segment_count: int = 0
    warnings: List[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    """Outcome of TemplateEngine.validate()."""

    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class SmsEstimate:
    """Worst-case SMS sizing for a template."""

    max_length: int
    exceeds_single_segment: bool
    estimated_segments: int


def _finalize(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class _TemplateEnvironment(SandboxedEnvironment):
    """Sandboxed environment where ``a.b`` means ``a["b"]`` for mappings.

    Template data is plain nested mappings, so keys must win over dict
    attributes: ``{{ order.items }}`` reads the "items" key, never dict.items.
    """

    def getattr(self, obj, attribute):
        if isinstance(obj, Mapping):
            try:
                return obj[attribute]
            except (KeyError, TypeError):
                return self.undefined(obj=obj, name=attribute)
        return super().getattr(obj, attribute)


def _reference_paths(source: Optional[str]) -> List[str]:
    """Extract variable paths from every ``{{ ... }}`` in source, in order."""
    if not source:
        return []
    paths = []
    for match in _PLACEHOLDER.finditer(source):
        expression = match.group(1).split("|", 1)[0].strip()
        path = _REFERENCE_PATH.match(expression)
        if path:
            paths.append(path.group(0))
    return paths


class TemplateEngine:
    """Renders notification templates and estimates SMS sizing.

    Stateless apart from the business context and compiled Jinja2
    environments, so one instance can be shared across threads.
    """

    def __init__(self, business: Optional[BusinessContext] = None):
        """Initialize engine.

        Args:
            business: Business identity injected under ``business.*``
                (defaults to BusinessContext())
        """
        self.business = business or BusinessContext()
        self._business_dict = self.business.model_dump()

        env_options = dict(
            undefined=ChainableUndefined,
            finalize=_finalize,
            keep_trailing_newline=True,
        )
        self.text_env = _TemplateEnvironment(autoescape=False, **env_options)
        self.html_env = _TemplateEnvironment(autoescape=True, **env_options)

    def build_context(self, data: Optional[Mapping]) -> Dict[str, Any]:
        """Merge caller data with the business context.

        The business context always wins over a caller-supplied ``business`` key.
        """
        context = dict(data or {})
        context["business"] = self._business_dict
        return context

    def render_string(self, source: Optional[str], data: Optional[Mapping], html: bool = False) -> str:
        """Render a single template string.

        Raises:
            TemplateRenderError: If the template cannot be parsed or evaluated
        """
        if not source:
            return ""
        env = self.html_env if html else self.text_env
        try:
            return env.from_string(source).render(self.build_context(data))
        except TemplateError as e:
            raise TemplateRenderError(f"Template rendering failed: {e}") from e

    def render(self, template: NotificationTemplate, data: Optional[Mapping]) -> RenderedOutput:
        """Render subject, HTML body and text body of a template.

        Args:
            template: Template to render
            data: Caller-supplied template variables

        Returns:
            RenderedOutput with SMS sizing and warnings

        Raises:
            TemplateRenderError: If any part fails to render
        """
        subject = None
        if template.subject_template:
            subject = self.render_string(template.subject_template, data).strip().replace("\n", " ")

        html = None
        if template.body_template_html:
            html = self.render_string(template.body_template_html, data, html=True)

        text = self.render_string(template.body_template_text, data)

        segments = self.segment_count(text)
        warnings = []
        if template.channel == Channel.SMS and segments > 1:
            warnings.append(f"Message is {len(text)} characters ({segments} SMS segments)")

        logger.debug(
            "Template rendered",
            extra={
                "event": "template.rendered",
                "template_id": template.id,
                "template_version": template.version,
                "character_count": len(text),
                "segment_count": segments,
            },
        )

        return RenderedOutput(
            subject=subject,
            html=html,
            text=text,
            character_count=len(text),
            segment_count=segments,
            warnings=warnings,
        )

    def validate(self, template: NotificationTemplate, provided_variable_names: Iterable[str]) -> ValidationResult:
        """Check a template against the variables a caller will provide.

        - error: a required variable is not among provided_variable_names
        - error: a template part does not parse
        - warning: a referenced variable is not declared by the template
          (``business.*`` references are always available)
        """
        provided = set(provided_variable_names)
        errors: List[str] = []
        warnings: List[str] = []

        for name in template.required_variables:
            if name not in provided and not any(p.startswith(f"{name}.") for p in provided):
                errors.append(f"Required variable '{name}' was not provided")

        declared = {v.name for v in template.variables}
        reported = set()
        for part_name, source in self._template_parts(template):
            if not source:
                continue
            try:
                self.text_env.parse(source)
            except TemplateError as e:
                errors.append(f"Invalid template syntax in {part_name}: {e}")
                continue
            for path in _reference_paths(source):
                if path == "business" or path.startswith("business."):
                    continue
                if path.split(".", 1)[0] not in declared and path not in reported:
                    reported.add(path)
                    warnings.append(f"Variable '{path}' is not defined in template variables list")

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    @staticmethod
    def _template_parts(template: NotificationTemplate):
        return (
            ("subject", template.subject_template),
            ("html body", template.body_template_html),
            ("text body", template.body_template_text),
        )

    @staticmethod
    def segment_count(text: str) -> int:
        """Number of SMS segments needed for text.

        Examples:
            >>> TemplateEngine.segment_count("x" * 160)
            1
            >>> TemplateEngine.segment_count("x" * 161)
            2
        """
        length = len(text or "")
        if length == 0:
            return 0
        if length <= SMS_SINGLE_SEGMENT_LENGTH:
            return 1
        return math.ceil(length / SMS_MULTI_SEGMENT_LENGTH)

    def character_count(self, template_text: str, variables: Iterable[TemplateVariable] = ()) -> int:
        """Worst-case rendered length of template_text.

        Each placeholder counts as its variable's max_length (the actual value
        length for ``business.*``, DEFAULT_VARIABLE_LENGTH when undeclared).
        Literal URLs longer than SHORTENED_URL_LENGTH count as that length.
        The template itself is never modified.
        """
        if not template_text:
            return 0

        limits = {v.name: v.max_length for v in variables}

        def placeholder_length(match) -> str:
            paths = _reference_paths(match.group(0))
            length = self._reference_length(paths[0], limits) if paths else 0
            return "x" * length

        expanded = _PLACEHOLDER.sub(placeholder_length, template_text)

        length = len(expanded)
        for url in _URL.findall(template_text):
            if len(url) > SHORTENED_URL_LENGTH:
                length -= len(url) - SHORTENED_URL_LENGTH
        return length

    def _reference_length(self, path: str, limits: Dict[str, Optional[int]]) -> int:
        if path.startswith("business."):
            value = self._business_dict.get(path.split(".", 1)[1])
            return len(str(value)) if value is not None else 0
        max_length = limits.get(path.split(".", 1)[0])
        return max_length if max_length is not None else DEFAULT_VARIABLE_LENGTH

    def estimate_sms(self, template: NotificationTemplate) -> SmsEstimate:
        """Worst-case SMS sizing for the template's text body."""
        max_length = self.character_count(template.body_template_text, template.variables)
        return SmsEstimate(
            max_length=max_length,
            exceeds_single_segment=max_length > SMS_SINGLE_SEGMENT_LENGTH,
            estimated_segments=self.segment_count("x" * max_length),
        )
