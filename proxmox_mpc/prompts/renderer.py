"""
Prompt rendering.

Templates are tokenized once into literal and ``{{variable}}`` segments and
rendered in a single pass, so values that themselves contain ``{{...}}`` are
emitted as-is and never expanded.
"""

import json
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any

from proxmox_mpc.framework.errors import PromptNotFoundError, PromptRenderError
from proxmox_mpc.prompts.templates import BUILTIN_TEMPLATES, PromptTemplate

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{\{([A-Za-z_][A-Za-z0-9_]*)\}\}")


@dataclass(frozen=True)
class Segment:
    """Literal text, or a variable reference when ``variable`` is set."""

    text: str
    variable: str | None = None


def tokenize(template: str) -> list[Segment]:
    segments = []
    pos = 0
    for match in PLACEHOLDER.finditer(template):
        if match.start() > pos:
            segments.append(Segment(template[pos : match.start()]))
        segments.append(Segment(match.group(0), match.group(1)))
        pos = match.end()
    if pos < len(template):
        segments.append(Segment(template[pos:]))
    return segments


def format_value(value: Any) -> str:
    """String form of a context value.

    Mappings render as ``- key: value`` lines and sequences as a
    comma-separated list; None renders empty.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Mapping):
        return "\n".join(f"- {key}: {_inline(item)}" for key, item in value.items())
    if isinstance(value, (list, tuple, set, frozenset)):
        return ", ".join(_inline(item) for item in value)
    return str(value)


def _inline(value: Any) -> str:
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, default=str)
    return format_value(value)


class PromptRenderer:
    """Read-only registry of prompt templates and their renderer.

    Args:
        workspace_path: Default for the ``workspacePath`` variable
        templates: Templates to register (the built-ins by default)
    """

    def __init__(
        self,
        workspace_path: str | Path,
        templates: Iterable[PromptTemplate] = BUILTIN_TEMPLATES,
    ) -> None:
        self.workspace_path = str(workspace_path)
        registry = {t.name: t for t in templates}
        self._templates = MappingProxyType(registry)
        self._segments = MappingProxyType({name: tokenize(t.template) for name, t in registry.items()})

    def list_templates(self) -> list[PromptTemplate]:
        return list(self._templates.values())

    def get_template(self, name: str) -> PromptTemplate:
        template = self._templates.get(name)
        if template is None:
            raise PromptNotFoundError(name)
        return template

    def missing_variables(self, name: str, context: Mapping[str, Any] | None = None) -> list[str]:
        """Placeholders of ``name`` that ``context`` leaves unresolved."""
        self.get_template(name)
        values = self._with_defaults(context)
        return list(
            dict.fromkeys(
                s.variable for s in self._segments[name] if s.variable and s.variable not in values
            )
        )

    def render(
        self, name: str, context: Mapping[str, Any] | None = None, strict: bool = False
    ) -> str:
        """Render a template.

        Unresolved placeholders are left verbatim unless ``strict`` is set.

        Raises:
            PromptNotFoundError: Unknown template name
            PromptRenderError: ``strict`` and some placeholders are unresolved
        """
        self.get_template(name)
        values = self._with_defaults(context)

        if strict:
            missing = self.missing_variables(name, context)
            if missing:
                raise PromptRenderError(name, missing)

        parts = []
        for segment in self._segments[name]:
            if segment.variable is not None and segment.variable in values:
                parts.append(format_value(values[segment.variable]))
            else:
                parts.append(segment.text)

        logger.debug("Rendered prompt %s with keys %s", name, sorted(values))
        return "".join(parts)

    def _with_defaults(self, context: Mapping[str, Any] | None) -> dict[str, Any]:
        values = dict(context or {})
        if values.get("workspacePath") is None:
            values["workspacePath"] = self.workspace_path
        return values
