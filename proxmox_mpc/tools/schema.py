"""
Declarative tool parameter specs and the shared validator.

Each tool declares its parameters as :class:`ParamSpec` entries; the
descriptor turns them into a JSON Schema (draft 7) document and every tool
call is checked by the same :func:`validate_parameters` pass. Violations are
collected, never raised, and grouped into one readable message:

    Missing required parameters: node, memory; Parameter out of range: cores cannot exceed 64
"""

from dataclasses import dataclass, field
from typing import Any

from jsonschema import Draft7Validator

MISSING = "Missing required parameters"
BAD_TYPE = "Invalid parameter types"
OUT_OF_RANGE = "Parameter out of range"
BAD_VALUE = "Invalid parameter values"

# Order in which groups appear in the combined message.
GROUP_ORDER = (MISSING, BAD_TYPE, OUT_OF_RANGE, BAD_VALUE)

_TYPE_PHRASES = {
    "string": "a string",
    "number": "a number",
    "integer": "an integer",
    "boolean": "boolean",
    "array": "an array",
    "object": "an object",
}


@dataclass(frozen=True)
class ParamSpec:
    """One tool parameter."""

    name: str
    type: str
    description: str
    required: bool = False
    enum: tuple[str, ...] | None = None
    minimum: float | None = None
    maximum: float | None = None
    non_empty: bool = False
    unit: str = ""

    def json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        if self.minimum is not None:
            schema["minimum"] = self.minimum
        if self.maximum is not None:
            schema["maximum"] = self.maximum
        if self.non_empty:
            schema["minLength"] = 1
        return schema

    def describe(self) -> dict[str, Any]:
        """Wire form: ``{type, required, description, enum?, min?, max?}``."""
        entry: dict[str, Any] = {
            "type": self.type,
            "required": self.required,
            "description": self.description,
        }
        if self.enum is not None:
            entry["enum"] = list(self.enum)
        if self.minimum is not None:
            entry["min"] = self.minimum
        if self.maximum is not None:
            entry["max"] = self.maximum
        return entry


@dataclass(frozen=True)
class ToolDescriptor:
    """Immutable description of a tool and its parameters."""

    name: str
    description: str
    params: tuple[ParamSpec, ...] = ()

    @property
    def parameters(self) -> list[str]:
        return [p.name for p in self.params]

    @property
    def schema(self) -> dict[str, dict[str, Any]]:
        return {p.name: p.describe() for p in self.params}

    def param(self, name: str) -> ParamSpec | None:
        return next((p for p in self.params if p.name == name), None)

    def json_schema(self) -> dict[str, Any]:
        return {
            "$schema": "http://json-schema.org/draft-07/schema#",
            "type": "object",
            "properties": {p.name: p.json_schema() for p in self.params},
            "required": [p.name for p in self.params if p.required],
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
            "schema": self.schema,
            "inputSchema": self.json_schema(),
        }


@dataclass
class ValidationReport:
    """Outcome of validating one set of tool parameters."""

    groups: dict[str, list[str]] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.groups

    @property
    def errors(self) -> list[str]:
        return [msg for group in GROUP_ORDER for msg in self.groups.get(group, [])]

    @property
    def message(self) -> str | None:
        if self.valid:
            return None
        return "; ".join(
            f"{group}: {', '.join(self.groups[group])}"
            for group in GROUP_ORDER
            if group in self.groups
        )

    def add(self, group: str, message: str) -> None:
        messages = self.groups.setdefault(group, [])
        if message not in messages:
            messages.append(message)


def _describe_error(descriptor: ToolDescriptor, error: Any) -> tuple[str, str] | None:
    """Map one jsonschema error onto (group, message)."""
    if not error.path:
        return None
    name = str(error.path[0])
    spec = descriptor.param(name)
    kind = error.validator

    if kind == "type":
        expected = error.validator_value
        return BAD_TYPE, f"{name} must be {_TYPE_PHRASES.get(expected, expected)}"
    if kind == "minimum":
        unit = spec.unit if spec else ""
        return OUT_OF_RANGE, f"{name} must be at least {error.validator_value:g}{unit}"
    if kind == "maximum":
        unit = spec.unit if spec else ""
        return OUT_OF_RANGE, f"{name} cannot exceed {error.validator_value:g}{unit}"
    if kind == "enum":
        return BAD_VALUE, f"{name} must be one of: {', '.join(map(str, error.validator_value))}"
    if kind == "minLength":
        return BAD_VALUE, f"{name} cannot be empty"
    return BAD_VALUE, f"{name}: {error.message}"


def validate_parameters(descriptor: ToolDescriptor, params: dict[str, Any]) -> ValidationReport:
    """Run the full validation pass for one tool call.

    All violations are reported; nothing is raised.
    """
    report = ValidationReport()
    if not isinstance(params, dict):
        report.add(BAD_TYPE, "parameters must be an object")
        return report

    validator = Draft7Validator(descriptor.json_schema())
    order = {name: i for i, name in enumerate(descriptor.parameters)}
    found: list[tuple[int, str, str]] = []
    missing_reported = False

    for error in validator.iter_errors(params):
        if error.validator == "required":
            missing_reported = True
            continue
        described = _describe_error(descriptor, error)
        if described is not None:
            group, message = described
            found.append((order.get(str(error.path[0]), len(order)), group, message))

    if missing_reported:
        for spec in descriptor.params:
            if spec.required and spec.name not in params:
                report.add(MISSING, spec.name)

    for _, group, message in sorted(found, key=lambda item: item[0]):
        report.add(group, message)
    return report
