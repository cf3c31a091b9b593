"""Pydantic models for the four resource domains."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ResourceDomain(str, Enum):
    """Top-level resource collections."""

    INFRASTRUCTURE = "infrastructure"
    WORKSPACE = "workspace"
    LOGS = "logs"
    DIAGNOSTICS = "diagnostics"


DiagnosticStatus = Literal["healthy", "warning", "error"]


class Resource(BaseModel):
    """Base resource. Serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str
    name: str
    description: str
    uri: str
    metadata: dict[str, Any] | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class InfrastructureResource(Resource):
    type: Literal["node", "vm", "container", "storage"]
    status: str
    properties: dict[str, Any] = Field(default_factory=dict)


class WorkspaceResource(Resource):
    type: Literal["workspace"] = "workspace"
    path: str
    configuration: dict[str, Any] = Field(default_factory=dict)


class TimeRange(BaseModel):
    start: datetime
    end: datetime


class LogResource(Resource):
    type: Literal["operation-logs", "error-logs", "audit-logs"]
    time_range: TimeRange
    count: int = Field(ge=0)


class DiagnosticResource(Resource):
    type: Literal["system-health", "performance-metrics", "connectivity-status"]
    last_updated: datetime
    status: DiagnosticStatus


class ResourceFilter(BaseModel):
    """Filters accepted by ``resources/list``.

    ``type`` matches exactly; ``search`` is a case-insensitive substring of
    name or description; ``offset``/``limit`` paginate what remains.
    """

    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    search: str | None = None
    offset: int = Field(default=0, ge=0)
    limit: int | None = Field(default=None, ge=0)

    @field_validator("type", "search")
    @classmethod
    def blank_is_none(cls, value: str | None) -> str | None:
        return value or None

    def cache_key(self) -> str:
        return self.model_dump_json(exclude_defaults=True)

    def apply(self, resources: list[Resource]) -> list[Resource]:
        selected = resources
        if self.type:
            selected = [r for r in selected if r.type == self.type]
        if self.search:
            term = self.search.lower()
            selected = [
                r for r in selected if term in r.name.lower() or term in r.description.lower()
            ]
        end = None if self.limit is None else self.offset + self.limit
        return selected[self.offset : end]
