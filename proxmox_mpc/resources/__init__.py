"""Resource domains exposed to MCP clients."""

from proxmox_mpc.resources.cache import ResourceCache
from proxmox_mpc.resources.models import (
    DiagnosticResource,
    InfrastructureResource,
    LogResource,
    Resource,
    ResourceDomain,
    ResourceFilter,
    WorkspaceResource,
)
from proxmox_mpc.resources.provider import ResourceProvider

__all__ = [
    "DiagnosticResource",
    "InfrastructureResource",
    "LogResource",
    "Resource",
    "ResourceCache",
    "ResourceDomain",
    "ResourceFilter",
    "ResourceProvider",
    "WorkspaceResource",
]
