"""Interfaces to the virtualization backend consumed by the MCP core."""

from proxmox_mpc.infra.client import (
    DeploymentBackend,
    GuestRecord,
    InfraClient,
    LogSource,
    NodeRecord,
    PlannedChange,
    StoragePoolRecord,
)

__all__ = [
    "DeploymentBackend",
    "GuestRecord",
    "InfraClient",
    "LogSource",
    "NodeRecord",
    "PlannedChange",
    "StoragePoolRecord",
]
