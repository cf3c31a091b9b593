"""
Collaborator protocols for the virtualization backend.

The MCP core never talks to Proxmox VE directly. It depends only on these
interfaces; the REST client and the Terraform/Ansible generators that
implement them live outside this package.

Records mirror the JSON returned by the Proxmox API, so plain dicts satisfy
them.
"""

from typing import Any, Protocol, TypedDict, runtime_checkable


class NodeRecord(TypedDict, total=False):
    """Cluster node as returned by ``GET /nodes``."""

    node: str
    status: str
    cpu: float
    maxcpu: int
    mem: int
    maxmem: int
    uptime: int


class GuestRecord(TypedDict, total=False):
    """QEMU VM or LXC container as returned by the cluster resource listing."""

    vmid: int
    name: str
    status: str
    node: str
    mem: int
    maxmem: int
    cpu: float
    cpus: int
    template: bool


class StoragePoolRecord(TypedDict, total=False):
    """Storage pool as returned by ``GET /storage``."""

    storage: str
    type: str
    total: int
    used: int
    avail: int
    enabled: bool


class PlannedChange(TypedDict, total=False):
    """One change in a deployment plan."""

    action: str  # "create" | "update" | "delete"
    resource: str
    name: str


@runtime_checkable
class InfraClient(Protocol):
    """Virtualization API client.

    Read methods list cluster-wide; ``get_vms``/``get_containers`` accept an
    optional node to narrow the listing. Every method may raise; callers own
    the error policy.
    """

    async def get_version(self) -> dict[str, Any]: ...

    async def get_nodes(self) -> list[NodeRecord]: ...

    async def get_vms(self, node: str | None = None) -> list[GuestRecord]: ...

    async def get_containers(self, node: str | None = None) -> list[GuestRecord]: ...

    async def get_storage_pools(self) -> list[StoragePoolRecord]: ...

    async def get_next_vmid(self) -> int: ...

    async def create_vm(self, node: str, config: dict[str, Any]) -> dict[str, Any]: ...

    async def create_container(self, node: str, config: dict[str, Any]) -> dict[str, Any]: ...

    async def start_vm(self, node: str, vmid: int) -> dict[str, Any]: ...

    async def stop_vm(self, node: str, vmid: int) -> dict[str, Any]: ...


@runtime_checkable
class DeploymentBackend(Protocol):
    """Infrastructure-as-code backend (Terraform/Ansible generators).

    ``plan`` returns ``{"changes": [PlannedChange, ...]}`` and may add a
    ``"costs"`` mapping. ``apply`` returns a summary with ``created``,
    ``updated`` and ``deleted`` counts.
    """

    async def plan(self, changes: list[Any] | None = None) -> dict[str, Any]: ...

    async def apply(self, changes: list[Any] | None = None) -> dict[str, Any]: ...


class LogSource(Protocol):
    """Structured log store queried by the logs resource domain."""

    def get_recent_logs(
        self, limit: int, level: str | None = None, operation: str | None = None
    ) -> list[Any]: ...


__all__ = [
    "DeploymentBackend",
    "GuestRecord",
    "InfraClient",
    "LogSource",
    "NodeRecord",
    "PlannedChange",
    "StoragePoolRecord",
]
