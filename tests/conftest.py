"""Shared fixtures: a stub Proxmox client, a workspace on disk and a wired server."""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from proxmox_mpc.server.config import Config, ServerConfig
from proxmox_mpc.server.mcp_server import MCPServer

NODES = [
    {
        "node": "pve1",
        "status": "online",
        "cpu": 0.12,
        "maxcpu": 8,
        "mem": 4 * 1024**3,
        "maxmem": 16 * 1024**3,
        "uptime": 86400,
    }
]
VMS = [
    {"vmid": 100, "name": "web", "node": "pve1", "status": "running", "mem": 2048, "cpus": 2},
    {"vmid": 102, "node": "pve1", "status": "stopped", "maxmem": 1024},
]
CONTAINERS = [{"vmid": 200, "name": "dns", "node": "pve1", "status": "running"}]
STORAGE_POOLS = [
    {"storage": "local-lvm", "type": "lvmthin", "total": 1000, "used": 250, "avail": 750},
]


class FakeClock:
    """Settable wall clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMonotonic:
    """Settable monotonic clock for cache tests."""

    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


def make_infra_client() -> AsyncMock:
    client = AsyncMock()
    client.get_version.return_value = {"version": "8.1.4"}
    client.get_nodes.return_value = [dict(n) for n in NODES]
    client.get_vms.return_value = [dict(v) for v in VMS]
    client.get_containers.return_value = [dict(c) for c in CONTAINERS]
    client.get_storage_pools.return_value = [dict(p) for p in STORAGE_POOLS]
    client.get_next_vmid.return_value = 101
    client.create_vm.return_value = {"vmid": 101}
    client.create_container.return_value = {"vmid": 101}
    client.start_vm.return_value = {"status": "started"}
    client.stop_vm.return_value = {"status": "stopped"}
    return client


@pytest.fixture
def infra_client() -> AsyncMock:
    return make_infra_client()


@pytest.fixture
def deployment_backend() -> AsyncMock:
    backend = AsyncMock()
    backend.plan.return_value = {
        "changes": [
            {"action": "create", "resource": "vm", "name": "web-2"},
            {"action": "update", "resource": "container", "name": "dns"},
            {"action": "delete", "resource": "vm", "name": "legacy"},
        ],
        "costs": {"monthly": 0},
    }
    backend.apply.return_value = {"created": 1, "updated": 1, "deleted": 1}
    return backend


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A workspace with a config file, Terraform and Ansible sources."""
    root = tmp_path / "workspace"
    (root / ".proxmox").mkdir(parents=True)
    (root / ".proxmox" / "config.yml").write_text(
        "proxmox:\n"
        "  host: pve.example.com\n"
        "  user: root@pam\n"
        "  password: hunter2\n"
        "defaults:\n"
        "  node: pve1\n"
        "  storage: local-lvm\n",
        encoding="utf-8",
    )
    (root / "terraform").mkdir()
    (root / "terraform" / "main.tf").write_text('resource "proxmox_vm_qemu" "web" {}\n')
    (root / "ansible").mkdir()
    (root / "ansible" / "site.yml").write_text("- hosts: all\n  tasks: []\n")
    return root


@pytest.fixture
def config(workspace: Path) -> Config:
    return Config(server=ServerConfig(workspace_path=str(workspace)))


@pytest.fixture
def server(config: Config, infra_client: AsyncMock, deployment_backend: AsyncMock) -> MCPServer:
    return MCPServer(config, infra_client=infra_client, deployment_backend=deployment_backend)


@pytest.fixture
def restore_root_logging() -> Any:
    """Put the root logger back after a test reconfigures it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def rpc(method: str, params: Any = None, request_id: int | str = 1) -> dict[str, Any]:
    message: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message
