"""Runtime diagnostics: upstream connectivity, local tooling and workspace checks."""

import logging
import shutil
import time
from pathlib import Path
from typing import Any

from proxmox_mpc.infra.client import InfraClient

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
WARNING = "warning"
ERROR = "error"

# Local executables the deployment backend shells out to.
EXTERNAL_TOOLS = {
    "terraform": ("terraform",),
    "ansible": ("ansible-playbook", "ansible"),
}


def _worst(*statuses: str) -> str:
    if ERROR in statuses:
        return ERROR
    if WARNING in statuses:
        return WARNING
    return HEALTHY


class DiagnosticsCollector:
    """Probes the pieces the server depends on.

    Args:
        infra_client: Virtualization API client (optional)
        workspace_path: Workspace root checked for accessibility
    """

    def __init__(self, infra_client: InfraClient | None, workspace_path: str | Path) -> None:
        self.infra_client = infra_client
        self.workspace_path = Path(workspace_path)

    async def check_connectivity(self) -> dict[str, Any]:
        """Time a ``get_version`` round trip to the virtualization API."""
        if self.infra_client is None:
            return {
                "status": WARNING,
                "services": {"proxmox": {"status": "not_configured"}},
            }

        start = time.perf_counter()
        try:
            version = await self.infra_client.get_version()
        except Exception as e:
            elapsed = (time.perf_counter() - start) * 1000
            logger.warning(
                "Connectivity check failed: %s", e, extra={"error_category": "network"}
            )
            return {
                "status": ERROR,
                "services": {
                    "proxmox": {
                        "status": "unreachable",
                        "responseTime": round(elapsed, 2),
                        "error": str(e),
                    }
                },
            }

        elapsed = (time.perf_counter() - start) * 1000
        return {
            "status": HEALTHY,
            "services": {
                "proxmox": {
                    "status": "connected",
                    "responseTime": round(elapsed, 2),
                    "version": (version or {}).get("version"),
                }
            },
        }

    def check_tools(self) -> dict[str, Any]:
        tools: dict[str, Any] = {}
        for name, executables in EXTERNAL_TOOLS.items():
            found = next((p for p in map(shutil.which, executables) if p), None)
            tools[name] = {"available": found is not None, "path": found}
        status = HEALTHY if all(t["available"] for t in tools.values()) else WARNING
        return {"status": status, "tools": tools}

    def check_workspace(self) -> dict[str, Any]:
        if not self.workspace_path.is_dir():
            return {"status": ERROR, "path": str(self.workspace_path), "state": "missing"}
        config_exists = (self.workspace_path / ".proxmox" / "config.yml").is_file()
        return {
            "status": HEALTHY if config_exists else WARNING,
            "path": str(self.workspace_path),
            "state": "accessible",
            "configExists": config_exists,
        }

    async def system_health(self) -> dict[str, Any]:
        """Combine all checks into one component report."""
        connectivity = await self.check_connectivity()
        tools = self.check_tools()
        workspace = self.check_workspace()
        return {
            "status": _worst(connectivity["status"], tools["status"], workspace["status"]),
            "components": {
                "proxmox": connectivity["services"]["proxmox"],
                "workspace": workspace,
                "tools": tools["tools"],
            },
        }
