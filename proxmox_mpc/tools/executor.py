"""
Tool executor: lookup, validation and dispatch of tool calls.

Every call goes through the same pipeline:

1. descriptor lookup (unknown names fail with ``Unknown tool: <name>``)
2. one validation pass over the declared parameter specs
3. the tool handler, which talks to the infra client / deployment backend
4. any handler exception becomes a failed :class:`ToolResult`

Handlers return plain data; the pipeline wraps it with metadata, records a
duration metric and writes an audit log entry tagged with the operation
category.
"""

import asyncio
import logging
import platform
from collections import Counter
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from proxmox_mpc.framework.errors import MCPError, ToolExecutionError, UpstreamError
from proxmox_mpc.infra.client import DeploymentBackend, InfraClient, LogSource
from proxmox_mpc.observability.diagnostics import DiagnosticsCollector
from proxmox_mpc.observability.metrics import MetricsCollector
from proxmox_mpc.tools import workspace
from proxmox_mpc.tools.catalog import BUILTIN_TOOLS
from proxmox_mpc.tools.schema import ToolDescriptor, ValidationReport, validate_parameters

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Audit category per tool; anything unlisted is a read.
TOOL_OPERATIONS = {
    "createVM": "create",
    "createContainer": "create",
    "startVM": "update",
    "stopVM": "update",
    "deployInfrastructure": "update",
    "importConfiguration": "update",
}
MUTATING_OPERATIONS = frozenset({"create", "update", "delete"})

TIME_WINDOWS = {
    "1h": timedelta(hours=1),
    "6h": timedelta(hours=6),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
}
DEFAULT_TIME_RANGE = "1h"

RISK_LEVELS = {"delete": "high", "update": "medium"}
SLOW_OPERATION_MS = 1000.0
CPU_PRESSURE = 0.85
MEMORY_PRESSURE = 0.9
DIAGNOSTIC_LOG_LIMIT = 50


class ToolResult(BaseModel):
    """Outcome of one tool call."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    data: Any = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


def assess_risks(changes: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Flag updates (medium) and deletions (high) in a change list."""
    risks = []
    for change in changes:
        action = change.get("action")
        level = RISK_LEVELS.get(action)
        if level is None:
            continue
        target = f"{change.get('resource', 'resource')} '{change.get('name', '?')}'"
        if action == "delete":
            description = f"Deleting {target} is irreversible"
        else:
            description = f"Updating {target} may require a restart"
        risks.append({"level": level, "description": description, "change": change})
    return risks


class ToolExecutor:
    """Runs the built-in tools against the configured collaborators.

    Args:
        infra_client: Virtualization API client
        workspace_path: Workspace root for export/import/backup
        deployment_backend: Terraform/Ansible backend for plan and deploy
        diagnostics: Diagnostics collector (built from the client if omitted)
        metrics: Metrics collector receiving ``tool.duration`` samples
        log_source: Recent-log store used by ``runDiagnostics``
        timeout: Per-call timeout in seconds (None disables it)
        on_change: Called with the tool name after a successful mutating call
        now: Wall-clock source, injectable for tests
    """

    def __init__(
        self,
        infra_client: InfraClient | None,
        workspace_path: str | Path,
        deployment_backend: DeploymentBackend | None = None,
        diagnostics: DiagnosticsCollector | None = None,
        metrics: MetricsCollector | None = None,
        log_source: LogSource | None = None,
        timeout: float | None = None,
        on_change: Callable[[str], None] | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.infra_client = infra_client
        self.workspace_path = Path(workspace_path)
        self.deployment_backend = deployment_backend
        self.diagnostics = diagnostics or DiagnosticsCollector(infra_client, self.workspace_path)
        self.metrics = metrics if metrics is not None else MetricsCollector()
        self.log_source = log_source
        self.timeout = timeout
        self.on_change = on_change
        self._now = now or (lambda: datetime.now(timezone.utc))

        self._descriptors: dict[str, ToolDescriptor] = {d.name: d for d in BUILTIN_TOOLS}
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[Any]]] = {
            "createVM": self._create_vm,
            "createContainer": self._create_container,
            "startVM": self._start_vm,
            "stopVM": self._stop_vm,
            "deployInfrastructure": self._deploy_infrastructure,
            "validateInfrastructure": self._validate_infrastructure,
            "generatePlan": self._generate_plan,
            "runDiagnostics": self._run_diagnostics,
            "generateHealthReport": self._generate_health_report,
            "generatePerformanceReport": self._generate_performance_report,
            "exportConfiguration": self._export_configuration,
            "importConfiguration": self._import_configuration,
            "backupWorkspace": self._backup_workspace,
        }

    def list_tools(self) -> list[ToolDescriptor]:
        return list(self._descriptors.values())

    def get_tool(self, name: str) -> ToolDescriptor | None:
        return self._descriptors.get(name)

    def validate(self, name: str, params: dict[str, Any]) -> ValidationReport:
        descriptor = self._descriptors[name]
        return validate_parameters(descriptor, params)

    async def execute(self, name: str, params: dict[str, Any] | None = None) -> ToolResult:
        """Run one tool call through lookup, validation and its handler.

        Never raises; failures come back as ``success=False`` results.
        """
        params = params if params is not None else {}
        if name not in self._descriptors:
            return self._result(name, success=False, error=f"Unknown tool: {name}")

        report = self.validate(name, params)
        if not report.valid:
            logger.warning(
                "Rejected %s call: %s",
                name,
                report.message,
                extra={"tool": name, "error_category": "validation"},
            )
            return self._result(name, success=False, error=report.message)

        operation = TOOL_OPERATIONS.get(name, "read")
        with self.metrics.track("tool.duration", tags={"tool": name}) as tags:
            try:
                call = self._handlers[name](params)
                if self.timeout is not None:
                    data = await asyncio.wait_for(call, self.timeout)
                else:
                    data = await call
            except asyncio.TimeoutError:
                tags["outcome"] = "timeout"
                message = (
                    f"Request timeout after {self.timeout:g}s"
                    if self.timeout is not None
                    else "Request timeout"
                )
                self._log_failure(name, params, operation, message, "timeout")
                return self._result(name, success=False, error=message)
            except MCPError as e:
                tags["outcome"] = "error"
                category = "upstream" if isinstance(e, UpstreamError) else "execution"
                self._log_failure(name, params, operation, e.message, category)
                return self._result(name, success=False, error=e.message)
            except Exception as e:
                tags["outcome"] = "error"
                message = str(e) or type(e).__name__
                self._log_failure(name, params, operation, message, "internal", exc_info=True)
                return self._result(name, success=False, error=message)

        logger.info("Tool %s succeeded", name, extra={"tool": name, "operation": operation})
        if operation in MUTATING_OPERATIONS and self.on_change is not None:
            self.on_change(name)
        return self._result(name, success=True, data=data)

    def _result(self, name: str, **fields: Any) -> ToolResult:
        return ToolResult(
            metadata={"toolName": name, "timestamp": self._now().isoformat()}, **fields
        )

    def _log_failure(
        self,
        name: str,
        params: dict[str, Any],
        operation: str,
        message: str,
        category: str,
        exc_info: bool = False,
    ) -> None:
        logger.error(
            "MCP tool execution failed: %s: %s",
            name,
            message,
            exc_info=exc_info,
            extra={
                "tool": name,
                "parameters": params,
                "operation": operation,
                "error_category": category,
            },
        )

    # ------------------------------------------------------------------
    # Collaborator access
    # ------------------------------------------------------------------

    def _client(self, tool: str) -> InfraClient:
        if self.infra_client is None:
            raise ToolExecutionError("No infrastructure client configured", tool)
        return self.infra_client

    def _backend(self, tool: str) -> DeploymentBackend:
        if self.deployment_backend is None:
            raise ToolExecutionError("No deployment backend configured", tool)
        return self.deployment_backend

    async def _upstream(self, operation: str, call: Awaitable[T]) -> T:
        """Await a collaborator call, wrapping failures in UpstreamError."""
        try:
            return await call
        except MCPError:
            raise
        except Exception as e:
            raise UpstreamError(operation, e) from e

    def _resolve(self, value: str) -> Path:
        path = Path(value).expanduser()
        return path if path.is_absolute() else self.workspace_path / path

    def _since(self, params: dict[str, Any]) -> tuple[str, datetime]:
        time_range = params.get("timeRange") or DEFAULT_TIME_RANGE
        return time_range, self._now() - TIME_WINDOWS[time_range]

    async def _node_usage(self) -> list[dict[str, Any]] | None:
        """Per-node CPU/memory ratios; None when unavailable."""
        if self.infra_client is None:
            return None
        try:
            nodes = await self._upstream("list nodes", self.infra_client.get_nodes())
        except UpstreamError as e:
            logger.warning("Node usage unavailable: %s", e.message, extra={"error_category": "upstream"})
            return None
        usage = []
        for node in nodes:
            maxmem = node.get("maxmem") or 0
            usage.append(
                {
                    "node": node.get("node"),
                    "status": node.get("status", "unknown"),
                    "cpuUsage": node.get("cpu") or 0,
                    "memoryUsage": (node.get("mem") or 0) / maxmem if maxmem else 0,
                }
            )
        return usage

    # ------------------------------------------------------------------
    # Guest lifecycle
    # ------------------------------------------------------------------

    async def _allocate_vmid(self, client: InfraClient, params: dict[str, Any]) -> int:
        if params.get("vmid") is not None:
            return int(params["vmid"])
        return int(await self._upstream("allocate vmid", client.get_next_vmid()))

    async def _create_vm(self, params: dict[str, Any]) -> Any:
        client = self._client("createVM")
        config: dict[str, Any] = {
            "vmid": await self._allocate_vmid(client, params),
            "name": params["name"],
            "memory": params["memory"],
            "cores": params["cores"],
        }
        if params.get("storage"):
            config["storage"] = params["storage"]
        if params.get("network"):
            config["net0"] = f"bridge={params['network']}"
        return await self._upstream("create vm", client.create_vm(params["node"], config))

    async def _create_container(self, params: dict[str, Any]) -> Any:
        client = self._client("createContainer")
        config: dict[str, Any] = {
            "vmid": await self._allocate_vmid(client, params),
            "hostname": params["name"],
            "ostemplate": params["template"],
            "memory": params["memory"],
            "rootfs": f"{params.get('storage') or 'local-lvm'}:8",
        }
        if params.get("cores") is not None:
            config["cores"] = params["cores"]
        if params.get("network"):
            config["net0"] = f"name=eth0,bridge={params['network']},ip=dhcp"
        return await self._upstream(
            "create container", client.create_container(params["node"], config)
        )

    async def _locate_vm(self, client: InfraClient, tool: str, vmid: int) -> str:
        vms = await self._upstream("list vms", client.get_vms())
        for vm in vms:
            if vm.get("vmid") is not None and int(vm["vmid"]) == vmid and vm.get("node"):
                return vm["node"]
        raise ToolExecutionError(f"VM {vmid} not found in cluster", tool)

    async def _start_vm(self, params: dict[str, Any]) -> Any:
        client = self._client("startVM")
        vmid = int(params["vmid"])
        node = params.get("node") or await self._locate_vm(client, "startVM", vmid)
        return await self._upstream("start vm", client.start_vm(node, vmid))

    async def _stop_vm(self, params: dict[str, Any]) -> Any:
        client = self._client("stopVM")
        vmid = int(params["vmid"])
        node = params.get("node") or await self._locate_vm(client, "stopVM", vmid)
        return await self._upstream("stop vm", client.stop_vm(node, vmid))

    # ------------------------------------------------------------------
    # Deployment
    # ------------------------------------------------------------------

    async def _deploy_infrastructure(self, params: dict[str, Any]) -> Any:
        backend = self._backend("deployInfrastructure")
        changes = params.get("changes")

        if params.get("dryRun"):
            plan = await self._upstream("plan deployment", backend.plan(changes))
            return {"dryRun": True, "changesPreview": list(plan.get("changes", []))}

        if params.get("confirmChanges") is not True:
            raise ToolExecutionError(
                "Deployment requires confirmChanges: true (use dryRun to preview changes)",
                "deployInfrastructure",
            )

        summary = await self._upstream("apply deployment", backend.apply(changes))
        return {"deployed": True, "summary": {"created": 0, "updated": 0, "deleted": 0, **summary}}

    async def _generate_plan(self, params: dict[str, Any]) -> Any:
        backend = self._backend("generatePlan")
        result = await self._upstream("plan deployment", backend.plan())
        changes = list(result.get("changes", []))
        counts = Counter(change.get("action") for change in changes)

        plan: dict[str, Any] = {
            "summary": {action: counts.get(action, 0) for action in ("create", "update", "delete")}
        }
        if params.get("includeChanges"):
            plan["changes"] = changes
        if params.get("includeRisks"):
            plan["risks"] = assess_risks(changes)
        if params.get("includeCosts"):
            plan["costs"] = result.get("costs")
        return {"plan": plan}

    async def _validate_infrastructure(self, params: dict[str, Any]) -> Any:
        validation: dict[str, Any] = {}
        tools = self.diagnostics.check_tools()["tools"]

        if params.get("checkTerraform", True):
            validation["terraform"] = await asyncio.to_thread(
                self._validate_terraform, tools["terraform"]["available"]
            )
        if params.get("checkAnsible", True):
            validation["ansible"] = await asyncio.to_thread(
                self._validate_ansible, tools["ansible"]["available"]
            )
        if params.get("checkConnectivity", True):
            connectivity = await self.diagnostics.check_connectivity()
            validation["connectivity"] = {
                "valid": connectivity["status"] == "healthy",
                "services": connectivity["services"],
            }

        return {
            "valid": all(check["valid"] for check in validation.values()),
            "validation": validation,
        }

    def _validate_terraform(self, binary_available: bool) -> dict[str, Any]:
        directory = self.workspace_path / "terraform"
        files = sorted(p.name for p in directory.glob("*.tf")) if directory.is_dir() else []
        issues = []
        if not directory.is_dir():
            issues.append("terraform/ directory not found")
        elif not files:
            issues.append("No .tf files in terraform/")
        warnings = [] if binary_available else ["terraform executable not found on PATH"]
        return {"valid": not issues, "files": files, "issues": issues, "warnings": warnings}

    def _validate_ansible(self, binary_available: bool) -> dict[str, Any]:
        directory = self.workspace_path / "ansible"
        issues = []
        files = []
        if not directory.is_dir():
            issues.append("ansible/ directory not found")
        else:
            for path in sorted(directory.iterdir()):
                if path.suffix not in (".yml", ".yaml"):
                    continue
                files.append(path.name)
                try:
                    list(yaml.safe_load_all(path.read_text(encoding="utf-8")))
                except yaml.YAMLError as e:
                    issues.append(f"{path.name}: {e}")
        warnings = [] if binary_available else ["ansible-playbook executable not found on PATH"]
        return {"valid": not issues, "files": files, "issues": issues, "warnings": warnings}

    # ------------------------------------------------------------------
    # Diagnostics and reports
    # ------------------------------------------------------------------

    async def _run_diagnostics(self, params: dict[str, Any]) -> Any:
        time_range, since = self._since(params)
        diagnostics: dict[str, Any] = {
            "timestamp": self._now().isoformat(),
            "timeRange": time_range,
            "systemInfo": {
                "platform": platform.system().lower(),
                "pythonVersion": platform.python_version(),
                "hostname": platform.node(),
            },
            "workspaceInfo": self.diagnostics.check_workspace(),
        }

        if params.get("includeHealth"):
            diagnostics["healthStatus"] = await self.diagnostics.system_health()
        if params.get("includeMetrics"):
            diagnostics["metrics"] = [
                m.to_dict() for m in self.metrics.get_metrics() if m.timestamp >= since
            ]
        if params.get("includeLogs"):
            entries = (
                self.log_source.get_recent_logs(DIAGNOSTIC_LOG_LIMIT) if self.log_source else []
            )
            diagnostics["logs"] = [
                entry.to_dict() if hasattr(entry, "to_dict") else dict(entry)
                for entry in entries
                if getattr(entry, "timestamp", since) >= since
            ]
        return {"diagnostics": diagnostics}

    async def _generate_health_report(self, params: dict[str, Any]) -> Any:
        health = await self.diagnostics.system_health()
        report: dict[str, Any] = {"overall": health["status"], **health["components"]}

        nodes = None
        if params.get("includeDetails"):
            nodes = await self._node_usage()
            report["nodes"] = nodes
            report["metrics"] = self.metrics.summary()

        if params.get("includeRecommendations"):
            report["recommendations"] = self._recommendations(health["components"], nodes)
        return {"health": report}

    def _recommendations(
        self, components: dict[str, Any], nodes: list[dict[str, Any]] | None
    ) -> list[str]:
        advice = []
        if components["proxmox"].get("status") != "connected":
            advice.append("Check Proxmox API connectivity and credentials")
        workspace_state = components["workspace"]
        if workspace_state.get("state") == "missing":
            advice.append(f"Create the workspace directory {workspace_state['path']}")
        elif not workspace_state.get("configExists"):
            advice.append("Initialize the workspace configuration (.proxmox/config.yml)")
        if not components["tools"]["terraform"]["available"]:
            advice.append("Install Terraform to enable infrastructure deployment")
        if not components["tools"]["ansible"]["available"]:
            advice.append("Install Ansible to enable configuration management")
        for node in nodes or []:
            if node["memoryUsage"] >= MEMORY_PRESSURE:
                advice.append(
                    f"Node {node['node']} memory usage is {node['memoryUsage']:.0%}; "
                    "consider migrating guests"
                )
        return advice

    async def _generate_performance_report(self, params: dict[str, Any]) -> Any:
        time_range, since = self._since(params)
        samples = [m for m in self.metrics.get_metrics() if m.timestamp >= since]

        grouped: dict[tuple[str, str], list[float]] = {}
        for sample in samples:
            grouped.setdefault((sample.name, sample.unit), []).append(sample.value)
        stats = [
            {
                "name": name,
                "unit": unit,
                "count": len(values),
                "avg": sum(values) / len(values),
                "max": max(values),
            }
            for (name, unit), values in grouped.items()
        ]

        performance: dict[str, Any] = {"timeRange": time_range, "sampleCount": len(samples)}
        if params.get("includeMetrics"):
            performance["metrics"] = stats
        if params.get("includeBottlenecks"):
            bottlenecks = [
                {
                    "component": stat["name"],
                    "impact": "high" if stat["avg"] >= 5 * SLOW_OPERATION_MS else "medium",
                    "avgMs": round(stat["avg"], 2),
                    "suggestion": "Investigate slow upstream calls",
                }
                for stat in stats
                if stat["unit"] == "ms" and stat["avg"] >= SLOW_OPERATION_MS
            ]
            for node in await self._node_usage() or []:
                if node["cpuUsage"] >= CPU_PRESSURE or node["memoryUsage"] >= MEMORY_PRESSURE:
                    bottlenecks.append(
                        {
                            "component": f"node/{node['node']}",
                            "impact": "high",
                            "cpuUsage": node["cpuUsage"],
                            "memoryUsage": node["memoryUsage"],
                            "suggestion": "Rebalance guests across nodes",
                        }
                    )
            performance["bottlenecks"] = bottlenecks
        return {"performance": performance}

    # ------------------------------------------------------------------
    # Workspace configuration
    # ------------------------------------------------------------------

    @property
    def _config_path(self) -> Path:
        return self.workspace_path / workspace.CONFIG_RELPATH

    async def _export_configuration(self, params: dict[str, Any]) -> Any:
        tool = "exportConfiguration"
        if not self._config_path.is_file():
            raise ToolExecutionError(f"Workspace configuration not found: {self._config_path}", tool)

        config = await asyncio.to_thread(workspace.load_config, self._config_path)
        include_secrets = bool(params.get("includeSecrets", False))
        exported = config if include_secrets else workspace.redact_secrets(config)
        fmt = params.get("format") or "yaml"
        content = workspace.dump_config(exported, fmt)

        data: dict[str, Any] = {
            "exported": True,
            "format": fmt,
            "secretsExcluded": not include_secrets,
        }
        destination = params.get("destination")
        if destination:
            path = self._resolve(destination)
            if not path.parent.is_dir():
                raise ToolExecutionError(f"Cannot access destination path: {destination}", tool)
            await asyncio.to_thread(path.write_text, content, encoding="utf-8")
            data["destination"] = str(path)
        else:
            data["content"] = content
        return data

    async def _import_configuration(self, params: dict[str, Any]) -> Any:
        tool = "importConfiguration"
        source = self._resolve(params["source"])
        if not source.is_file():
            raise ToolExecutionError(f"Cannot access source path: {params['source']}", tool)

        text = await asyncio.to_thread(source.read_text, encoding="utf-8")
        try:
            incoming = workspace.parse_config(text, source.suffix)
        except (ValueError, yaml.YAMLError) as e:
            raise ToolExecutionError(f"Invalid configuration in {source.name}: {e}", tool) from e
        if not isinstance(incoming, dict):
            raise ToolExecutionError("Invalid configuration: expected a mapping at the top level", tool)

        existing = (
            await asyncio.to_thread(workspace.load_config, self._config_path)
            if self._config_path.is_file()
            else {}
        )
        merge = bool(params.get("merge", False))
        validate_only = bool(params.get("validateOnly", False))
        updated = workspace.deep_merge(existing, incoming) if merge else incoming
        changes = workspace.diff_config(existing, updated)

        if not validate_only:
            self._config_path.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(
                self._config_path.write_text, workspace.dump_config(updated), encoding="utf-8"
            )
            logger.info(
                "Imported workspace configuration from %s (%d changes)",
                source,
                len(changes),
                extra={"operation": "update"},
            )

        return {
            "imported": not validate_only,
            "merged": merge,
            "validateOnly": validate_only,
            "changes": changes,
        }

    async def _backup_workspace(self, params: dict[str, Any]) -> Any:
        tool = "backupWorkspace"
        if not self.workspace_path.is_dir():
            raise ToolExecutionError(f"Workspace not found: {self.workspace_path}", tool)

        includes = []
        if params.get("includeHistory"):
            includes.append("history")
        if params.get("includeConfigs", True):
            includes.append("configs")
        if params.get("includeLogs"):
            includes.append("logs")

        destination = params.get("destination")
        if destination:
            path = self._resolve(destination)
            if not path.parent.is_dir():
                raise ToolExecutionError(f"Cannot access destination path: {destination}", tool)
        else:
            backup_dir = self.workspace_path / workspace.BACKUP_DIR
            backup_dir.mkdir(parents=True, exist_ok=True)
            path = backup_dir / f"workspace-backup-{self._now():%Y%m%d-%H%M%S}.tar.gz"

        members = workspace.backup_members(self.workspace_path, includes)
        size = await asyncio.to_thread(workspace.write_archive, path, self.workspace_path, members)
        return {
            "backup": {
                "destination": str(path),
                "size": size,
                "includes": includes,
                "files": members,
            }
        }
