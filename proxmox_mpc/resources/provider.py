"""
Resource provider: fetches, normalizes, filters and caches resource domains.

Each domain is assembled from its collaborators:

- infrastructure: ``InfraClient`` listings (nodes, VMs, containers, storage)
- workspace: the workspace directory on disk
- logs: a log source exposing ``get_recent_logs``
- diagnostics: ``DiagnosticsCollector`` and ``MetricsCollector``

Upstream failures are contained per sub-collection: they are logged and the
affected part contributes no resources while the rest is still returned.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from proxmox_mpc.framework.errors import (
    InvalidParamsError,
    ResourceNotFoundError,
    UpstreamError,
)
from proxmox_mpc.infra.client import InfraClient, LogSource
from proxmox_mpc.observability.diagnostics import DiagnosticsCollector
from proxmox_mpc.observability.metrics import MetricsCollector
from proxmox_mpc.resources.cache import ResourceCache
from proxmox_mpc.resources.models import (
    DiagnosticResource,
    InfrastructureResource,
    LogResource,
    Resource,
    ResourceDomain,
    ResourceFilter,
    TimeRange,
    WorkspaceResource,
)

logger = logging.getLogger(__name__)

OPERATION_LOG_LIMIT = 100
ERROR_LOG_LIMIT = 50
AUDIT_LOG_LIMIT = 20
AUDIT_OPERATIONS = ("create", "update", "delete")
OPERATION_LOG_WINDOW = timedelta(hours=24)
AUDIT_LOG_WINDOW = timedelta(days=7)

WORKSPACE_CONFIG_FILE = Path(".proxmox") / "config.yml"


def parse_domain(value: Any) -> ResourceDomain:
    """Coerce a wire value into a ResourceDomain, raising InvalidParamsError."""
    try:
        return ResourceDomain(value)
    except ValueError:
        valid = ", ".join(d.value for d in ResourceDomain)
        raise InvalidParamsError(
            f"Invalid resource type: {value!r} (expected one of: {valid})", field="type"
        ) from None


def parse_filter(filters: ResourceFilter | dict[str, Any] | None) -> ResourceFilter:
    if filters is None:
        return ResourceFilter()
    if isinstance(filters, ResourceFilter):
        return filters
    try:
        return ResourceFilter.model_validate(filters)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"])
        raise InvalidParamsError(f"Invalid filter '{field}': {first['msg']}", field=field) from e


def _entry_field(entry: Any, name: str) -> Any:
    if isinstance(entry, dict):
        return entry.get(name)
    return getattr(entry, name, None)


def _unique(values: list[Any]) -> list[Any]:
    return list(dict.fromkeys(v for v in values if v))


def _node_resource(node: dict[str, Any]) -> InfrastructureResource:
    name = node["node"]
    return InfrastructureResource(
        type="node",
        name=name,
        description=f"Proxmox node {name}",
        uri=f"infrastructure://node/{name}",
        status=node.get("status", "unknown"),
        properties={
            "cpu": node.get("cpu"),
            "maxcpu": node.get("maxcpu"),
            "memory": node.get("mem"),
            "maxmem": node.get("maxmem"),
            "uptime": node.get("uptime"),
        },
    )


def _vm_resource(vm: dict[str, Any]) -> InfrastructureResource:
    vmid = vm.get("vmid")
    if vmid is None:
        raise KeyError("vmid")
    label = vm.get("name") or vmid
    return InfrastructureResource(
        type="vm",
        name=vm.get("name") or f"vm-{vmid}",
        description=f"Virtual Machine {label} (ID: {vmid})",
        uri=f"infrastructure://vm/{vmid}",
        status=vm.get("status", "unknown"),
        properties={
            "vmid": vmid,
            "node": vm.get("node"),
            "memory": vm.get("mem") or vm.get("maxmem"),
            "cores": vm.get("cpus") or vm.get("cpu"),
            "template": bool(vm.get("template", False)),
        },
    )


def _container_resource(ct: dict[str, Any]) -> InfrastructureResource:
    vmid = ct.get("vmid")
    if vmid is None:
        raise KeyError("vmid")
    label = ct.get("name") or vmid
    return InfrastructureResource(
        type="container",
        name=ct.get("name") or f"container-{vmid}",
        description=f"LXC Container {label} (ID: {vmid})",
        uri=f"infrastructure://container/{vmid}",
        status=ct.get("status", "unknown"),
        properties={
            "vmid": vmid,
            "node": ct.get("node"),
            "memory": ct.get("mem") or ct.get("maxmem"),
            "template": bool(ct.get("template", False)),
        },
    )


def _storage_resource(pool: dict[str, Any]) -> InfrastructureResource:
    name = pool["storage"]
    total = float(pool.get("total") or 0)
    used = float(pool.get("used") or 0)
    utilization = min(max(used / total, 0.0), 1.0) if total > 0 else 0
    return InfrastructureResource(
        type="storage",
        name=name,
        description=f"Storage pool {name} ({pool.get('type', 'unknown')})",
        uri=f"infrastructure://storage/{name}",
        status="enabled" if pool.get("enabled", True) else "disabled",
        properties={
            "type": pool.get("type"),
            "total": pool.get("total"),
            "used": pool.get("used"),
            "available": pool.get("avail"),
            "utilization": utilization,
        },
    )


class ResourceProvider:
    """Serves resource domains with per-domain TTL caching.

    Args:
        infra_client: Virtualization API client; infrastructure is empty without one
        workspace_path: Workspace root directory
        log_source: Store exposing ``get_recent_logs(limit, level, operation)``
        metrics: Metrics collector for the performance-metrics resource
        diagnostics: Diagnostics collector; built from the client if omitted
        cache: Resource cache; a default 5 minute cache if omitted
        now: Wall-clock source, injectable for tests
    """

    def __init__(
        self,
        infra_client: InfraClient | None,
        workspace_path: str | Path,
        log_source: LogSource | None = None,
        metrics: MetricsCollector | None = None,
        diagnostics: DiagnosticsCollector | None = None,
        cache: ResourceCache | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.infra_client = infra_client
        self.workspace_path = Path(workspace_path)
        self.log_source = log_source
        self.metrics = metrics if metrics is not None else MetricsCollector()
        self.diagnostics = diagnostics or DiagnosticsCollector(infra_client, self.workspace_path)
        self.cache = cache if cache is not None else ResourceCache()
        self._now = now or (lambda: datetime.now(timezone.utc))

    async def get_resources(
        self,
        domain: ResourceDomain | str,
        filters: ResourceFilter | dict[str, Any] | None = None,
    ) -> list[Resource]:
        """Return the resources of one domain after filtering.

        A cached result younger than the TTL is returned without any
        upstream call.

        Raises:
            InvalidParamsError: Unknown domain or malformed filter
        """
        domain = parse_domain(domain)
        resource_filter = parse_filter(filters)
        key = ResourceCache.make_key(domain.value, resource_filter.cache_key())

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Resource cache hit for %s", key)
            return list(cached)

        builder = {
            ResourceDomain.INFRASTRUCTURE: self._infrastructure_resources,
            ResourceDomain.WORKSPACE: self._workspace_resources,
            ResourceDomain.LOGS: self._log_resources,
            ResourceDomain.DIAGNOSTICS: self._diagnostic_resources,
        }[domain]

        with self.metrics.track("resources.fetch", tags={"domain": domain.value}):
            resources, complete = await builder()

        selected = resource_filter.apply(resources)
        if complete:
            self.cache.set(key, selected)
        return list(selected)

    async def read_resource(self, uri: str) -> Resource:
        """Find a single resource by URI.

        Raises:
            ResourceNotFoundError: No resource with that URI exists
        """
        scheme, sep, _ = uri.partition("://")
        try:
            domain = ResourceDomain(scheme)
        except ValueError:
            domain = None
        if not sep or domain is None:
            raise ResourceNotFoundError(f"Resource not found: {uri}", resource_id=uri)

        for resource in await self.get_resources(domain):
            if resource.uri == uri:
                return resource
        raise ResourceNotFoundError(
            f"Resource not found: {uri}", resource_type=domain.value, resource_id=uri
        )

    async def get_infrastructure_state(self) -> dict[str, Any]:
        """Counts of nodes, VMs and containers."""
        if self.infra_client is None:
            nodes = vms = containers = []
        else:
            nodes, vms, containers = await asyncio.gather(
                self._fetch("nodes", self.infra_client.get_nodes),
                self._fetch("vms", self.infra_client.get_vms),
                self._fetch("containers", self.infra_client.get_containers),
            )
        return {
            "nodes": len(nodes or []),
            "vms": len(vms or []),
            "containers": len(containers or []),
            "lastUpdated": self._now().isoformat(),
        }

    def clear_cache(self, domain: ResourceDomain | str | None = None) -> int:
        """Invalidate cached results for one domain, or all of them."""
        if domain is None:
            count = len(self.cache)
            self.cache.clear()
            return count
        return self.cache.invalidate_by_pattern(f"{parse_domain(domain).value}:*")

    # ------------------------------------------------------------------
    # Domain builders; each returns (resources, complete)
    # ------------------------------------------------------------------

    async def _fetch(self, part: str, call: Callable[[], Awaitable[list[Any]]]) -> list[Any] | None:
        """Await one upstream listing; None when it failed."""
        try:
            return list(await call() or [])
        except Exception as e:
            error = UpstreamError(f"list {part}", e)
            logger.error(
                "Failed to fetch %s resources: %s",
                part,
                error.message,
                extra={"error_category": "upstream"},
            )
            return None

    async def _infrastructure_resources(self) -> tuple[list[Resource], bool]:
        if self.infra_client is None:
            logger.warning("No infrastructure client configured")
            return [], True

        client = self.infra_client
        nodes, vms, containers, pools = await asyncio.gather(
            self._fetch("nodes", client.get_nodes),
            self._fetch("vms", client.get_vms),
            self._fetch("containers", client.get_containers),
            self._fetch("storage", client.get_storage_pools),
        )

        resources: list[Resource] = []
        complete = True
        for part, records, mapper in (
            ("nodes", nodes, _node_resource),
            ("vms", vms, _vm_resource),
            ("containers", containers, _container_resource),
            ("storage", pools, _storage_resource),
        ):
            if records is None:
                complete = False
                continue
            for record in records:
                try:
                    resources.append(mapper(record))
                except (AttributeError, KeyError, TypeError, ValueError) as e:
                    complete = False
                    logger.warning(
                        "Skipping malformed %s record %r: %s",
                        part,
                        record,
                        e,
                        extra={"error_category": "upstream"},
                    )
        return resources, complete

    def workspace_configuration(self) -> dict[str, Any]:
        """Describe the workspace layout on disk."""
        configuration: dict[str, Any] = {
            "path": str(self.workspace_path),
            "configExists": (self.workspace_path / WORKSPACE_CONFIG_FILE).is_file(),
            "terraform": {"available": False},
            "ansible": {"available": False},
        }

        try:
            terraform_dir = self.workspace_path / "terraform"
            if terraform_dir.is_dir():
                configuration["terraform"] = {
                    "available": True,
                    "files": sorted(p.name for p in terraform_dir.glob("*.tf")),
                }
            ansible_dir = self.workspace_path / "ansible"
            if ansible_dir.is_dir():
                configuration["ansible"] = {
                    "available": True,
                    "files": sorted(
                        p.name for p in ansible_dir.iterdir() if p.suffix in (".yml", ".yaml")
                    ),
                }
        except OSError as e:
            logger.error(
                "Failed to read workspace configuration: %s",
                e,
                extra={"error_category": "filesystem"},
            )
        return configuration

    async def _workspace_resources(self) -> tuple[list[Resource], bool]:
        resource = WorkspaceResource(
            name="workspace-config",
            description="Workspace configuration and project settings",
            uri="workspace://config",
            path=str(self.workspace_path),
            configuration=self.workspace_configuration(),
        )
        return [resource], True

    async def _log_resources(self) -> tuple[list[Resource], bool]:
        if self.log_source is None:
            return [], True

        now = self._now()
        day = TimeRange(start=now - OPERATION_LOG_WINDOW, end=now)
        week = TimeRange(start=now - AUDIT_LOG_WINDOW, end=now)

        try:
            operation_logs = self.log_source.get_recent_logs(OPERATION_LOG_LIMIT)
            error_logs = self.log_source.get_recent_logs(ERROR_LOG_LIMIT, level="error")
            audit_logs = [
                entry
                for operation in AUDIT_OPERATIONS
                for entry in self.log_source.get_recent_logs(AUDIT_LOG_LIMIT, operation=operation)
            ]
        except Exception as e:
            logger.error("Failed to fetch log resources: %s", e, extra={"error_category": "logs"})
            return [], False

        return [
            LogResource(
                type="operation-logs",
                name="recent-operations",
                description="Recent operation logs from proxmox-mpc",
                uri="logs://operations",
                time_range=day,
                count=len(operation_logs),
                metadata={
                    "operations": _unique([_entry_field(e, "operation") for e in operation_logs])
                },
            ),
            LogResource(
                type="error-logs",
                name="recent-errors",
                description="Recent error logs requiring attention",
                uri="logs://errors",
                time_range=day,
                count=len(error_logs),
                metadata={
                    "severity": "error",
                    "categories": _unique([_entry_field(e, "error_category") for e in error_logs]),
                },
            ),
            LogResource(
                type="audit-logs",
                name="audit-trail",
                description="Audit trail logs for infrastructure changes",
                uri="logs://audit",
                time_range=week,
                count=len(audit_logs),
                metadata={
                    "operations": _unique([_entry_field(e, "operation") for e in audit_logs])
                },
            ),
        ], True

    async def _diagnostic_resources(self) -> tuple[list[Resource], bool]:
        now = self._now()
        complete = True

        try:
            health = await self.diagnostics.system_health()
            health_status, health_meta = health["status"], {"components": health["components"]}
        except Exception as e:
            logger.error("System health check failed: %s", e, extra={"error_category": "diagnostics"})
            health_status, health_meta = "error", {"error": str(e)}
            complete = False

        try:
            samples = self.metrics.get_metrics()
            metrics_status = "healthy"
            metrics_meta = {
                "count": len(samples),
                "categories": _unique([s.name.split(".")[0] for s in samples]),
                "summary": self.metrics.summary(),
            }
        except Exception as e:
            logger.error("Metrics collection failed: %s", e, extra={"error_category": "diagnostics"})
            metrics_status, metrics_meta = "error", {"error": str(e)}
            complete = False

        try:
            connectivity = await self.diagnostics.check_connectivity()
            connectivity_status = connectivity["status"]
            connectivity_meta = {"services": connectivity["services"]}
        except Exception as e:
            logger.error(
                "Connectivity check failed: %s", e, extra={"error_category": "diagnostics"}
            )
            connectivity_status, connectivity_meta = "error", {"error": str(e)}
            complete = False

        return [
            DiagnosticResource(
                type="system-health",
                name="system-status",
                description="System health status and component availability",
                uri="diagnostics://health",
                last_updated=now,
                status=health_status,
                metadata=health_meta,
            ),
            DiagnosticResource(
                type="performance-metrics",
                name="performance-data",
                description="Performance metrics and system resource usage",
                uri="diagnostics://metrics",
                last_updated=now,
                status=metrics_status,
                metadata=metrics_meta,
            ),
            DiagnosticResource(
                type="connectivity-status",
                name="connectivity-check",
                description="Connectivity status to external services",
                uri="diagnostics://connectivity",
                last_updated=now,
                status=connectivity_status,
                metadata=connectivity_meta,
            ),
        ], complete
