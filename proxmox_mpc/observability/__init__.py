"""Logging, metrics and diagnostics."""

from proxmox_mpc.observability.diagnostics import DiagnosticsCollector
from proxmox_mpc.observability.logging import (
    JSONFormatter,
    LogEntry,
    RecentLogBuffer,
    configure_logging,
)
from proxmox_mpc.observability.metrics import Metric, MetricsCollector

__all__ = [
    "DiagnosticsCollector",
    "JSONFormatter",
    "LogEntry",
    "Metric",
    "MetricsCollector",
    "RecentLogBuffer",
    "configure_logging",
]
