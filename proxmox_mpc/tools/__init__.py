"""Tool catalogue, shared parameter validator and executor."""

from proxmox_mpc.tools.catalog import BUILTIN_TOOLS
from proxmox_mpc.tools.executor import ToolExecutor, ToolResult
from proxmox_mpc.tools.schema import ParamSpec, ToolDescriptor, ValidationReport, validate_parameters

__all__ = [
    "BUILTIN_TOOLS",
    "ParamSpec",
    "ToolDescriptor",
    "ToolExecutor",
    "ToolResult",
    "ValidationReport",
    "validate_parameters",
]
