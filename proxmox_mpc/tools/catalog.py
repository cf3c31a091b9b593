"""Built-in tool catalogue."""

from proxmox_mpc.tools.schema import ParamSpec, ToolDescriptor

MIN_MEMORY_MB = 128
MAX_CORES = 64
MIN_VMID = 100

TIME_RANGES = ("1h", "6h", "24h", "7d")

_vmid = ParamSpec("vmid", "integer", "VM ID (next free ID when omitted)", minimum=MIN_VMID)
_memory = ParamSpec(
    "memory", "number", "Memory in MB", required=True, minimum=MIN_MEMORY_MB, unit="MB"
)
_storage = ParamSpec("storage", "string", "Storage pool")
_network = ParamSpec("network", "string", "Network bridge")


def _flag(name: str, description: str) -> ParamSpec:
    return ParamSpec(name, "boolean", description)


BUILTIN_TOOLS: tuple[ToolDescriptor, ...] = (
    ToolDescriptor(
        "createVM",
        "Create a new virtual machine in Proxmox",
        (
            ParamSpec("name", "string", "VM name", required=True, non_empty=True),
            ParamSpec("node", "string", "Target node", required=True, non_empty=True),
            _memory,
            ParamSpec(
                "cores", "number", "CPU cores", required=True, minimum=1, maximum=MAX_CORES
            ),
            _storage,
            _network,
            _vmid,
        ),
    ),
    ToolDescriptor(
        "createContainer",
        "Create a new LXC container in Proxmox",
        (
            ParamSpec("name", "string", "Container name", required=True, non_empty=True),
            ParamSpec("node", "string", "Target node", required=True, non_empty=True),
            ParamSpec("template", "string", "Container template", required=True, non_empty=True),
            _memory,
            ParamSpec("cores", "number", "CPU cores", minimum=1, maximum=MAX_CORES),
            _storage,
            _network,
            _vmid,
        ),
    ),
    ToolDescriptor(
        "startVM",
        "Start a virtual machine",
        (
            ParamSpec("vmid", "integer", "VM ID", required=True, minimum=MIN_VMID),
            ParamSpec("node", "string", "Node hosting the VM (looked up when omitted)"),
        ),
    ),
    ToolDescriptor(
        "stopVM",
        "Stop a virtual machine",
        (
            ParamSpec("vmid", "integer", "VM ID", required=True, minimum=MIN_VMID),
            ParamSpec("node", "string", "Node hosting the VM (looked up when omitted)"),
        ),
    ),
    ToolDescriptor(
        "deployInfrastructure",
        "Deploy infrastructure changes using Terraform/Ansible",
        (
            _flag("dryRun", "Preview changes only"),
            _flag("confirmChanges", "Confirm deployment"),
            ParamSpec("changes", "array", "Specific changes to deploy"),
        ),
    ),
    ToolDescriptor(
        "validateInfrastructure",
        "Validate infrastructure configuration",
        (
            _flag("checkTerraform", "Validate Terraform"),
            _flag("checkAnsible", "Validate Ansible"),
            _flag("checkConnectivity", "Check connectivity"),
        ),
    ),
    ToolDescriptor(
        "generatePlan",
        "Generate infrastructure deployment plan",
        (
            _flag("includeChanges", "Include change details"),
            _flag("includeCosts", "Include cost analysis"),
            _flag("includeRisks", "Include risk assessment"),
        ),
    ),
    ToolDescriptor(
        "runDiagnostics",
        "Run system diagnostics and health checks",
        (
            _flag("includeMetrics", "Include performance metrics"),
            _flag("includeLogs", "Include log analysis"),
            _flag("includeHealth", "Include health status"),
            ParamSpec("timeRange", "string", "Time range for analysis", enum=TIME_RANGES),
        ),
    ),
    ToolDescriptor(
        "generateHealthReport",
        "Generate comprehensive health report",
        (
            _flag("includeDetails", "Include detailed metrics"),
            _flag("includeRecommendations", "Include recommendations"),
        ),
    ),
    ToolDescriptor(
        "generatePerformanceReport",
        "Generate performance analysis report",
        (
            ParamSpec("timeRange", "string", "Analysis time range", enum=TIME_RANGES),
            _flag("includeMetrics", "Include metrics data"),
            _flag("includeBottlenecks", "Include bottleneck analysis"),
        ),
    ),
    ToolDescriptor(
        "exportConfiguration",
        "Export workspace configuration",
        (
            _flag("includeSecrets", "Include sensitive data"),
            ParamSpec("format", "string", "Export format", enum=("yaml", "json")),
            ParamSpec("destination", "string", "Export destination path", non_empty=True),
        ),
    ),
    ToolDescriptor(
        "importConfiguration",
        "Import workspace configuration",
        (
            ParamSpec("source", "string", "Import source path", required=True, non_empty=True),
            _flag("merge", "Merge with existing config"),
            _flag("validateOnly", "Validate without importing"),
        ),
    ),
    ToolDescriptor(
        "backupWorkspace",
        "Create workspace backup",
        (
            _flag("includeHistory", "Include history files"),
            _flag("includeConfigs", "Include configuration files"),
            _flag("includeLogs", "Include log files"),
            ParamSpec("destination", "string", "Backup destination path", non_empty=True),
        ),
    ),
)
