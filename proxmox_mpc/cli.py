"""
Command-line interface for proxmox-mpc.

Usage:
    proxmox-mpc serve [--transport stdio|http] [--config FILE] [--client MODULE:FACTORY]
    proxmox-mpc tools [--json]
    proxmox-mpc prompts [--json]
    proxmox-mpc render TEMPLATE [--context JSON] [--strict]

``--client`` names a zero-argument factory returning an ``InfraClient``
(and optionally a second ``--backend`` factory for the deployment backend).
Without a client the server still runs; infrastructure resources are empty
and infrastructure tools report that no client is configured.
"""

import argparse
import importlib
import json
import logging
import sys
from typing import Any

from proxmox_mpc import __version__
from proxmox_mpc.framework.errors import MCPError
from proxmox_mpc.observability.logging import configure_logging
from proxmox_mpc.prompts.renderer import PromptRenderer
from proxmox_mpc.server.config import load_config, setup_hot_reload
from proxmox_mpc.tools.catalog import BUILTIN_TOOLS

logger = logging.getLogger(__name__)


def _load_factory(spec: str) -> Any:
    """Import ``module:attribute`` and call it."""
    module_name, sep, attribute = spec.partition(":")
    if not sep or not module_name or not attribute:
        msg = f"Expected MODULE:FACTORY, got {spec!r}"
        raise ValueError(msg)
    factory = getattr(importlib.import_module(module_name), attribute)
    return factory()


# =============================================================================
# Commands
# =============================================================================


def serve(args: argparse.Namespace) -> int:
    """Start the MCP server on the selected transport.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    from proxmox_mpc.server.mcp_server import MCPServer

    try:
        config = load_config(args.config)
    except ValueError:
        return 1

    log_buffer = configure_logging(
        level=args.log_level or config.server.log_level,
        structured=config.observability.structured_logging,
        log_file=config.server.log_file,
        buffer_size=config.observability.log_buffer_size,
    )

    try:
        client = _load_factory(args.client) if args.client else None
        backend = _load_factory(args.backend) if args.backend else None
    except (ImportError, AttributeError, ValueError) as e:
        logger.error("Failed to load collaborator: %s", e)
        return 1

    server = MCPServer(config, infra_client=client, deployment_backend=backend, log_source=log_buffer)
    config.register_reload_callback(server.apply_config)
    setup_hot_reload(config)

    try:
        if args.transport == "http":
            from proxmox_mpc.server.http_transport import run_http

            run_http(server, host=args.host, port=args.port)
        else:
            from proxmox_mpc.server.stdio_transport import run_stdio

            run_stdio(server)
        return 0
    except KeyboardInterrupt:
        return 0
    except Exception:
        logger.exception("MCP server error")
        return 1


def list_tools(args: argparse.Namespace) -> int:
    if args.json:
        print(json.dumps([tool.to_dict() for tool in BUILTIN_TOOLS], indent=2))
        return 0

    for tool in BUILTIN_TOOLS:
        required = [p.name for p in tool.params if p.required]
        print(f"{tool.name:<28} {tool.description}")
        if required:
            print(f"{'':<28} required: {', '.join(required)}")
    return 0


def list_prompts(args: argparse.Namespace) -> int:
    renderer = PromptRenderer(".")
    templates = renderer.list_templates()
    if args.json:
        print(json.dumps([t.to_dict() for t in templates], indent=2))
        return 0

    for template in templates:
        print(f"{template.name:<16} {template.description}")
        print(f"{'':<16} variables: {', '.join(template.variables)}")
    return 0


def render_prompt(args: argparse.Namespace) -> int:
    try:
        context = json.loads(args.context) if args.context else {}
    except json.JSONDecodeError as e:
        print(f"Invalid --context JSON: {e}", file=sys.stderr)
        return 1
    if not isinstance(context, dict):
        print("--context must be a JSON object", file=sys.stderr)
        return 1

    renderer = PromptRenderer(args.workspace)
    try:
        print(renderer.render(args.template, context, strict=args.strict))
    except MCPError as e:
        print(e.message, file=sys.stderr)
        return 1
    return 0


# =============================================================================
# Main CLI
# =============================================================================


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="proxmox-mpc",
        description="MCP server for Proxmox infrastructure management",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve over stdio (for MCP clients that spawn the server)
  proxmox-mpc serve

  # Serve over HTTP with a Proxmox client factory
  proxmox-mpc serve --transport http --client mypkg.proxmox:make_client

  # Render a prompt
  proxmox-mpc render troubleshoot --context '{"issue": "VM 100 will not boot"}'
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Override the configured logging level",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    serve_parser = subparsers.add_parser("serve", help="Start the MCP server")
    serve_parser.add_argument(
        "--transport", choices=["stdio", "http"], default="stdio", help="Transport (default: stdio)"
    )
    serve_parser.add_argument("--config", "-c", help="Path to config YAML (default: proxmox_mcp.yml)")
    serve_parser.add_argument("--client", help="InfraClient factory as MODULE:FACTORY")
    serve_parser.add_argument("--backend", help="DeploymentBackend factory as MODULE:FACTORY")
    serve_parser.add_argument("--host", help="HTTP bind address (overrides config)")
    serve_parser.add_argument("--port", "-p", type=int, help="HTTP port (overrides config)")
    serve_parser.set_defaults(func=serve)

    tools_parser = subparsers.add_parser("tools", help="List the built-in tools")
    tools_parser.add_argument("--json", action="store_true", help="Print tool descriptors as JSON")
    tools_parser.set_defaults(func=list_tools)

    prompts_parser = subparsers.add_parser("prompts", help="List the prompt templates")
    prompts_parser.add_argument("--json", action="store_true", help="Print templates as JSON")
    prompts_parser.set_defaults(func=list_prompts)

    render_parser = subparsers.add_parser("render", help="Render a prompt template")
    render_parser.add_argument("template", help="Template name")
    render_parser.add_argument("--context", help="Context as a JSON object")
    render_parser.add_argument("--workspace", "-w", default=".", help="Workspace path")
    render_parser.add_argument(
        "--strict", action="store_true", help="Fail when placeholders are left unresolved"
    )
    render_parser.set_defaults(func=render_prompt)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command != "serve":
        logging.basicConfig(
            level=getattr(logging, args.log_level or "WARNING"),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
