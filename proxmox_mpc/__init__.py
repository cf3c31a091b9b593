"""proxmox-mpc: Model Context Protocol server for Proxmox infrastructure management."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("proxmox-mpc")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = ["__version__"]
