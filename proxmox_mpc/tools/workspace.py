"""Workspace file helpers for the export/import/backup tools."""

import json
import re
import tarfile
from pathlib import Path
from typing import Any

import yaml

CONFIG_RELPATH = Path(".proxmox") / "config.yml"
BACKUP_DIR = Path(".proxmox") / "backups"
REDACTED = "***REDACTED***"

SECRET_KEY = re.compile(r"password|passwd|token|secret|api[_-]?key|private[_-]?key", re.IGNORECASE)

BACKUP_SOURCES: dict[str, tuple[str, ...]] = {
    "configs": (str(CONFIG_RELPATH), "terraform", "ansible"),
    "history": (".proxmox/history",),
    "logs": (".proxmox/logs", "logs"),
}


def load_config(path: Path) -> dict[str, Any]:
    """Read a YAML config file; an empty file is an empty mapping."""
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data or {}


def parse_config(text: str, suffix: str) -> Any:
    if suffix == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


def dump_config(config: dict[str, Any], fmt: str = "yaml") -> str:
    if fmt == "json":
        return json.dumps(config, indent=2, default=str)
    return yaml.safe_dump(config, sort_keys=False, default_flow_style=False)


def is_secret(key: Any) -> bool:
    return isinstance(key, str) and bool(SECRET_KEY.search(key))


def redact_secrets(value: Any) -> Any:
    """Replace scalar values under secret-looking keys."""
    if isinstance(value, dict):
        return {
            k: REDACTED if is_secret(k) and not isinstance(v, (dict, list)) else redact_secrets(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [redact_secrets(v) for v in value]
    return value


def deep_merge(base: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def flatten(config: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for key, value in config.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict) and value:
            flat.update(flatten(value, f"{dotted}."))
        else:
            flat[dotted] = value
    return flat


def diff_config(old: dict[str, Any], new: dict[str, Any]) -> list[dict[str, Any]]:
    """List added/updated/removed dotted keys; secret values are masked."""

    def shown(key: str, value: Any) -> Any:
        return REDACTED if is_secret(key.rsplit(".", 1)[-1]) else value

    before, after = flatten(old), flatten(new)
    changes: list[dict[str, Any]] = []
    for key, value in after.items():
        if key not in before:
            changes.append({"type": "added", "key": key, "value": shown(key, value)})
        elif before[key] != value:
            changes.append(
                {
                    "type": "updated",
                    "key": key,
                    "oldValue": shown(key, before[key]),
                    "newValue": shown(key, value),
                }
            )
    for key, value in before.items():
        if key not in after:
            changes.append({"type": "removed", "key": key, "oldValue": shown(key, value)})
    return changes


def backup_members(workspace: Path, includes: list[str]) -> list[str]:
    """Relative paths (that exist) covered by the selected backup sections."""
    members = []
    for section in includes:
        for rel in BACKUP_SOURCES.get(section, ()):
            if (workspace / rel).exists():
                members.append(rel)
    return members


def write_archive(destination: Path, workspace: Path, members: list[str]) -> int:
    """Write a gzip tarball and return its size in bytes."""
    with tarfile.open(destination, "w:gz") as tar:
        for rel in members:
            tar.add(workspace / rel, arcname=rel)
    return destination.stat().st_size
