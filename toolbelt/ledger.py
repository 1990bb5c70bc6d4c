"""
Install ledger.

Records exactly what install runs created on this machine: packages that
were absent before, cloned directories, generated files and profile lines.
Uninstall consumes the ledger so it removes only those, never state that
existed before toolbelt touched the machine.
"""

from __future__ import annotations

import datetime
import json
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigurationError

SCHEMA_VERSION = 1


@dataclass
class ToolchainRecord:
    """Toolchain install created by a run."""

    version: str = ""
    install_dir: str = ""
    workspace: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "version": self.version,
            "install_dir": self.install_dir,
            "workspace": self.workspace,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolchainRecord":
        return cls(
            version=data.get("version", ""),
            install_dir=data.get("install_dir", ""),
            workspace=data.get("workspace", ""),
        )


@dataclass
class InstallLedger:
    """Container for everything install created, with metadata."""

    system_packages: list[dict[str, str]] = field(default_factory=list)
    special_packages: list[str] = field(default_factory=list)
    python_apps: list[str] = field(default_factory=list)
    toolchain: ToolchainRecord | None = None
    toolchain_tools: list[str] = field(default_factory=list)
    directories: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    profile_directives: list[str] = field(default_factory=list)
    updated_at: str = ""
    hostname: str = ""

    def is_empty(self) -> bool:
        return not (
            self.system_packages or self.special_packages or self.python_apps
            or self.toolchain or self.toolchain_tools or self.directories
            or self.files or self.profile_directives
        )

    # Recording helpers keep every list free of duplicates

    def record_system_package(self, manager: str, name: str) -> None:
        entry = {"manager": manager, "name": name}
        if entry not in self.system_packages:
            self.system_packages.append(entry)

    def record_special_package(self, command_name: str) -> None:
        _append_once(self.special_packages, command_name)

    def record_python_app(self, name: str) -> None:
        _append_once(self.python_apps, name)

    def record_toolchain(self, version: str, install_dir: str, workspace: str) -> None:
        self.toolchain = ToolchainRecord(version=version, install_dir=install_dir, workspace=workspace)

    def record_toolchain_tool(self, binary_path: str) -> None:
        _append_once(self.toolchain_tools, binary_path)

    def record_directory(self, path: str) -> None:
        _append_once(self.directories, path)

    def record_file(self, path: str) -> None:
        _append_once(self.files, path)

    def record_profile_directive(self, rendered: str) -> None:
        _append_once(self.profile_directives, rendered)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "__meta__": {
                "schema_version": SCHEMA_VERSION,
                "updated_at": self.updated_at,
                "hostname": self.hostname,
            },
            "system_packages": list(self.system_packages),
            "special_packages": list(self.special_packages),
            "python_apps": list(self.python_apps),
            "toolchain": self.toolchain.to_dict() if self.toolchain else None,
            "toolchain_tools": list(self.toolchain_tools),
            "directories": list(self.directories),
            "files": list(self.files),
            "profile_directives": list(self.profile_directives),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InstallLedger":
        """Create from dictionary."""
        meta = data.get("__meta__", {})
        toolchain = data.get("toolchain")
        return cls(
            system_packages=[dict(entry) for entry in data.get("system_packages", [])],
            special_packages=list(data.get("special_packages", [])),
            python_apps=list(data.get("python_apps", [])),
            toolchain=ToolchainRecord.from_dict(toolchain) if toolchain else None,
            toolchain_tools=list(data.get("toolchain_tools", [])),
            directories=list(data.get("directories", [])),
            files=list(data.get("files", [])),
            profile_directives=list(data.get("profile_directives", [])),
            updated_at=meta.get("updated_at", ""),
            hostname=meta.get("hostname", ""),
        )


def _append_once(items: list[str], value: str) -> None:
    if value not in items:
        items.append(value)


def load_ledger(path: Path) -> InstallLedger:
    """Load the ledger from file.

    Args:
        path: Ledger file

    Returns:
        InstallLedger (empty when the file does not exist)

    Raises:
        ConfigurationError: If the file exists but is not a valid ledger
    """
    if not path.exists():
        return InstallLedger()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            f"Cannot read install ledger {path}: {e}",
            remediation="Fix or delete the ledger file, or set uninstall.mode to 'manifest'",
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Install ledger {path} is not a JSON object")
    return InstallLedger.from_dict(data)


def write_ledger(ledger: InstallLedger, path: Path) -> None:
    """Write the ledger, or delete the file when nothing is recorded.

    Args:
        ledger: InstallLedger instance to write
        path: Ledger file
    """
    if ledger.is_empty():
        if path.exists():
            path.unlink()
            if not any(path.parent.iterdir()):
                path.parent.rmdir()
        return

    ledger.updated_at = (
        datetime.datetime.now(datetime.timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )
    ledger.hostname = socket.gethostname()

    # Atomic write: write to temp file then rename
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(".tmp")
    with open(temp_path, "w", encoding="utf-8") as f:
        json.dump(ledger.to_dict(), f, indent=2, ensure_ascii=False)
    temp_path.replace(path)
