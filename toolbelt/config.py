"""
Configuration file parsing and management.

Loads YAML configuration files and merges them from multiple sources
(explicit path → project → user → defaults).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from .common import vlog
from .errors import ConfigurationError


# Configuration file locations (in priority order)
CONFIG_LOCATIONS = [
    ".toolbelt.yml",                              # Project root (highest priority)
    ".toolbelt.yaml",                             # Alternative extension
    os.path.expanduser("~/.config/toolbelt/config.yml"),  # User global
    os.path.expanduser("~/.config/toolbelt/config.yaml"),
]

# Manifests shipped next to the package
DEFAULT_MANIFEST_DIR = str(Path(__file__).resolve().parent.parent / "manifests")

UNINSTALL_MODES = {"ledger", "manifest"}


@dataclass(frozen=True)
class ToolchainConfig:
    """
    Settings for the versioned toolchain (Go).

    Attributes:
        name: Runtime binary name
        os_family: The only OS family the toolchain is installed on
        index_url: Release listing URL (JSON available via ?mode=json)
        download_url: Archive URL template ({version}, {os}, {arch})
        install_root: Directory the archive is extracted into
        connect_timeout: Timeout in seconds for release discovery
    """
    name: str = "go"
    os_family: str = "Linux"
    index_url: str = "https://go.dev/dl/"
    download_url: str = "https://go.dev/dl/go{version}.{os}-{arch}.tar.gz"
    install_root: str = "/usr/local"
    connect_timeout: int = 5

    def __post_init__(self):
        if self.connect_timeout < 1 or self.connect_timeout > 60:
            raise ValueError(
                f"Invalid connect_timeout: {self.connect_timeout}. "
                "Must be between 1 and 60"
            )

    @property
    def install_dir(self) -> Path:
        return Path(self.install_root) / self.name

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ToolchainConfig:
        """Create ToolchainConfig from dictionary."""
        defaults = ToolchainConfig()
        return ToolchainConfig(
            name=data.get("name", defaults.name),
            os_family=data.get("os_family", defaults.os_family),
            index_url=data.get("index_url", defaults.index_url),
            download_url=data.get("download_url", defaults.download_url),
            install_root=data.get("install_root", defaults.install_root),
            connect_timeout=data.get("connect_timeout", defaults.connect_timeout),
        )


@dataclass(frozen=True)
class Config:
    """
    Complete configuration for a provisioning run.

    Attributes:
        version: Config schema version
        manifest_dir: Directory holding the manifest files
        install_home: Override for the detected install home
        ledger_path: Install ledger location (default under the install home)
        log_file: Optional log file
        python_apps: Applications installed with pipx
        uninstall_mode: 'ledger' (remove only recorded items) or 'manifest'
        toolchain: Toolchain settings
        source: Path to the configuration file that was loaded
    """
    version: int = 1
    manifest_dir: str = DEFAULT_MANIFEST_DIR
    install_home: str | None = None
    ledger_path: str | None = None
    log_file: str | None = None
    python_apps: tuple[str, ...] = ("uro",)
    uninstall_mode: str = "ledger"
    toolchain: ToolchainConfig = field(default_factory=ToolchainConfig)
    source: str = ""

    def __post_init__(self):
        """Validate config after initialization."""
        if self.version != 1:
            raise ValueError(f"Unsupported config version: {self.version}. Expected version 1")

        if self.uninstall_mode not in UNINSTALL_MODES:
            raise ValueError(
                f"Invalid uninstall mode: {self.uninstall_mode}. "
                f"Must be one of: {', '.join(sorted(UNINSTALL_MODES))}"
            )

    @staticmethod
    def from_dict(data: dict[str, Any], source: str = "") -> Config:
        """Create Config from dictionary."""
        uninstall_data = data.get("uninstall", {}) or {}
        python_apps = data.get("python_apps", ["uro"])

        return Config(
            version=data.get("version", 1),
            manifest_dir=os.path.expanduser(data.get("manifest_dir", DEFAULT_MANIFEST_DIR)),
            install_home=data.get("install_home"),
            ledger_path=data.get("ledger_path"),
            log_file=data.get("log_file"),
            python_apps=tuple(python_apps or ()),
            uninstall_mode=uninstall_data.get("mode", "ledger"),
            toolchain=ToolchainConfig.from_dict(data.get("toolchain", {}) or {}),
            source=source,
        )

    def manifest_path(self, filename: str) -> Path:
        return Path(self.manifest_dir) / filename

    def resolve_ledger_path(self, install_home: Path) -> Path:
        if self.ledger_path:
            return Path(os.path.expanduser(self.ledger_path))
        return install_home / ".toolbelt" / "ledger.json"

    def merge_with(self, other: Config) -> Config:
        """
        Merge this config with another, preferring values from this config.

        Args:
            other: Other config to merge (lower priority)

        Returns:
            New merged Config object
        """
        defaults = Config()
        merged = {}
        for name in ("manifest_dir", "install_home", "ledger_path", "log_file",
                     "python_apps", "uninstall_mode", "toolchain"):
            mine = getattr(self, name)
            merged[name] = mine if mine != getattr(defaults, name) else getattr(other, name)

        return replace(self, source=self.source or other.source, **merged)


def load_config_file(file_path: str, verbose: bool = False) -> Config | None:
    """
    Load configuration from a single YAML file.

    Args:
        file_path: Path to configuration file
        verbose: Enable verbose logging

    Returns:
        Config object, or None if the file does not exist

    Raises:
        ConfigurationError: If the file cannot be parsed or fails validation
    """
    if not os.path.exists(file_path):
        return None

    vlog(f"Loading config from: {file_path}", verbose)

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Invalid config file {file_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid config file {file_path}: expected a mapping")

    try:
        config = Config.from_dict(data, source=file_path)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Config validation failed for {file_path}: {e}") from e

    vlog(f"Loaded config successfully: {file_path}", verbose)
    return config


def load_config(
    custom_path: str | None = None,
    verbose: bool = False,
) -> Config:
    """
    Load and merge configuration from all sources.

    Configuration precedence (highest to lowest):
    1. Custom path (argument, or $TOOLBELT_CONFIG)
    2. Project .toolbelt.yml
    3. User ~/.config/toolbelt/config.yml
    4. Default configuration

    Args:
        custom_path: Optional path to custom configuration file
        verbose: Enable verbose logging

    Returns:
        Merged Config object (never None, returns defaults if no config found)

    Raises:
        ConfigurationError: If the custom path cannot be loaded
    """
    configs: list[Config] = []

    custom_path = custom_path or os.environ.get("TOOLBELT_CONFIG")
    if custom_path:
        config = load_config_file(custom_path, verbose)
        if config is None:
            raise ConfigurationError(f"Could not load config from specified path: {custom_path}")
        configs.append(config)

    for location in CONFIG_LOCATIONS:
        config = load_config_file(location, verbose)
        if config is not None:
            configs.append(config)
            vlog(f"Found config at: {location}", verbose)

    if not configs:
        vlog("No config files found, using defaults", verbose)
        return Config()

    merged = configs[0]
    for config in configs[1:]:
        merged = merged.merge_with(config)

    vlog(f"Merged {len(configs)} config files", verbose)
    return merged
