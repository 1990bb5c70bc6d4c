"""
toolbelt - Provision and remove a declared collection of CLI tools.

Core Modules:
- Foundation: Environment detection, config, errors, logging
- Resolution: Manifest parsing, package managers, system and special packages
- Toolchain: Go release discovery, install and Go-built tools
- Tools: Clone, setup and alias of tool repositories, dotfiles
- Profile: Typed shell profile directives in a managed block
- Ledger: Record of what install created, consumed by uninstall
"""

__version__ = "1.0.0"

VERSION = __version__

# Foundation
from .environment import EnvironmentContext, detect_environment
from .config import Config, ToolchainConfig, load_config, load_config_file
from .errors import (
    ProvisionError,
    ConfigurationError,
    UnsupportedEnvironmentError,
    NetworkError,
    ExecutionError,
)

# Resolution
from .manifests import (
    PackageSpec,
    SpecialPackageSpec,
    ToolchainToolSpec,
    ToolEntry,
    WordlistEntry,
    load_package_specs,
    load_special_package_specs,
    load_toolchain_tools,
    load_tool_entries,
)
from .package_managers import (
    PackageManager,
    PackageManagerInstall,
    ScriptedInstall,
    get_package_manager,
    parse_install_strategy,
)
from .installer import InstallStep, StepResult, execute_step, run_step
from .resolver import install_system_packages, install_special_packages, install_python_apps

# Toolchain
from .toolchain import ToolchainStatus, compare_versions, ensure_toolchain, fetch_latest_version

# Tools and profile
from .tools import clone_entry, setup_tool, create_alias, provision_tools
from .profile import Profile, PathExport, Alias, SourceCompletion, parse_directive
from .ledger import InstallLedger, load_ledger, write_ledger

# Orchestration
from .provision import run_install
from .uninstall import run_uninstall

# Logging configuration
from .logging_config import (
    setup_logging,
    get_logger,
)

__all__ = [
    # Version
    "__version__",
    "VERSION",
    # Foundation
    "EnvironmentContext",
    "detect_environment",
    "Config",
    "ToolchainConfig",
    "load_config",
    "load_config_file",
    "ProvisionError",
    "ConfigurationError",
    "UnsupportedEnvironmentError",
    "NetworkError",
    "ExecutionError",
    # Resolution
    "PackageSpec",
    "SpecialPackageSpec",
    "ToolchainToolSpec",
    "ToolEntry",
    "WordlistEntry",
    "load_package_specs",
    "load_special_package_specs",
    "load_toolchain_tools",
    "load_tool_entries",
    "PackageManager",
    "PackageManagerInstall",
    "ScriptedInstall",
    "get_package_manager",
    "parse_install_strategy",
    "InstallStep",
    "StepResult",
    "execute_step",
    "run_step",
    "install_system_packages",
    "install_special_packages",
    "install_python_apps",
    # Toolchain
    "ToolchainStatus",
    "compare_versions",
    "ensure_toolchain",
    "fetch_latest_version",
    # Tools and profile
    "clone_entry",
    "setup_tool",
    "create_alias",
    "provision_tools",
    "Profile",
    "PathExport",
    "Alias",
    "SourceCompletion",
    "parse_directive",
    "InstallLedger",
    "load_ledger",
    "write_ledger",
    # Orchestration
    "run_install",
    "run_uninstall",
    # Logging
    "setup_logging",
    "get_logger",
]
