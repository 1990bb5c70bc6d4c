"""
Install orchestration.

Runs every provisioning phase in a fixed order against one environment
context. Each phase probes before acting, so an interrupted run is
resumed by running install again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .config import Config
from .dotfiles import create_gau_config, setup_gf
from .environment import EnvironmentContext, detect_environment
from .ledger import InstallLedger, load_ledger, write_ledger
from .manifests import (
    SPECIAL_PACKAGES_FILE,
    SYSTEM_PACKAGES_FILE,
    TOOLCHAIN_TOOLS_FILE,
    TOOLS_FILE,
    WORDLISTS_FILE,
    PackageSpec,
    SpecialPackageSpec,
    ToolchainToolSpec,
    ToolEntry,
    load_package_specs,
    load_special_package_specs,
    load_tool_entries,
    load_toolchain_tools,
)
from .profile import Profile
from .resolver import (
    install_python_apps,
    install_special_packages,
    install_system_packages,
    upgrade_setuptools,
)
from .toolchain import ensure_toolchain, install_toolchain_tools, supports
from .tools import clone_entries, provision_tools

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Manifests:
    """All manifests an install run consumes."""
    system_packages: tuple[PackageSpec, ...]
    special_packages: tuple[SpecialPackageSpec, ...]
    toolchain_tools: tuple[ToolchainToolSpec, ...]
    tools: tuple[ToolEntry, ...]
    wordlists: tuple[ToolEntry, ...]

    @classmethod
    def load(cls, config: Config) -> "Manifests":
        """
        Parse every manifest.

        Raises:
            ConfigurationError: If a manifest is missing or malformed
        """
        return cls(
            system_packages=tuple(load_package_specs(config.manifest_path(SYSTEM_PACKAGES_FILE))),
            special_packages=tuple(load_special_package_specs(config.manifest_path(SPECIAL_PACKAGES_FILE))),
            toolchain_tools=tuple(load_toolchain_tools(config.manifest_path(TOOLCHAIN_TOOLS_FILE))),
            tools=tuple(load_tool_entries(config.manifest_path(TOOLS_FILE))),
            wordlists=tuple(load_tool_entries(config.manifest_path(WORDLISTS_FILE))),
        )


def context_for(config: Config) -> EnvironmentContext:
    return detect_environment(install_home=Path(config.install_home).expanduser() if config.install_home else None)


def run_install(
    config: Config,
    ctx: EnvironmentContext | None = None,
    verbose: bool = False,
) -> InstallLedger:
    """
    Provision the machine.

    Manifests are parsed before anything changes. The install ledger is
    saved even when a phase fails, so uninstall sees partial runs.

    Args:
        config: Loaded configuration
        ctx: Environment context (detected when omitted)
        verbose: Enable verbose logging

    Returns:
        The updated install ledger

    Raises:
        ProvisionError: On the first fatal failure
    """
    ctx = ctx or context_for(config)
    logger.debug(f"Environment: {ctx}")
    manifests = Manifests.load(config)
    profile = Profile(ctx.profile_path)

    ledger_path = config.resolve_ledger_path(ctx.install_home)
    ledger = load_ledger(ledger_path)

    try:
        upgrade_setuptools(ctx, verbose=verbose)

        logger.info("Installing system packages...")
        install_system_packages(manifests.system_packages, ctx, ledger, verbose=verbose)
        install_special_packages(manifests.special_packages, ctx, ledger, verbose=verbose)
        install_python_apps(config.python_apps, ctx, ledger, verbose=verbose)

        if supports(ctx, config.toolchain):
            ensure_toolchain(ctx, config.toolchain, profile, ledger, verbose=verbose)
        else:
            logger.info(f"Skipping {config.toolchain.name} install on OS: {ctx.os_family}")

        logger.info("Installing Go tools...")
        install_toolchain_tools(manifests.toolchain_tools, ctx, ledger, verbose=verbose)

        create_gau_config(ctx, ledger)
        setup_gf(ctx, profile, ledger)

        logger.info("Installing tools...")
        provision_tools(manifests.tools, ctx, profile, ledger, verbose=verbose)

        logger.info("Installing wordlists...")
        clone_entries(manifests.wordlists, ctx, ledger, verbose=verbose)
    finally:
        write_ledger(ledger, ledger_path)

    logger.info(f"Installation complete. Run 'source {ctx.profile_path}' to refresh your shell.")
    return ledger
