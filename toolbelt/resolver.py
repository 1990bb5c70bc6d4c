"""
Declarative package resolution.

Filters package manifests by the current OS and architecture, then installs
or removes each entry after probing for it: the package database for
system packages, PATH resolvability for special packages and pipx
applications. Any failed package-manager call aborts the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from .common import has_command
from .environment import EnvironmentContext
from .errors import UnsupportedEnvironmentError
from .installer import InstallStep, execute_step, probe, run_step
from .ledger import InstallLedger
from .manifests import PackageSpec, SpecialPackageSpec, filter_applicable
from .package_managers import get_package_manager, system_package_manager

logger = logging.getLogger(__name__)

PYTHON_APP_OS_FAMILIES = ("Linux", "Darwin")


def install_system_packages(
    specs: Sequence[PackageSpec],
    ctx: EnvironmentContext,
    ledger: InstallLedger | None = None,
    verbose: bool = False,
) -> list[str]:
    """
    Install every applicable system package that is not installed yet.

    Args:
        specs: Parsed system-package manifest
        ctx: Environment context
        ledger: Ledger receiving the packages this call installed
        verbose: Enable verbose logging

    Returns:
        Names of packages that were installed

    Raises:
        ExecutionError: If the package manager fails
    """
    pm = system_package_manager(ctx.os_family)
    installed: list[str] = []

    for spec in filter_applicable(specs, ctx):
        if pm is None:
            logger.warning(f"No system package manager known for {ctx.os_family}; skipping line {spec.line_number}")
            continue
        for package in spec.packages:
            if probe(pm.get_query_command(package), ctx):
                logger.info(f"Package {package} already installed.")
                continue

            logger.info(f"Installing {pm.display_name} package {package}...")
            run_step(
                InstallStep(
                    description=f"Install {package} with {pm.display_name}",
                    command=pm.get_install_command(package),
                    requires_sudo=pm.requires_sudo,
                ),
                ctx,
                verbose=verbose,
            )
            installed.append(package)
            if ledger is not None:
                ledger.record_system_package(pm.name, package)

    return installed


def install_special_packages(
    specs: Sequence[SpecialPackageSpec],
    ctx: EnvironmentContext,
    ledger: InstallLedger | None = None,
    verbose: bool = False,
) -> list[str]:
    """
    Install special packages whose command is not on PATH.

    Each applicable entry's install strategy runs at most once.

    Returns:
        Command names that were installed

    Raises:
        ExecutionError: If the install command fails
    """
    installed: list[str] = []

    for spec in filter_applicable(specs, ctx):
        if has_command(spec.command_name):
            logger.info(f"Special package {spec.command_name} already installed.")
            continue

        logger.info(f"Installing special package {spec.command_name} ({spec.strategy.describe()})...")
        run_step(
            InstallStep(
                description=f"Install special package {spec.command_name}",
                command=spec.strategy.render(ctx),
                requires_sudo=spec.strategy.requires_sudo,
            ),
            ctx,
            verbose=verbose,
        )
        installed.append(spec.command_name)
        if ledger is not None:
            ledger.record_special_package(spec.command_name)

    return installed


def install_python_apps(
    apps: Sequence[str],
    ctx: EnvironmentContext,
    ledger: InstallLedger | None = None,
    verbose: bool = False,
) -> list[str]:
    """
    Install standalone Python applications with pipx.

    Raises:
        UnsupportedEnvironmentError: On OS families without pipx support
        ExecutionError: If pipx fails
    """
    if not apps:
        return []
    if ctx.os_family not in PYTHON_APP_OS_FAMILIES:
        raise UnsupportedEnvironmentError(
            f"Unsupported OS: {ctx.os_family}. Please install pipx and {', '.join(apps)} manually."
        )

    pipx = get_package_manager("pipx")
    installed: list[str] = []
    for app in apps:
        if has_command(app):
            logger.info(f"{app} is already installed.")
            continue
        logger.info(f"Installing {app} with pipx...")
        run_step(
            InstallStep(f"Install {app} with pipx", pipx.get_install_command(app)),
            ctx,
            verbose=verbose,
        )
        installed.append(app)
        if ledger is not None:
            ledger.record_python_app(app)

    result = execute_step(InstallStep("Ensure pipx path", ("pipx", "ensurepath")), ctx, verbose=verbose)
    if not result.success:
        logger.debug(f"pipx ensurepath failed: {result.error_message}")
    return installed


def upgrade_setuptools(ctx: EnvironmentContext, verbose: bool = False) -> bool:
    """
    Upgrade setuptools for the system interpreter on Linux (best effort).

    Returns:
        True if the upgrade command succeeded
    """
    if ctx.os_family != "Linux":
        return False
    result = execute_step(
        InstallStep(
            "Upgrade setuptools",
            ("python3", "-m", "pip", "install", "--upgrade", "setuptools", "--break-system-packages"),
        ),
        ctx,
        verbose=verbose,
    )
    if not result.success:
        logger.warning(f"Could not upgrade setuptools: {result.error_message}")
    return result.success


# Removal


@dataclass(frozen=True)
class RecipeStep:
    """
    One command of an uninstall recipe.

    Attributes:
        command: Command template ({install_home} placeholder)
        requires_sudo: Whether the command needs privilege elevation
        when_available: Only run when this command resolves on PATH
    """
    command: tuple[str, ...]
    requires_sudo: bool = False
    when_available: str | None = None

    def render(self, ctx: EnvironmentContext) -> tuple[str, ...]:
        return tuple(part.replace("{install_home}", str(ctx.install_home)) for part in self.command)


# Special packages have no generic inverse; only these are removed
UNINSTALL_RECIPES: dict[str, tuple[RecipeStep, ...]] = {
    "searchsploit": (
        RecipeStep(("rm", "-rf", "{install_home}/exploitdb")),
        RecipeStep(("rm", "-f", "/usr/local/bin/searchsploit"), requires_sudo=True),
        RecipeStep(("snap", "remove", "searchsploit"), requires_sudo=True, when_available="snap"),
    ),
    "uro": (
        RecipeStep(("pipx", "uninstall", "uro"), when_available="pipx"),
    ),
}


def run_recipe(name: str, ctx: EnvironmentContext, verbose: bool = False) -> bool:
    """
    Run the uninstall recipe for a special package.

    Recipe commands that fail are logged and do not abort the run.

    Returns:
        False when no recipe is known for the package
    """
    recipe = UNINSTALL_RECIPES.get(name)
    if recipe is None:
        logger.warning(f"No uninstall instruction for {name}, skipping.")
        return False

    for recipe_step in recipe:
        if recipe_step.when_available and not has_command(recipe_step.when_available):
            continue
        step = InstallStep(f"Remove {name}", recipe_step.render(ctx), requires_sudo=recipe_step.requires_sudo)
        result = execute_step(step, ctx, verbose=verbose)
        if not result.success:
            logger.warning(f"{' '.join(step.command)}: {result.error_message}")
    return True


def remove_package(manager_name: str, package: str, ctx: EnvironmentContext, verbose: bool = False) -> bool:
    """
    Remove one system package if the package database reports it.

    Returns:
        True if the package was removed

    Raises:
        ExecutionError: If the package manager fails
    """
    pm = get_package_manager(manager_name)
    if pm is None:
        logger.warning(f"Unknown package manager {manager_name}, keeping {package}.")
        return False
    if not probe(pm.get_query_command(package), ctx):
        logger.info(f"Package {package} not installed, skipping.")
        return False

    logger.info(f"Removing {pm.display_name} package {package}...")
    run_step(
        InstallStep(
            description=f"Remove {package} with {pm.display_name}",
            command=pm.get_remove_command(package),
            requires_sudo=pm.requires_sudo,
        ),
        ctx,
        verbose=verbose,
    )
    return True


def remove_system_packages(
    specs: Sequence[PackageSpec],
    ctx: EnvironmentContext,
    verbose: bool = False,
) -> list[str]:
    """
    Remove every applicable system package that is installed.

    Returns:
        Names of packages that were removed

    Raises:
        ExecutionError: If the package manager fails
    """
    pm = system_package_manager(ctx.os_family)
    if pm is None:
        return []
    return [
        package
        for spec in filter_applicable(specs, ctx)
        for package in spec.packages
        if remove_package(pm.name, package, ctx, verbose=verbose)
    ]


def remove_special_packages(
    specs: Sequence[SpecialPackageSpec],
    ctx: EnvironmentContext,
    verbose: bool = False,
) -> list[str]:
    """
    Remove applicable special packages through the recipe table.

    Returns:
        Command names whose recipe ran
    """
    removed: list[str] = []
    for spec in filter_applicable(specs, ctx):
        name = spec.command_name
        if not has_command(name):
            logger.info(f"Special package {name} not installed, skipping.")
            continue
        logger.info(f"Attempting to uninstall special package {name} ...")
        if run_recipe(name, ctx, verbose=verbose):
            removed.append(name)
    return removed


def remove_python_apps(
    apps: Sequence[str],
    ctx: EnvironmentContext,
    verbose: bool = False,
) -> list[str]:
    """
    Uninstall pipx applications that are on PATH.

    Returns:
        Applications that were uninstalled
    """
    removed: list[str] = []
    if not apps or not has_command("pipx"):
        return removed

    pipx = get_package_manager("pipx")
    for app in apps:
        if not has_command(app):
            logger.info(f"{app} not installed, skipping.")
            continue
        result = execute_step(InstallStep(f"Remove {app}", pipx.get_remove_command(app)), ctx, verbose=verbose)
        if result.success:
            logger.info(f"Removed {app}.")
            removed.append(app)
        else:
            logger.warning(f"Could not remove {app}: {result.error_message}")
    return removed
