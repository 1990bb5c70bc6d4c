"""
Uninstall engine.

Two modes:
- ledger: remove only what the install ledger says a run created
- manifest: remove whatever install would have produced for the manifests,
  including matching state that existed before toolbelt ran
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable, TypeVar

from .common import has_command
from .config import Config
from .dotfiles import legacy_dotfiles, remove_files
from .environment import EnvironmentContext
from .ledger import InstallLedger, load_ledger, write_ledger
from .manifests import (
    SPECIAL_PACKAGES_FILE,
    SYSTEM_PACKAGES_FILE,
    TOOLS_FILE,
    WORDLISTS_FILE,
    load_package_specs,
    load_special_package_specs,
    load_tool_entries,
)
from .profile import PathExport, Profile, SourceCompletion, parse_directive
from .provision import context_for
from .resolver import (
    remove_package,
    remove_python_apps,
    remove_special_packages,
    remove_system_packages,
    run_recipe,
)
from .toolchain import remove_toolchain, remove_toolchain_tools, toolchain_path_entries
from .tools import remove_directories

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PATH entries older installs exported on macOS
LEGACY_PATH_ENTRIES = ("Library/Python/3.9/bin",)

_PATH_EXPORT_RE = re.compile(r"^\s*export\s+PATH=(?P<value>.+)$")


def load_optional(loader: Callable[[Path], list[T]], path: Path) -> list[T]:
    """Load a manifest, or return nothing (with an INFO log) when it is missing."""
    if not path.is_file():
        logger.info(f"{path.name} not found, skipping.")
        return []
    return loader(path)


def run_uninstall(
    config: Config,
    ctx: EnvironmentContext | None = None,
    verbose: bool = False,
) -> None:
    """
    De-provision the machine in the configured mode.

    Raises:
        ProvisionError: On a fatal failure (e.g., a package manager error)
    """
    ctx = ctx or context_for(config)
    profile = Profile(ctx.profile_path)

    if config.uninstall_mode == "manifest":
        uninstall_from_manifests(config, ctx, profile, verbose=verbose)
    else:
        uninstall_from_ledger(config, ctx, profile, verbose=verbose)

    logger.info(f"Uninstall complete. Run 'source {ctx.profile_path}' to refresh your shell.")


def uninstall_from_ledger(
    config: Config,
    ctx: EnvironmentContext,
    profile: Profile,
    verbose: bool = False,
) -> InstallLedger:
    """
    Remove exactly what install runs recorded.

    Entries are dropped from the ledger as they are removed; the ledger is
    saved even when removal fails part way, and deleted once empty.

    Returns:
        The ledger after removal (empty unless something could not be removed)
    """
    ledger_path = config.resolve_ledger_path(ctx.install_home)
    ledger = load_ledger(ledger_path)
    if ledger.is_empty():
        logger.info(f"Nothing recorded in {ledger_path}; nothing to uninstall.")
        return ledger

    try:
        _remove_recorded(ledger, config, ctx, profile, verbose)
    finally:
        write_ledger(ledger, ledger_path)
    return ledger


def _remove_recorded(
    ledger: InstallLedger,
    config: Config,
    ctx: EnvironmentContext,
    profile: Profile,
    verbose: bool,
) -> None:
    logger.info("Removing system packages...")
    for entry in list(ledger.system_packages):
        remove_package(entry["manager"], entry["name"], ctx, verbose=verbose)
        ledger.system_packages.remove(entry)

    for name in list(ledger.special_packages):
        if has_command(name):
            logger.info(f"Attempting to uninstall special package {name} ...")
            if not run_recipe(name, ctx, verbose=verbose):
                continue
        ledger.special_packages.remove(name)

    remove_python_apps(ledger.python_apps, ctx, verbose=verbose)
    ledger.python_apps = [app for app in ledger.python_apps if has_command(app)]

    if ledger.toolchain is not None:
        record = ledger.toolchain
        if remove_toolchain(ctx, config.toolchain, record.install_dir, record.workspace, verbose=verbose):
            ledger.toolchain = None

    remove_toolchain_tools(ledger.toolchain_tools)
    ledger.toolchain_tools = [path for path in ledger.toolchain_tools if Path(path).exists()]

    remove_directories(ledger.directories)
    ledger.directories = [path for path in ledger.directories if Path(path).exists()]

    remove_files(ledger.files)
    ledger.files = [path for path in ledger.files if Path(path).exists()]

    directives = [parse_directive(line) for line in ledger.profile_directives]
    profile.remove(d for d in directives if d is not None)
    ledger.profile_directives = []


def uninstall_from_manifests(
    config: Config,
    ctx: EnvironmentContext,
    profile: Profile,
    verbose: bool = False,
) -> None:
    """
    Remove everything install would produce for the manifests.

    This also removes matching packages, aliases and PATH lines that were
    present before toolbelt ran.
    """
    system_specs = load_optional(load_package_specs, config.manifest_path(SYSTEM_PACKAGES_FILE))
    special_specs = load_optional(load_special_package_specs, config.manifest_path(SPECIAL_PACKAGES_FILE))
    tools = load_optional(load_tool_entries, config.manifest_path(TOOLS_FILE))
    wordlists = load_optional(load_tool_entries, config.manifest_path(WORDLISTS_FILE))

    logger.info("Removing system packages...")
    remove_system_packages(system_specs, ctx, verbose=verbose)
    remove_special_packages(special_specs, ctx, verbose=verbose)
    remove_python_apps(config.python_apps, ctx, verbose=verbose)

    remove_toolchain(ctx, config.toolchain, verbose=verbose)
    bin_dir = ctx.install_home / "go" / "bin"
    if bin_dir.is_dir():
        remove_toolchain_tools([str(p) for p in bin_dir.iterdir()])

    remove_directories([entry.path(ctx) for entry in (*tools, *wordlists)])
    remove_files(legacy_dotfiles(ctx))

    profile.remove_matching(legacy_profile_predicate(config, ctx, [entry.directory_name for entry in tools]))


def legacy_profile_predicate(
    config: Config,
    ctx: EnvironmentContext,
    tool_names: list[str],
) -> Callable[[str], bool]:
    """
    Select profile lines the manifest-driven uninstall deletes.

    Toolchain PATH exports (for every OS), aliases named after declared
    tools and every gf completion source.
    """
    homes = {ctx.home_dir, ctx.install_home}
    toolchain_paths = {PathExport(entry).path for entry in toolchain_path_entries(ctx, config.toolchain)}
    toolchain_paths.update(PathExport(str(home / entry)).path for home in homes for entry in LEGACY_PATH_ENTRIES)
    toolchain_paths.update(PathExport(str(home / "go" / "bin")).path for home in homes)
    alias_patterns = [re.compile(rf"^\s*alias\s+{re.escape(name)}=") for name in tool_names]

    def exported_segments(value: str) -> list[str]:
        value = value.strip().strip("\"'")
        segments = []
        for segment in value.split(":"):
            if not segment or segment in ("$PATH", "${PATH}"):
                continue
            segment = segment.replace("${HOME}", str(ctx.home_dir)).replace("$HOME", str(ctx.home_dir))
            segments.append(PathExport(segment).path)
        return segments

    def matches(line: str) -> bool:
        export = _PATH_EXPORT_RE.match(line)
        if export:
            return any(segment in toolchain_paths for segment in exported_segments(export.group("value")))
        if any(pattern.match(line) for pattern in alias_patterns):
            return True
        directive = parse_directive(line)
        if isinstance(directive, SourceCompletion):
            return "gf-completion" in directive.path
        return False

    return matches
