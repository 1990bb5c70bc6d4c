"""
Versioned toolchain management (Go).

Keeps one globally installed runtime current: compares the installed
version with the newest stable release, downloads the archive for the
host architecture and replaces the install directory. Also installs the
binaries declared in the toolchain-tools manifest.
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import tempfile
import urllib.request
from dataclasses import dataclass, replace
from functools import cmp_to_key
from pathlib import Path
from typing import Sequence

from packaging.version import InvalidVersion, Version

from .common import has_command
from .config import ToolchainConfig
from .environment import EnvironmentContext
from .errors import ExecutionError, NetworkError, UnsupportedEnvironmentError
from .installer import InstallStep, capture_output, execute_step, run_step
from .ledger import InstallLedger
from .manifests import ToolchainToolSpec
from .package_managers import get_package_manager
from .profile import PathExport, Profile

logger = logging.getLogger(__name__)

USER_AGENT = "toolbelt/1.0"

INSTALLED_VERSION_RE = re.compile(r"\bgo(\d+(?:\.\d+)+)")
STABLE_RELEASE_RE = re.compile(r"^go\d+\.\d+\.\d+$")
HTML_RELEASE_RE = re.compile(r"go(\d+\.\d+\.\d+)(?![0-9A-Za-z])")
PRERELEASE_MARKERS = ("beta", "rc")

ARCHITECTURE_MAP = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}


def _dotted_key(version: str) -> tuple:
    # Numeric runs compare as integers, other runs sort before them
    key = []
    for component in version.split("."):
        for run in re.findall(r"\d+|\D+", component):
            key.append((int(run), "") if run.isdigit() else (-1, run))
        key.append((-2, ""))
    return tuple(key)


def compare_versions(v1: str, v2: str) -> int:
    """
    Compare two dotted version strings.

    Components compare left to right as integers, and a version that is a
    prefix of another sorts first ("1.22" < "1.22.0"). Pre-releases such as
    "1.22rc1" sort before the release they lead up to.

    Args:
        v1: First version
        v2: Second version

    Returns:
        -1 if v1 < v2, 0 if v1 == v2, 1 if v1 > v2
    """
    try:
        ver1, ver2 = Version(v1), Version(v2)
    except InvalidVersion:
        pass
    else:
        if (ver1.is_prerelease or ver2.is_prerelease) and ver1 != ver2:
            return -1 if ver1 < ver2 else 1
    key1, key2 = _dotted_key(v1), _dotted_key(v2)
    return (key1 > key2) - (key1 < key2)


def map_architecture(machine: str) -> str:
    """
    Map a machine architecture to the release archive naming.

    Raises:
        UnsupportedEnvironmentError: For architectures without a release
    """
    try:
        return ARCHITECTURE_MAP[machine]
    except KeyError:
        raise UnsupportedEnvironmentError(f"Unsupported architecture: {machine}") from None


@dataclass(frozen=True)
class ToolchainStatus:
    """
    Installed versus latest toolchain version.

    Attributes:
        installed_version: Version currently on PATH (None if absent)
        latest_version: Newest stable release
        architecture: Release architecture (set once an install is needed)
    """
    installed_version: str | None
    latest_version: str
    architecture: str | None = None

    @property
    def needs_install(self) -> bool:
        if not self.installed_version:
            return True
        return compare_versions(self.installed_version, self.latest_version) < 0


def http_get(url: str, timeout: float | None = None) -> bytes:
    """Perform HTTP GET request.

    Args:
        url: URL to fetch
        timeout: Timeout in seconds (None blocks indefinitely)

    Returns:
        Response body as bytes

    Raises:
        NetworkError: If request fails
    """
    try:
        req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
        with urllib.request.urlopen(req, timeout=timeout) as response:
            return response.read()
    except Exception as e:
        raise NetworkError(f"Failed to fetch {url}: {e}") from e


def stable_versions(candidates: Sequence[str]) -> list[str]:
    """Keep three-part stable release names and strip the 'go' prefix."""
    return [
        name[2:]
        for name in candidates
        if STABLE_RELEASE_RE.match(name) and not any(m in name for m in PRERELEASE_MARKERS)
    ]


def fetch_latest_version(config: ToolchainConfig) -> str:
    """
    Find the newest stable toolchain release.

    Prefers the JSON release index; falls back to scraping the HTML
    listing when the JSON response cannot be parsed.

    Raises:
        NetworkError: If the index cannot be fetched or lists no release
    """
    timeout = config.connect_timeout
    try:
        data = json.loads(http_get(f"{config.index_url}?mode=json", timeout=timeout))
        names = [entry["version"] for entry in data if isinstance(entry, dict) and "version" in entry]
    except (ValueError, TypeError) as e:
        logger.debug(f"JSON release index unusable ({e}), scraping HTML listing")
        html = http_get(config.index_url, timeout=timeout).decode("utf-8", errors="replace")
        names = [f"go{version}" for version in HTML_RELEASE_RE.findall(html)]

    versions = stable_versions(names)
    if not versions:
        raise NetworkError(f"Could not detect latest {config.name} version from {config.index_url}")
    return max(versions, key=cmp_to_key(compare_versions))


def installed_version(ctx: EnvironmentContext, config: ToolchainConfig) -> str | None:
    """Report the installed toolchain version, or None when it is absent."""
    if not has_command(config.name):
        return None
    output = capture_output((config.name, "version"), ctx)
    if not output:
        return None
    match = INSTALLED_VERSION_RE.search(output)
    return match.group(1) if match else None


def download_archive(url: str, destination: Path) -> Path:
    """
    Download a release archive.

    Raises:
        NetworkError: If the download fails
    """
    logger.info(f"Downloading {url}")
    try:
        req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
        with urllib.request.urlopen(req) as response, open(destination, "wb") as f:
            shutil.copyfileobj(response, f)
    except Exception as e:
        raise NetworkError(f"Download of {url} failed: {e}") from e
    return destination


def toolchain_path_entries(ctx: EnvironmentContext, config: ToolchainConfig) -> list[str]:
    """Directories the toolchain puts on PATH."""
    return [
        str(config.install_dir / "bin"),
        str(ctx.install_home / "go" / "bin"),
        str(ctx.install_home / ".local" / "bin"),
    ]


def supports(ctx: EnvironmentContext, config: ToolchainConfig) -> bool:
    return ctx.os_family == config.os_family


def ensure_toolchain(
    ctx: EnvironmentContext,
    config: ToolchainConfig,
    profile: Profile,
    ledger: InstallLedger | None = None,
    verbose: bool = False,
) -> ToolchainStatus:
    """
    Install or upgrade the toolchain when it is missing or outdated.

    Args:
        ctx: Environment context
        config: Toolchain settings
        profile: Profile receiving PATH exports
        ledger: Ledger receiving what this call created
        verbose: Enable verbose logging

    Returns:
        ToolchainStatus observed before any change

    Raises:
        UnsupportedEnvironmentError: Wrong OS family or architecture, or tar missing
        NetworkError: Release discovery or download failed
        ExecutionError: Removing the previous install or extraction failed
    """
    if not supports(ctx, config):
        raise UnsupportedEnvironmentError(
            f"{config.name} install only supported on {config.os_family}. Detected OS: {ctx.os_family}"
        )

    current = installed_version(ctx, config)
    if current:
        logger.info(f"Found installed {config.name} version: {current}")
    else:
        logger.info(f"No {config.name} installation found.")

    latest = fetch_latest_version(config)
    logger.info(f"Latest {config.name} version available: {latest}")

    status = ToolchainStatus(installed_version=current, latest_version=latest)
    if not status.needs_install:
        logger.info(f"Installed {config.name} version ({current}) is up-to-date.")
        _export_paths(ctx, config, profile, ledger)
        return status

    arch = map_architecture(ctx.architecture)
    status = replace(status, architecture=arch)
    if not has_command("tar"):
        raise UnsupportedEnvironmentError("tar is required to extract the toolchain archive")

    url = config.download_url.format(version=latest, os=ctx.os_family.lower(), arch=arch)
    workdir = Path(tempfile.mkdtemp(prefix=f"toolbelt_{config.name}_"))
    try:
        archive = download_archive(url, workdir / url.rsplit("/", 1)[-1])

        logger.info(f"Removing previous {config.name} installation from {config.install_dir}")
        run_step(
            InstallStep(f"Remove {config.install_dir}", ("rm", "-rf", str(config.install_dir)), requires_sudo=True),
            ctx,
            verbose=verbose,
        )

        logger.info(f"Extracting {archive} to {config.install_root}")
        try:
            run_step(
                InstallStep(
                    f"Extract {archive.name}",
                    ("tar", "-xzf", str(archive), "-C", config.install_root),
                    requires_sudo=True,
                ),
                ctx,
                verbose=verbose,
            )
        except ExecutionError as e:
            raise ExecutionError(
                f"Extraction failed: {e.message}",
                command=e.command,
                exit_code=e.exit_code,
                stderr=e.stderr,
                remediation="Re-run the install; the previous toolchain was already removed",
            ) from e
    finally:
        shutil.rmtree(workdir, ignore_errors=True)

    if ledger is not None:
        ledger.record_toolchain(latest, str(config.install_dir), str(ctx.install_home / "go"))

    _export_paths(ctx, config, profile, ledger)
    logger.info(f"{config.name} {latest} installed.")
    return status


def _export_paths(
    ctx: EnvironmentContext,
    config: ToolchainConfig,
    profile: Profile,
    ledger: InstallLedger | None,
) -> None:
    for entry in toolchain_path_entries(ctx, config):
        if profile.add_path(entry) and ledger is not None:
            ledger.record_profile_directive(PathExport(entry).render())


def install_toolchain_tools(
    specs: Sequence[ToolchainToolSpec],
    ctx: EnvironmentContext,
    ledger: InstallLedger | None = None,
    verbose: bool = False,
) -> list[str]:
    """
    Install toolchain-built binaries that are not present yet.

    Returns:
        Binary names that were installed

    Raises:
        ExecutionError: If go install fails
    """
    go = get_package_manager("go")
    bin_dir = ctx.install_home / "go" / "bin"
    installed: list[str] = []

    for spec in specs:
        binary = bin_dir / spec.binary_name
        if (binary.is_file() and os.access(binary, os.X_OK)) or has_command(spec.binary_name):
            logger.info(f"{spec.binary_name} is already installed, skipping.")
            continue

        logger.info(f"Installing Go tool {spec.binary_name} ...")
        run_step(
            InstallStep(f"Install Go tool {spec.binary_name}", go.get_install_command(spec.module_url)),
            ctx,
            verbose=verbose,
        )
        installed.append(spec.binary_name)
        if ledger is not None:
            ledger.record_toolchain_tool(str(binary))

    return installed


def remove_toolchain(
    ctx: EnvironmentContext,
    config: ToolchainConfig,
    install_dir: str | None = None,
    workspace: str | None = None,
    verbose: bool = False,
) -> bool:
    """
    Delete the toolchain install directory and its workspace.

    Only acts on the supported OS family; elsewhere it logs and returns False.
    Failures are logged, not raised.
    """
    if not supports(ctx, config):
        logger.info(f"Skipping {config.name} removal on OS: {ctx.os_family}")
        return False

    install_dir = install_dir or str(config.install_dir)
    workspace = workspace or str(ctx.install_home / "go")

    logger.info(f"Removing {config.name} installation...")
    result = execute_step(
        InstallStep(f"Remove {install_dir}", ("rm", "-rf", install_dir), requires_sudo=True),
        ctx,
        verbose=verbose,
    )
    if not result.success:
        logger.warning(f"Could not remove {install_dir}: {result.error_message}")
    shutil.rmtree(workspace, ignore_errors=True)
    return True


def remove_toolchain_tools(paths: Sequence[str]) -> list[str]:
    """Delete toolchain-built binaries; returns the paths that were deleted."""
    removed = []
    for path in paths:
        binary = Path(path)
        if binary.exists():
            if binary.is_dir() and not binary.is_symlink():
                shutil.rmtree(binary)
            else:
                binary.unlink()
            logger.info(f"Removed {binary}")
            removed.append(path)
    return removed
