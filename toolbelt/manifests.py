"""
Manifest parsing.

Five flat, line-oriented manifests drive both install and uninstall:

    System-packages.txt          <os> [<arch>...] <package>...
    System-packages-special.txt  <os> [<arch>...] <command> <install command...>
    Go-tools.txt                 <binary> <module>
    Tools.txt / Wordlists.txt    <directory>|<git url>

Blank lines and lines starting with '#' are ignored everywhere.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from .environment import EnvironmentContext
from .errors import ConfigurationError
from .package_managers import InstallStrategy, parse_install_strategy

logger = logging.getLogger(__name__)

SYSTEM_PACKAGES_FILE = "System-packages.txt"
SPECIAL_PACKAGES_FILE = "System-packages-special.txt"
TOOLCHAIN_TOOLS_FILE = "Go-tools.txt"
TOOLS_FILE = "Tools.txt"
WORDLISTS_FILE = "Wordlists.txt"

# Closed set of architecture literals recognised in package manifests
ARCHITECTURES = frozenset({"amd64", "aarch64", "arm64", "x86_64"})


@dataclass(frozen=True)
class PackageSpec:
    """System packages declared for one OS and a set of architectures."""
    os_family: str
    architectures: frozenset[str]
    packages: tuple[str, ...]
    line_number: int = 0

    def applies(self, ctx: EnvironmentContext) -> bool:
        # An empty architecture set never matches
        return ctx.os_family == self.os_family and ctx.architecture in self.architectures


@dataclass(frozen=True)
class SpecialPackageSpec:
    """A command installed by its own declared install command."""
    os_family: str
    architectures: frozenset[str]
    command_name: str
    install_command: str
    strategy: InstallStrategy
    line_number: int = 0

    def applies(self, ctx: EnvironmentContext) -> bool:
        return ctx.os_family == self.os_family and ctx.architecture in self.architectures


@dataclass(frozen=True)
class ToolchainToolSpec:
    """A binary installed with the toolchain's own installer (go install)."""
    binary_name: str
    module_url: str


@dataclass(frozen=True)
class ToolEntry:
    """A git repository cloned into the install home."""
    directory_name: str
    source_url: str

    def path(self, ctx: EnvironmentContext) -> Path:
        return ctx.install_home / self.directory_name


# Wordlists share the tool shape; they only skip setup and aliasing
WordlistEntry = ToolEntry


def read_manifest_lines(path: str | Path) -> Iterator[tuple[int, str]]:
    """
    Yield (line number, stripped line) for every meaningful manifest line.

    Args:
        path: Manifest file

    Raises:
        ConfigurationError: If the manifest does not exist
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(
            f"{path.name} not found in {path.parent}!",
            remediation=f"Create {path} or point manifest_dir at the directory holding it",
        )
    with open(path, "r", encoding="utf-8") as f:
        for number, raw in enumerate(f, 1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            yield number, line


def split_architectures(tokens: list[str]) -> tuple[frozenset[str], list[str]]:
    """
    Split tokens after the OS into architecture literals and the payload.

    Architecture literals are consumed left to right until the first token
    outside ARCHITECTURES; that token and everything after it is payload.
    A package literally named like an architecture is therefore read as an
    architecture.

    Returns:
        (architectures, payload tokens)
    """
    architectures = set()
    index = 0
    while index < len(tokens) and tokens[index] in ARCHITECTURES:
        architectures.add(tokens[index])
        index += 1
    return frozenset(architectures), tokens[index:]


def parse_package_line(line: str, line_number: int = 0) -> PackageSpec:
    tokens = line.split()
    architectures, packages = split_architectures(tokens[1:])
    return PackageSpec(
        os_family=tokens[0],
        architectures=architectures,
        packages=tuple(packages),
        line_number=line_number,
    )


def parse_special_package_line(line: str, line_number: int = 0) -> SpecialPackageSpec:
    """
    Parse one special-package line.

    Raises:
        ConfigurationError: If the command name or install command is missing
    """
    tokens = line.split()
    architectures, payload = split_architectures(tokens[1:])
    if len(payload) < 2:
        raise ConfigurationError(
            f"Line {line_number}: expected '<os> [<arch>...] <command> <install command>', got {line!r}"
        )
    # Keep the install command's original text so quoting survives
    consumed = len(tokens) - len(payload) + 1
    install_command = line.split(None, consumed)[consumed].strip()
    return SpecialPackageSpec(
        os_family=tokens[0],
        architectures=architectures,
        command_name=payload[0],
        install_command=install_command,
        strategy=parse_install_strategy(install_command),
        line_number=line_number,
    )


def load_package_specs(path: str | Path) -> list[PackageSpec]:
    return [parse_package_line(line, number) for number, line in read_manifest_lines(path)]


def load_special_package_specs(path: str | Path) -> list[SpecialPackageSpec]:
    return [parse_special_package_line(line, number) for number, line in read_manifest_lines(path)]


def load_toolchain_tools(path: str | Path) -> list[ToolchainToolSpec]:
    specs = []
    for _, line in read_manifest_lines(path):
        name, _, url = line.partition(" ")
        url = url.strip()
        if not url:
            logger.debug(f"Skipping toolchain tool without module: {line!r}")
            continue
        specs.append(ToolchainToolSpec(binary_name=name, module_url=url))
    return specs


def load_tool_entries(path: str | Path) -> list[ToolEntry]:
    """
    Load `<directory>|<url>` entries; lines missing either half are skipped.
    """
    entries = []
    for _, line in read_manifest_lines(path):
        directory, _, url = line.partition("|")
        directory, url = directory.strip(), url.strip()
        if not directory or not url:
            continue
        entries.append(ToolEntry(directory_name=directory, source_url=url))
    return entries


def filter_applicable(specs, ctx: EnvironmentContext) -> list:
    """Keep only specs that apply to the current OS and architecture."""
    return [spec for spec in specs if spec.applies(ctx)]
