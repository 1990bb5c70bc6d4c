"""
Package manager registry and install strategies.

System package managers are chosen by OS family:
- Linux: apt (query with dpkg, install/remove with apt-get, elevated)
- Darwin: Homebrew (never elevated)

Special packages declare their own install command. The declared text is
parsed into a closed set of strategies so that no free-form shell text is
ever evaluated.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass

from .common import has_command
from .environment import EnvironmentContext
from .errors import ConfigurationError


@dataclass(frozen=True)
class PackageManager:
    """
    Package manager definition.

    Attributes:
        name: Package manager identifier (e.g., "apt", "brew", "pipx")
        display_name: Human-readable name
        check_command: Binary that must resolve on PATH for the manager to be usable
        query_command_template: Exits 0 when {package} is installed (empty if unsupported)
        install_command_template: Template for install command ({package} placeholder)
        remove_command_template: Template for remove command ({package} placeholder)
        requires_sudo: Whether install/remove need privilege elevation
        os_families: OS families where this is the system package manager
    """
    name: str
    display_name: str
    check_command: str
    query_command_template: tuple[str, ...]
    install_command_template: tuple[str, ...]
    remove_command_template: tuple[str, ...]
    requires_sudo: bool = False
    os_families: tuple[str, ...] = ()

    def is_available(self) -> bool:
        """Check if this package manager resolves on PATH."""
        return has_command(self.check_command)

    def _render(self, template: tuple[str, ...], package: str) -> tuple[str, ...]:
        return tuple(part.replace("{package}", package) for part in template)

    def get_query_command(self, package: str) -> tuple[str, ...]:
        return self._render(self.query_command_template, package)

    def get_install_command(self, package: str) -> tuple[str, ...]:
        """
        Get install command for a package.

        Args:
            package: Package name

        Returns:
            Command tuple to install the package
        """
        return self._render(self.install_command_template, package)

    def get_remove_command(self, package: str) -> tuple[str, ...]:
        return self._render(self.remove_command_template, package)


PACKAGE_MANAGERS = (
    # System package managers
    PackageManager(
        name="apt",
        display_name="apt",
        check_command="apt-get",
        query_command_template=("dpkg", "-s", "{package}"),
        install_command_template=("apt-get", "install", "-y", "{package}"),
        remove_command_template=("apt-get", "remove", "-y", "--purge", "{package}"),
        requires_sudo=True,
        os_families=("Linux",),
    ),
    PackageManager(
        name="brew",
        display_name="Homebrew",
        check_command="brew",
        query_command_template=("brew", "list", "{package}"),
        install_command_template=("brew", "install", "{package}"),
        remove_command_template=("brew", "uninstall", "--ignore-dependencies", "{package}"),
        os_families=("Darwin",),
    ),

    # Secondary and application installers
    PackageManager(
        name="snap",
        display_name="snap",
        check_command="snap",
        query_command_template=("snap", "list", "{package}"),
        install_command_template=("snap", "install", "{package}"),
        remove_command_template=("snap", "remove", "{package}"),
        requires_sudo=True,
    ),
    PackageManager(
        name="pipx",
        display_name="pipx",
        check_command="pipx",
        query_command_template=(),
        install_command_template=("pipx", "install", "{package}"),
        remove_command_template=("pipx", "uninstall", "{package}"),
    ),
    PackageManager(
        name="go",
        display_name="go install",
        check_command="go",
        query_command_template=(),
        install_command_template=("go", "install", "-v", "{package}"),
        remove_command_template=(),
    ),
)


# Package manager lookup by name; apt-get is accepted as an alias of apt
_PM_BY_NAME = {pm.name: pm for pm in PACKAGE_MANAGERS}
_PM_BY_NAME["apt-get"] = _PM_BY_NAME["apt"]


def get_package_manager(name: str) -> PackageManager | None:
    """
    Get package manager by name.

    Args:
        name: Package manager name

    Returns:
        PackageManager object, or None if not found
    """
    return _PM_BY_NAME.get(name)


def system_package_manager(os_family: str) -> PackageManager | None:
    """
    Get the system package manager for an OS family.

    Args:
        os_family: OS name as reported by uname

    Returns:
        PackageManager, or None when the OS family has none registered
    """
    for pm in PACKAGE_MANAGERS:
        if os_family in pm.os_families:
            return pm
    return None


# Install strategies

# Characters shlex splits into operator tokens; any such token composes commands
_SHELL_OPERATOR_CHARS = "();<>|&"

# Placeholders substituted from the environment context at run time
COMMAND_PLACEHOLDERS = ("{install_home}", "{home}")


@dataclass(frozen=True)
class InstallStrategy:
    """
    How a special package gets installed.

    Attributes:
        requires_sudo: Whether the command runs with privilege elevation
    """
    requires_sudo: bool

    def command(self) -> tuple[str, ...]:
        raise NotImplementedError

    def render(self, ctx: EnvironmentContext) -> tuple[str, ...]:
        """The command with {install_home} and {home} filled in from the context."""
        values = dict(zip(COMMAND_PLACEHOLDERS, (str(ctx.install_home), str(ctx.home_dir))))
        rendered = []
        for part in self.command():
            for placeholder, value in values.items():
                part = part.replace(placeholder, value)
            rendered.append(part)
        return tuple(rendered)

    def describe(self) -> str:
        return " ".join(self.command())


@dataclass(frozen=True)
class PackageManagerInstall(InstallStrategy):
    """Install through a registered package manager: `<manager> install <arguments>`."""
    manager: str
    arguments: tuple[str, ...]

    def command(self) -> tuple[str, ...]:
        return (self.manager, "install") + self.arguments


@dataclass(frozen=True)
class ScriptedInstall(InstallStrategy):
    """Run a fixed argument list without a shell."""
    argv: tuple[str, ...]

    def command(self) -> tuple[str, ...]:
        return self.argv


def split_command(command_text: str) -> list[str]:
    """
    Split a command like a POSIX shell, with operators as separate tokens.

    `make install; make clean` yields [..., "install", ";", "make", ...], so
    attached operators are seen as well as standalone ones.
    """
    lexer = shlex.shlex(command_text, posix=True, punctuation_chars=True)
    lexer.whitespace_split = True
    lexer.commenters = ""
    return list(lexer)


def _rejection(token: str) -> str | None:
    if all(char in _SHELL_OPERATOR_CHARS for char in token):
        return "composes shell commands"
    if "`" in token:
        return "composes shell commands"
    if "$" in token or token.startswith("~"):
        return "relies on shell expansion"
    return None


def parse_install_strategy(command_text: str) -> InstallStrategy:
    """
    Parse a declared install command into an install strategy.

    A leading `sudo` is removed and turned into requires_sudo, so elevation
    follows the run's privilege mode. Shell composition and shell expansion
    (`$VAR`, `~`) are rejected; commands refer to the install home and the
    user's home through the {install_home} and {home} placeholders.

    Args:
        command_text: Install command as declared in the manifest

    Returns:
        PackageManagerInstall or ScriptedInstall

    Raises:
        ConfigurationError: If the command is empty, composes commands or
            needs shell expansion
    """
    try:
        argv = split_command(command_text)
    except ValueError as e:
        raise ConfigurationError(f"Cannot parse install command {command_text!r}: {e}") from e

    for token in argv:
        reason = _rejection(token)
        if reason:
            raise ConfigurationError(
                f"Install command {command_text!r} {reason} ({token!r})",
                remediation=(
                    "Declare a single command; use {install_home} or {home} instead of "
                    "$HOME or ~, and wrap multi-step installs in a script"
                ),
            )

    requires_sudo = False
    if argv and argv[0] == "sudo":
        requires_sudo = True
        argv = argv[1:]

    if not argv:
        raise ConfigurationError(f"Empty install command: {command_text!r}")

    if len(argv) >= 3 and argv[1] == "install" and get_package_manager(argv[0]):
        return PackageManagerInstall(
            requires_sudo=requires_sudo,
            manager=argv[0],
            arguments=tuple(argv[2:]),
        )
    return ScriptedInstall(requires_sudo=requires_sudo, argv=tuple(argv))
