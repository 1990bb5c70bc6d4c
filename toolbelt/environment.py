"""
Environment detection for a provisioning run.

Resolves the OS family, CPU architecture, shell, profile file, privilege
mode and install home once. The resulting EnvironmentContext is passed
explicitly to every other component and never mutated.
"""

from __future__ import annotations

import logging
import os
import platform
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

SUPPORTED_SHELLS = ("bash", "zsh")
ROOT_HOME = Path("/root")


@dataclass(frozen=True)
class EnvironmentContext:
    """
    Host facts for one run.

    Attributes:
        os_family: OS name as reported by uname (e.g., "Linux", "Darwin")
        architecture: Machine architecture (e.g., "x86_64", "arm64")
        shell_kind: Shell whose profile receives directives ("bash" or "zsh")
        profile_path: Shell startup file receiving PATH exports and aliases
        install_home: Directory receiving clones and generated dotfiles
        home_dir: Home directory of the invoking user
        privilege_elevation_command: Prefix for privileged commands (empty as root)
    """
    os_family: str
    architecture: str
    shell_kind: str
    profile_path: Path
    install_home: Path
    home_dir: Path
    privilege_elevation_command: tuple[str, ...] = ()

    @property
    def is_root(self) -> bool:
        return not self.privilege_elevation_command

    def elevate(self, command: tuple[str, ...]) -> tuple[str, ...]:
        """Prefix a command with the privilege elevation command, if any."""
        return tuple(self.privilege_elevation_command) + tuple(command)

    def __str__(self) -> str:
        return f"{self.os_family}/{self.architecture} ({self.shell_kind}, {self.profile_path})"


def _resolve_shell(os_family: str, shell_env: str | None) -> str:
    if os_family == "Darwin":
        return "zsh"
    if os_family == "Linux":
        shell = os.path.basename(shell_env or "")
        return shell if shell in SUPPORTED_SHELLS else "bash"
    return "bash"


def _effective_uid() -> int:
    # os.geteuid is POSIX-only; treat other platforms as unprivileged
    geteuid = getattr(os, "geteuid", None)
    return geteuid() if geteuid else -1


def detect_environment(
    system: str | None = None,
    machine: str | None = None,
    shell: str | None = None,
    euid: int | None = None,
    home: str | Path | None = None,
    install_home: str | Path | None = None,
    create_profile: bool = True,
) -> EnvironmentContext:
    """
    Detect the environment for a provisioning run.

    Every host fact can be supplied explicitly; anything left as None is
    read from the running system.

    Args:
        system: OS name (defaults to platform.system())
        machine: Machine architecture (defaults to platform.machine())
        shell: Login shell path (defaults to $SHELL)
        euid: Effective user id (defaults to os.geteuid())
        home: Home directory (defaults to ~)
        install_home: Explicit install home, overriding the root/user rule
        create_profile: Create the profile file when it does not exist

    Returns:
        EnvironmentContext for this run
    """
    os_family = system if system is not None else platform.system()
    architecture = machine if machine is not None else platform.machine()
    shell_env = shell if shell is not None else os.environ.get("SHELL")
    uid = euid if euid is not None else _effective_uid()
    home_dir = Path(home) if home is not None else Path(os.path.expanduser("~"))

    shell_kind = _resolve_shell(os_family, shell_env)
    if os_family in ("Linux", "Darwin"):
        profile_path = home_dir / f".{shell_kind}rc"
    else:
        profile_path = home_dir / ".bashrc"

    if uid == 0:
        elevation: tuple[str, ...] = ()
        default_install_home = ROOT_HOME
    else:
        elevation = ("sudo",)
        default_install_home = home_dir

    ctx = EnvironmentContext(
        os_family=os_family,
        architecture=architecture,
        shell_kind=shell_kind,
        profile_path=profile_path,
        install_home=Path(install_home) if install_home else default_install_home,
        home_dir=home_dir,
        privilege_elevation_command=elevation,
    )

    if create_profile and not ctx.profile_path.exists():
        ctx.profile_path.parent.mkdir(parents=True, exist_ok=True)
        ctx.profile_path.touch()
        logger.debug(f"Created profile file {ctx.profile_path}")

    logger.info(f"Detected OS: {ctx.os_family}, Architecture: {ctx.architecture}")
    logger.info(f"Shell: {ctx.shell_kind}, Profile file: {ctx.profile_path}")
    logger.info(f"Install home directory: {ctx.install_home}")
    return ctx
