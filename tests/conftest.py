"""
Shared fixtures: environment contexts, manifest directories and a fake
host that stands in for subprocess.run and shutil.which.
"""

import logging
import shutil
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from toolbelt.config import Config, ToolchainConfig
from toolbelt.environment import EnvironmentContext


@pytest.fixture(autouse=True)
def toolbelt_logging():
    """Let caplog see toolbelt records (setup_logging disables propagation)."""
    logger = logging.getLogger("toolbelt")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.DEBUG)
    yield logger
    logger.handlers.clear()


def make_context(home: Path, os_family="Linux", architecture="x86_64", shell_kind="bash", root=False):
    home.mkdir(parents=True, exist_ok=True)
    profile = home / f".{shell_kind}rc"
    profile.touch()
    return EnvironmentContext(
        os_family=os_family,
        architecture=architecture,
        shell_kind=shell_kind,
        profile_path=profile,
        install_home=home,
        home_dir=home,
        privilege_elevation_command=() if root else ("sudo",),
    )


@pytest.fixture
def home(tmp_path):
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def linux_ctx(home):
    return make_context(home)


@pytest.fixture
def root_ctx(tmp_path):
    return make_context(tmp_path / "root", root=True)


@pytest.fixture
def darwin_ctx(home):
    return make_context(home, os_family="Darwin", architecture="arm64", shell_kind="zsh")


@pytest.fixture
def manifest_dir(tmp_path):
    """Directory with every manifest present and empty."""
    path = tmp_path / "manifests"
    path.mkdir()
    for name in ("System-packages.txt", "System-packages-special.txt", "Go-tools.txt",
                 "Tools.txt", "Wordlists.txt"):
        (path / name).write_text("")
    return path


@pytest.fixture
def config(manifest_dir):
    # Toolchain pinned to an OS family the tests never use, so no network access
    return Config(
        manifest_dir=str(manifest_dir),
        toolchain=ToolchainConfig(os_family="Plan9"),
    )


class FakeHost:
    """
    In-memory package database and PATH for subprocess-driven code.

    Attributes:
        calls: Every argv passed to subprocess.run, in order
        packages: Installed system packages
        commands: Commands resolvable on PATH
        repos: Files created by `git clone <url>` keyed by URL
        fail: argv prefixes (without sudo) that exit 1
    """

    def __init__(self):
        self.calls = []
        self.packages = set()
        self.commands = {"git", "pipx", "python3", "tar"}
        self.repos = {}
        self.fail = []

    def which(self, name, *args, **kwargs):
        return f"/usr/bin/{name}" if name in self.commands else None

    def run(self, command, **kwargs):
        argv = list(command)
        self.calls.append(argv)
        if argv and argv[0] == "sudo":
            argv = argv[1:]

        for prefix in self.fail:
            if argv[:len(prefix)] == list(prefix):
                return MagicMock(returncode=1, stdout="", stderr="boom")

        returncode = 0
        prog, args = argv[0], argv[1:]
        if prog == "dpkg":
            returncode = 0 if args[-1] in self.packages else 1
        elif prog == "apt-get" and args[0] == "install":
            self.packages.add(args[-1])
        elif prog == "apt-get" and args[0] == "remove":
            self.packages.discard(args[-1])
        elif prog == "brew" and args[0] == "list":
            returncode = 0 if args[-1] in self.packages else 1
        elif prog == "brew" and args[0] == "install":
            self.packages.add(args[-1])
        elif prog == "brew" and args[0] == "uninstall":
            self.packages.discard(args[-1])
        elif prog == "pipx" and args[0] == "install":
            self.commands.add(args[-1])
        elif prog == "pipx" and args[0] == "uninstall":
            self.commands.discard(args[-1])
        elif prog == "git" and args[0] == "clone":
            target = Path(args[2])
            target.mkdir(parents=True)
            for name, content in self.repos.get(args[1], {}).items():
                (target / name).write_text(content)
        return MagicMock(returncode=returncode, stdout="", stderr="")

    def calls_starting_with(self, *prefix):
        """Calls whose argv (ignoring a leading sudo) starts with prefix."""
        matches = []
        for argv in self.calls:
            plain = argv[1:] if argv and argv[0] == "sudo" else argv
            if plain[:len(prefix)] == list(prefix):
                matches.append(argv)
        return matches


@pytest.fixture
def fake_host():
    host = FakeHost()
    with patch("toolbelt.installer.subprocess.run", side_effect=host.run), \
            patch.object(shutil, "which", side_effect=host.which):
        yield host


RECON_URL = "https://example.com/Recon.git"
SECLISTS_URL = "https://example.com/SecLists.git"


@pytest.fixture
def populated_config(config, manifest_dir, fake_host):
    """Manifests with packages, one tool with a setup step and one wordlist."""
    (manifest_dir / "System-packages.txt").write_text("Linux x86_64 curl jq\nDarwin arm64 curl\n")
    (manifest_dir / "Tools.txt").write_text(f"Recon|{RECON_URL}\n")
    (manifest_dir / "Wordlists.txt").write_text(f"SecLists|{SECLISTS_URL}\n")
    fake_host.repos[RECON_URL] = {"recon.py": "print('recon')\n", "requirements.txt": "requests\n"}
    fake_host.repos[SECLISTS_URL] = {"README.md": "wordlists\n"}
    return config
