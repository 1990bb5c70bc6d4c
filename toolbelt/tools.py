"""
Tool lifecycle management.

Each tool from the tools manifest moves through NotCloned, Cloned,
SetupPending and SetupDone: it is cloned into the install home, its
declared setup steps run inside the clone, and an alias for its entry
script lands in the shell profile. Wordlists are cloned and nothing more.
"""

from __future__ import annotations

import datetime
import json
import logging
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .common import file_fingerprint, working_directory
from .environment import EnvironmentContext
from .installer import InstallStep, run_step
from .ledger import InstallLedger
from .manifests import ToolEntry
from .profile import Alias, Profile

logger = logging.getLogger(__name__)

SETUP_MARKER = ".setup_done"
PIP_SYSTEM_FLAG_OS_FAMILIES = ("Linux", "Darwin")


def clone_entry(
    entry: ToolEntry,
    ctx: EnvironmentContext,
    ledger: InstallLedger | None = None,
    verbose: bool = False,
) -> bool:
    """
    Clone an entry into the install home unless its directory exists.

    Returns:
        True if a clone was made

    Raises:
        ExecutionError: If git clone fails
    """
    target = entry.path(ctx)
    if target.exists():
        logger.info(f"{entry.directory_name} already exists, skipping clone.")
        return False

    logger.info(f"Cloning {entry.directory_name} from {entry.source_url}...")
    run_step(
        InstallStep(f"Clone {entry.directory_name}", ("git", "clone", entry.source_url, str(target))),
        ctx,
        verbose=verbose,
    )
    if ledger is not None:
        ledger.record_directory(str(target))
    return True


def clone_entries(
    entries: Sequence[ToolEntry],
    ctx: EnvironmentContext,
    ledger: InstallLedger | None = None,
    verbose: bool = False,
) -> list[str]:
    """Clone every entry that is missing; returns the cloned directory names."""
    return [entry.directory_name for entry in entries if clone_entry(entry, ctx, ledger, verbose)]


@dataclass(frozen=True)
class SetupStep:
    """
    One setup step of a cloned tool.

    Attributes:
        key: Stable identifier in the setup record (e.g., "requirements:requirements.txt")
        source: File (relative to the tool directory) whose content fingerprints the step
        commands: Commands run in order inside the tool directory
    """
    key: str
    source: str
    commands: tuple[tuple[str, ...], ...]


def pip_flags(ctx: EnvironmentContext) -> tuple[str, ...]:
    if ctx.os_family in PIP_SYSTEM_FLAG_OS_FAMILIES:
        return ("--break-system-packages",)
    return ()


def plan_setup(tool_dir: Path, ctx: EnvironmentContext) -> list[SetupStep]:
    """
    List the setup steps a cloned tool declares.

    Requirement files come first (sorted), then setup.sh, then setup.py.
    """
    flags = pip_flags(ctx)
    steps = [
        SetupStep(
            key=f"requirements:{req.name}",
            source=req.name,
            commands=(("python3", "-m", "pip", "install", "-r", req.name) + flags,),
        )
        for req in sorted(tool_dir.glob("requirements*.txt"))
        if req.is_file()
    ]
    if (tool_dir / "setup.sh").is_file():
        steps.append(SetupStep(
            key="setup.sh",
            source="setup.sh",
            commands=(("chmod", "+x", "setup.sh"), ("bash", "setup.sh")),
        ))
    if (tool_dir / "setup.py").is_file():
        steps.append(SetupStep(
            key="setup.py",
            source="setup.py",
            commands=(("python3", "-m", "pip", "install", ".") + flags,),
        ))
    return steps


class SetupRecord:
    """
    The .setup_done record of a tool: step key to source fingerprint.

    A marker that is empty or not JSON predates per-step records and marks
    every step as done.
    """

    def __init__(self, path: Path, steps: dict[str, str] | None = None, legacy: bool = False):
        self.path = path
        self.steps = dict(steps or {})
        self.legacy = legacy

    @classmethod
    def load(cls, path: Path) -> "SetupRecord":
        if not path.exists():
            return cls(path)
        text = path.read_text(encoding="utf-8").strip()
        if not text:
            return cls(path, legacy=True)
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return cls(path, legacy=True)
        if not isinstance(data, dict) or not isinstance(data.get("steps"), dict):
            return cls(path, legacy=True)
        return cls(path, steps=data["steps"])

    def is_done(self, key: str, fingerprint: str) -> bool:
        return self.legacy or self.steps.get(key) == fingerprint

    def mark(self, key: str, fingerprint: str) -> None:
        self.steps[key] = fingerprint
        self.save()

    def save(self) -> None:
        data = {
            "steps": self.steps,
            "updated_at": datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0).isoformat(),
        }
        temp_path = self.path.with_name(self.path.name + ".tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        temp_path.replace(self.path)


def setup_tool(entry: ToolEntry, ctx: EnvironmentContext, verbose: bool = False) -> list[str]:
    """
    Run the setup steps of a cloned tool that are new or whose source changed.

    Steps run with the tool directory as working directory; the previous
    working directory is restored afterwards, also when a step fails. The
    record is updated after each successful step, so a re-run resumes after
    the last completed step.

    Returns:
        Keys of the steps that ran

    Raises:
        ExecutionError: If a setup command fails
    """
    tool_dir = entry.path(ctx)
    if not tool_dir.is_dir():
        logger.warning(f"{tool_dir} does not exist, skipping setup.")
        return []

    record = SetupRecord.load(tool_dir / SETUP_MARKER)
    if record.legacy:
        logger.info(f"Setup already done for {entry.directory_name}, skipping.")
        return []

    pending = []
    for step in plan_setup(tool_dir, ctx):
        fingerprint = file_fingerprint(tool_dir / step.source)
        if not record.is_done(step.key, fingerprint):
            pending.append((step, fingerprint))

    if not pending:
        if not record.path.exists():
            record.save()
        logger.info(f"Setup already done for {entry.directory_name}, skipping.")
        return []

    ran: list[str] = []
    logger.info(f"Setting up {entry.directory_name}...")
    with working_directory(tool_dir):
        for step, fingerprint in pending:
            for command in step.commands:
                run_step(
                    InstallStep(f"{entry.directory_name}: {' '.join(command)}", command),
                    ctx,
                    verbose=verbose,
                )
            record.mark(step.key, fingerprint)
            ran.append(step.key)
    return ran


def find_entry_script(tool_dir: Path, tool_name: str) -> Path | None:
    """
    Find a tool's entry script directly inside its directory.

    Matches <tool>.py or <tool>.sh case-insensitively; .py wins.
    """
    if not tool_dir.is_dir():
        return None
    lower = tool_name.lower()
    rank = {f"{lower}.py": 0, f"{lower}.sh": 1}
    matches = sorted(
        (p for p in tool_dir.iterdir() if p.is_file() and p.name.lower() in rank),
        key=lambda p: (rank[p.name.lower()], p.name),
    )
    return matches[0] if matches else None


def derive_alias(tool_name: str, script: Path) -> Alias:
    interpreter = "python3" if script.suffix.lower() == ".py" else "bash"
    return Alias(tool_name, f'{interpreter} "{script}"')


def make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def create_alias(
    entry: ToolEntry,
    ctx: EnvironmentContext,
    profile: Profile,
    ledger: InstallLedger | None = None,
) -> bool:
    """
    Alias a tool's entry script in the profile.

    A tool without an entry script gets no alias; this is not an error.

    Returns:
        True if the profile changed
    """
    script = find_entry_script(entry.path(ctx), entry.directory_name)
    if script is None:
        logger.info(f"No main script found for {entry.directory_name}, skipping alias.")
        return False

    make_executable(script)
    alias = derive_alias(entry.directory_name, script)
    if not profile.add_alias(alias):
        return False
    if ledger is not None:
        ledger.record_profile_directive(alias.render())
    return True


def provision_tools(
    entries: Sequence[ToolEntry],
    ctx: EnvironmentContext,
    profile: Profile,
    ledger: InstallLedger | None = None,
    verbose: bool = False,
) -> None:
    """Clone, set up and alias every tool, one at a time."""
    for entry in entries:
        clone_entry(entry, ctx, ledger, verbose)
        setup_tool(entry, ctx, verbose)
        create_alias(entry, ctx, profile, ledger)


def remove_directories(paths: Sequence[str | Path]) -> list[str]:
    """
    Delete directories that exist.

    Returns:
        Paths that were deleted
    """
    removed = []
    for path in map(Path, paths):
        if not path.exists():
            continue
        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.warning(f"Could not remove {path}: {e}")
            continue
        logger.info(f"Removed {path}")
        removed.append(str(path))
    return removed
