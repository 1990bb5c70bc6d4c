"""
Shell profile mutation.

All PATH exports, aliases and completion sources land in one profile file.
Directives are typed and compared on their parsed fields, so repeated runs
never grow the file. New lines go into a delimited managed block at the end
of the profile; removal deletes exactly the directives asked for and keeps
a .bak copy of the previous content.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, MutableMapping, Union

logger = logging.getLogger(__name__)

MANAGED_BLOCK_START = "# >>> toolbelt >>>"
MANAGED_BLOCK_END = "# <<< toolbelt <<<"

_PATH_APPEND_RE = re.compile(r'^export\s+PATH="?\$(?:PATH|\{PATH\}):(?P<path>[^"]+?)"?$')
_PATH_PREPEND_RE = re.compile(r'^export\s+PATH="?(?P<path>[^":]+):\$(?:PATH|\{PATH\})"?$')
_ALIAS_RE = re.compile(r"^alias\s+(?P<name>[^=\s]+)='(?P<invocation>.*)'$")
_SOURCE_RE = re.compile(
    r"^(?:source|\.)\s+(?:\"(?P<double>[^\"]+)\"|'(?P<single>[^']+)'|(?P<bare>.+?))\s*$"
)


def normalize_path(path: str) -> str:
    """Normalize a PATH segment for comparison."""
    return os.path.normpath(os.path.expanduser(path.strip()))


@dataclass(frozen=True)
class PathExport:
    path: str

    def __post_init__(self):
        object.__setattr__(self, "path", normalize_path(self.path))

    def render(self) -> str:
        return f'export PATH="$PATH:{self.path}"'


@dataclass(frozen=True)
class Alias:
    name: str
    invocation: str

    def render(self) -> str:
        return f"alias {self.name}='{self.invocation}'"


@dataclass(frozen=True)
class SourceCompletion:
    path: str

    def render(self) -> str:
        return f'source "{self.path}"'


ProfileDirective = Union[PathExport, Alias, SourceCompletion]


def parse_directive(line: str) -> ProfileDirective | None:
    """
    Parse a profile line into a directive.

    Args:
        line: One line of the profile

    Returns:
        The directive, or None for lines that are not directives
    """
    line = line.strip()
    for pattern in (_PATH_APPEND_RE, _PATH_PREPEND_RE):
        match = pattern.match(line)
        if match:
            return PathExport(match.group("path"))
    match = _ALIAS_RE.match(line)
    if match:
        return Alias(match.group("name"), match.group("invocation"))
    match = _SOURCE_RE.match(line)
    if match:
        return SourceCompletion(match.group("double") or match.group("single") or match.group("bare"))
    return None


def path_in_environment(path: str, environ: MutableMapping[str, str] | None = None) -> bool:
    """Check whether a path is already a segment of PATH."""
    environ = os.environ if environ is None else environ
    wanted = normalize_path(path)
    return any(
        normalize_path(segment) == wanted
        for segment in environ.get("PATH", "").split(os.pathsep)
        if segment
    )


class Profile:
    """
    A shell profile file with append-once directive semantics.

    Attributes:
        path: Profile file location
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    @property
    def backup_path(self) -> Path:
        return self.path.with_name(self.path.name + ".bak")

    def read_lines(self) -> list[str]:
        if not self.path.exists():
            return []
        return self.path.read_text(encoding="utf-8").splitlines()

    def _write_lines(self, lines: list[str]) -> None:
        # Resolve so a symlinked profile keeps its link
        target = self.path.resolve()
        temp_path = target.with_name(target.name + ".tmp")
        content = "\n".join(lines) + ("\n" if lines else "")
        temp_path.write_text(content, encoding="utf-8")
        temp_path.replace(target)

    def directives(self) -> list[ProfileDirective]:
        """All directives present anywhere in the profile."""
        return [d for d in (parse_directive(line) for line in self.read_lines()) if d is not None]

    def contains(self, directive: ProfileDirective) -> bool:
        return directive in self.directives()

    def _block_bounds(self, lines: list[str]) -> tuple[int, int] | None:
        try:
            start = lines.index(MANAGED_BLOCK_START)
            end = lines.index(MANAGED_BLOCK_END, start + 1)
        except ValueError:
            return None
        return start, end

    def _write_in_block(self, line: str, replace: Callable[[str], bool] | None = None) -> None:
        lines = self.read_lines()
        bounds = self._block_bounds(lines)
        if bounds is None:
            lines.extend([MANAGED_BLOCK_START, line, MANAGED_BLOCK_END])
        else:
            start, end = bounds
            for index in range(start + 1, end):
                if replace is not None and replace(lines[index]):
                    lines[index] = line
                    break
            else:
                lines.insert(end, line)
        self._write_lines(lines)

    def add_path(
        self,
        path: str,
        environ: MutableMapping[str, str] | None = None,
    ) -> bool:
        """
        Put a directory on PATH for this process and in the profile.

        Nothing is written when the directory is already on the live PATH or
        an equivalent export already exists in the profile.

        Returns:
            True if a profile line was written
        """
        environ = os.environ if environ is None else environ
        directive = PathExport(path)
        if path_in_environment(directive.path, environ):
            logger.info(f"Path {directive.path} already in PATH")
            return False

        current = environ.get("PATH", "")
        environ["PATH"] = f"{current}{os.pathsep}{directive.path}" if current else directive.path

        if self.contains(directive):
            logger.info(f"Path {directive.path} already exported in {self.path}")
            return False

        self._write_in_block(directive.render())
        logger.info(f"Added {directive.path} to PATH in {self.path}")
        return True

    def add_alias(self, alias: Alias) -> bool:
        """
        Add an alias unless the exact alias is already present.

        A managed alias with the same name but another invocation is
        replaced in place.

        Returns:
            True if the profile changed
        """
        if self.contains(alias):
            logger.info(f"Alias for {alias.name} already present in {self.path}")
            return False

        def same_name(line: str) -> bool:
            existing = parse_directive(line)
            return isinstance(existing, Alias) and existing.name == alias.name

        self._write_in_block(alias.render(), replace=same_name)
        logger.info(f"Added alias for {alias.name} in {self.path}")
        return True

    def add_source(self, source: SourceCompletion) -> bool:
        """Add a completion source line unless it is already present."""
        if self.contains(source):
            logger.info(f"Completion {source.path} already sourced in {self.path}")
            return False
        self._write_in_block(source.render())
        logger.info(f"Added completion source {source.path} to {self.path}")
        return True

    def remove_matching(self, predicate: Callable[[str], bool]) -> list[str]:
        """
        Delete every line the predicate selects, keeping a .bak copy.

        Managed block markers are never passed to the predicate; a block left
        empty is dropped.

        Returns:
            The removed lines
        """
        lines = self.read_lines()
        kept: list[str] = []
        removed: list[str] = []
        for line in lines:
            if line not in (MANAGED_BLOCK_START, MANAGED_BLOCK_END) and predicate(line):
                removed.append(line)
            else:
                kept.append(line)

        if not removed:
            return []

        bounds = self._block_bounds(kept)
        if bounds is not None and bounds[1] == bounds[0] + 1:
            del kept[bounds[0]:bounds[1] + 1]

        shutil.copy2(self.path, self.backup_path)
        self._write_lines(kept)
        logger.info(f"Removed {len(removed)} line(s) from {self.path} (backup: {self.backup_path})")
        return removed

    def remove(self, directives: Iterable[ProfileDirective]) -> list[str]:
        """
        Delete every line equal to one of the given directives.

        Returns:
            The removed lines
        """
        wanted = set(directives)
        if not wanted:
            return []
        return self.remove_matching(lambda line: parse_directive(line) in wanted)
