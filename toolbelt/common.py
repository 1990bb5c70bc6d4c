"""
Common utilities shared across toolbelt modules.
"""

from __future__ import annotations

import contextlib
import hashlib
import os
import shutil
import sys
from pathlib import Path
from typing import Iterator


def has_command(name: str) -> bool:
    """
    Check whether a command resolves on the current PATH.

    Args:
        name: Command name (e.g., "git", "pipx")

    Returns:
        True if the command is resolvable
    """
    return shutil.which(name) is not None


def file_fingerprint(path: str | Path) -> str:
    """
    Compute the SHA-256 hex digest of a file's content.

    Args:
        path: File to hash

    Returns:
        Hex digest string
    """
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


@contextlib.contextmanager
def working_directory(path: str | Path) -> Iterator[Path]:
    """
    Change the working directory for the duration of the block.

    The previous directory is restored on normal exit and when the block
    raises.

    Args:
        path: Directory to enter

    Yields:
        The entered directory as a Path
    """
    previous = os.getcwd()
    os.chdir(path)
    try:
        yield Path(path)
    finally:
        os.chdir(previous)


def vlog(msg: str, verbose: bool = False) -> None:
    """
    Log verbose message using structured logging.

    Args:
        msg: Message to log
        verbose: Whether verbose mode is enabled
    """
    if verbose or os.environ.get("TOOLBELT_DEBUG", "0") == "1":
        try:
            from .logging_config import get_logger
            logger = get_logger()
            logger.info(msg)
        except Exception:
            # Fallback to stderr if logging fails
            print(f"[toolbelt] {msg}", file=sys.stderr)
