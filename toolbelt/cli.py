"""
Command-line entry points: toolbelt-install and toolbelt-uninstall.

Neither command takes options; behaviour comes from the manifests and the
configuration files. Exit status is 0 on success and 1 on any fatal error.
"""

from __future__ import annotations

import argparse
import logging
import os
from typing import Callable, Sequence

from .config import Config, load_config
from .errors import ProvisionError
from .logging_config import setup_logging
from .provision import run_install
from .uninstall import run_uninstall

logger = logging.getLogger(__name__)


def _debug_enabled() -> bool:
    return os.environ.get("TOOLBELT_DEBUG", "0") == "1"


def _run(
    prog: str,
    description: str,
    action: Callable[[Config, bool], object],
    argv: Sequence[str] | None,
) -> int:
    parser = argparse.ArgumentParser(prog=prog, description=description)
    parser.parse_args(argv)

    verbose = _debug_enabled()
    setup_logging(verbose=verbose)

    try:
        config = load_config(verbose=verbose)
        if config.log_file:
            setup_logging(log_file=config.log_file, verbose=verbose)
        action(config, verbose)
    except ProvisionError as e:
        logger.error(e.message)
        if e.remediation:
            logger.error(f"Remediation: {e.remediation}")
        if e.retryable:
            logger.error("This failure may be temporary; run the command again to resume.")
        return 1
    return 0


def install_main(argv: Sequence[str] | None = None) -> int:
    """Provision every declared tool."""
    return _run(
        "toolbelt-install",
        "Install the declared tools, wordlists and Go toolchain.",
        lambda config, verbose: run_install(config, verbose=verbose),
        argv,
    )


def uninstall_main(argv: Sequence[str] | None = None) -> int:
    """Remove what install created."""
    return _run(
        "toolbelt-uninstall",
        "Remove the tools, toolchain and profile entries install created.",
        lambda config, verbose: run_uninstall(config, verbose=verbose),
        argv,
    )
