#!/usr/bin/env python3
"""
toolbelt uninstall - remove what install created.

By default only what the install ledger recorded is removed. Set
uninstall.mode to "manifest" in the config to remove everything the
manifests declare instead.

Usage:
    uninstall.py
"""

import sys

from toolbelt.cli import uninstall_main


if __name__ == "__main__":
    try:
        sys.exit(uninstall_main())
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(130)
