#!/usr/bin/env python3
"""
toolbelt install - provision the declared tools on this machine.

Reads the manifests in manifest_dir (default: ./manifests) and installs
system packages, special packages, the Go toolchain and Go tools, then
clones, sets up and aliases every tool and clones the wordlists.

Usage:
    install.py

Set TOOLBELT_DEBUG=1 for verbose output.
"""

import sys

from toolbelt.cli import install_main


if __name__ == "__main__":
    try:
        sys.exit(install_main())
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(130)
