#!/usr/bin/env python3
"""
Codex Release Build Script

Builds the codex binaries for every release target. macOS targets are built
natively (and signed/notarized when credentials are provided), Linux and
Windows targets are built in Docker.

Usage:
    python build.py [options]

Examples:
    python build.py                            # Build everything the host can build
    python build.py --target linux-x86_64      # Build one target
    python build.py --no-skip-musl             # Also attempt MUSL targets
    python build.py --list-targets             # Show the routing for this host
"""

import sys
from pathlib import Path

# Add project directory to path
script_dir = Path(__file__).parent
sys.path.insert(0, str(script_dir))

from release_builder.cli import main


if __name__ == "__main__":
    sys.exit(main(default_root=script_dir.resolve()))
