#!/usr/bin/env python3
"""Validate ethereum-exporter configuration and exit."""

import sys
from pathlib import Path

src_dir = Path(__file__).parent / "src"
sys.path.insert(0, str(src_dir))

from ethereum_exporter.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main(["--check", *sys.argv[1:]]))
