#!/usr/bin/env python3
"""Print the merged ethereum-exporter configuration."""

import sys
from pathlib import Path

src_dir = Path(__file__).parent / "src"
sys.path.insert(0, str(src_dir))

from ethereum_exporter.cli import main  # noqa: E402

if __name__ == "__main__":
    # Flags such as --config or --endpoint are honoured before printing.
    sys.exit(main(["--print-resolved", *sys.argv[1:]]))
