#!/usr/bin/env python3
"""Refresh each module's debian/changelog from its highest version note."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional, Sequence


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from vendorpack.cli import main as cli_main  # noqa: E402


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    return cli_main(["changelog", *args])


if __name__ == "__main__":
    raise SystemExit(main())
