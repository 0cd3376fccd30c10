"""Console-script entry point: ``courier`` maps to ``app_main``."""

from __future__ import annotations

import sys
from typing import Optional

from .cli import run_cli


def app_main(argv: Optional[list[str]] = None) -> None:
    """Run the CLI and exit with its status (0 ok, 1 remote failure, 2 usage)."""
    sys.exit(run_cli(argv))


if __name__ == "__main__":  # pragma: no cover
    app_main()
