"""
Support-services portal entry point.

The portals are a library driven by a UI layer; this entry point runs
the offline console demo against an in-memory store.

Usage:
    Interactive:  python main.py console
    Scripted:     python main.py console --scenario conflict
"""

import logging
import sys

from learnbridge.config import settings

logger = logging.getLogger(__name__)


def _run_console_mode(argv: list[str]) -> None:
    """Start the offline console demo (no database or identity provider required)."""
    from console_demo import main as console_main

    logger.debug("Starting console demo for %s", settings.portal.name)
    console_main(argv)


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode(sys.argv[2:])
    else:
        print(__doc__.strip())
        sys.exit(2)
