"""Launcher for snaprotate.

Usage:
    python run.py init
    python run.py hourly
    python run.py --config config/config.example.json --dry-run daily
"""

import sys

from snaprotate.cli import main


if __name__ == "__main__":
    sys.exit(main())
