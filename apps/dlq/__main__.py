"""
DLQ Module Entry Point

Allows execution via: python -m apps.dlq <command>
"""

import sys

from apps.dlq.cli import main

if __name__ == "__main__":
    sys.exit(main())
