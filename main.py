#!/usr/bin/env python3
"""
FeedFlow - Feed Ingestion Pipeline
==================================

Main application entry point. Equivalent to the ``feedflow`` console script.

Usage:
    python main.py --help
    python main.py import-opml subscriptions.opml
    python main.py refresh
"""

import sys
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from feedflow.cli import cli


if __name__ == "__main__":
    cli()
