#!/usr/bin/env python3
"""
Script to clear test data from the shop database.

Thin wrapper around the db-sanitizer command for running from a checkout without installing.

Usage:
    python scripts/clear_test_data.py --confirm
    python scripts/clear_test_data.py --confirm --nuclear
    python scripts/clear_test_data.py --help

    # Or with uv:
    uv run python scripts/clear_test_data.py --confirm --dry-run
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from db_sanitizer.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
