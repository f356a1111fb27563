#!/usr/bin/env python3
"""
mplogger CLI Tool

Convenience launcher for running from a source checkout:

    ./mplog.py serve --socket ./a-local-socket
"""

import sys
from pathlib import Path

# Add the checkout root to the Python path for imports
sys.path.insert(0, str(Path(__file__).parent))

from mplogger.cli import main

if __name__ == "__main__":
    sys.exit(main())
