"""
Entry point for running mplogger as a module:

    python -m mplogger serve
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
