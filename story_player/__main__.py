"""
Entry point for running the package as a module.

Usage:
    python -m story_player --api-url http://localhost:3000
"""

import sys
from .cli import main

if __name__ == "__main__":
    sys.exit(main())
