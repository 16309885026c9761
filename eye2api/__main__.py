#!/usr/bin/env python3
"""eye2api - entry point for ``python -m eye2api``."""

from .cli import main


if __name__ == "__main__":
    main()
