#!/usr/bin/env python3
"""
Main entry point for the frame removal command-line tool.
"""

import sys

from frame_removal.cli import main

if __name__ == "__main__":
    sys.exit(main())
