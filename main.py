#!/usr/bin/env python3
"""
Image Separator — Entry Point.

Usage:
    python main.py dump.bin                        # carve, re-encode images
    python main.py dump.bin --keep_raw_bin         # carve, raw byte dumps
    python main.py dump.bin --mode single          # one pass per format
    python main.py ./output --merge                # fragments → output.bin
"""

import sys

from separator.cli import main

if __name__ == "__main__":
    sys.exit(main())
