#!/usr/bin/env python3
"""
SnapTra - hold a key, hover a word, read the translation
A PyQt6 hover-to-translate tool
"""

import sys

from snaptra.app import main

if __name__ == "__main__":
    sys.exit(main())
