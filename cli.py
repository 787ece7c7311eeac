#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Command-line entry point for the EPUB English to Chinese translator.
This script allows running the translator without installing the package.
"""

import sys
import os

# Add this directory to path to allow importing the package
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from epub_zh_translator.main import main

if __name__ == "__main__":
    main()
