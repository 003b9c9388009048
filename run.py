"""
Entry point for Piano AR.
Usage: python run.py [--display opencv] [--debug-points]
"""

import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from piano_ar.main import main

if __name__ == "__main__":
    main()
