"""Pytest configuration shared by every test directory."""
import os
import sys

# Project root (for `tests.helpers`) and src/ (for uninstalled runs) on sys.path
ROOT = os.path.dirname(os.path.abspath(__file__))
for p in (ROOT, os.path.join(ROOT, "src")):
    if p not in sys.path:
        sys.path.insert(0, p)
