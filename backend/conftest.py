"""Pytest configuration to expose the globestamp package for imports."""

import pathlib
import sys

BACKEND_ROOT = pathlib.Path(__file__).resolve().parent

if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))
