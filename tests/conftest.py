"""Pytest configuration to ensure the dgdstools package is importable."""

import sys
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parents[1]
_root_str = str(_REPO_ROOT)
if _root_str not in sys.path:
    sys.path.insert(0, _root_str)

_tests_str = str(Path(__file__).resolve().parent)
if _tests_str not in sys.path:
    sys.path.insert(0, _tests_str)
