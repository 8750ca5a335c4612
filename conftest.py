"""
Root conftest - shared pytest configuration.
Ensures the motionwatch package is importable when running pytest from the repo root
and keeps test log files out of ./logs.
"""
import os
import sys
import tempfile
from pathlib import Path

_root = Path(__file__).resolve().parent
if str(_root) not in sys.path:
    sys.path.insert(0, str(_root))

os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="motionwatch-logs-"))
