from __future__ import annotations

import sys
from pathlib import Path

# Ensure local src is importable when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from mapcheck.main import run


if __name__ == "__main__":
    sys.exit(run())
