from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
TEST_DIR = Path(__file__).resolve().parent
for path in (str(ROOT), str(TEST_DIR)):
    if path not in sys.path:
        sys.path.insert(0, path)
