"""Pytest configuration shared by all tests."""

import sys
from pathlib import Path

# src レイアウトをインストールせずにテストできるようにする
_SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if str(_SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(_SRC_ROOT))
