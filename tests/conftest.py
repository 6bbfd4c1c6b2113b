import os
import sys
from pathlib import Path

import pytest


# Ensure tests can import project packages regardless of how pytest is invoked.
ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)


@pytest.fixture(autouse=True)
def _isolate_abzexport_env(monkeypatch):
    """Keep ABZEXPORT_* settings of the developer's shell out of the tests."""
    for name in list(os.environ):
        if name.startswith("ABZEXPORT_"):
            monkeypatch.delenv(name, raising=False)
