# === NAVMAP v1 ===
# {
#   "module": "tests.conftest",
#   "purpose": "Shared pytest fixtures for suite",
#   "sections": [
#     {
#       "id": "isolate-pigeon-env",
#       "name": "_isolate_pigeon_env",
#       "anchor": "function-isolate-pigeon-env",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Pytest Configuration

Makes ``src`` importable, registers the shared fixtures from
``tests/fixtures`` and keeps ``PIGEON_*`` variables from the developer's
environment out of every test.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
for path in (SRC, ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from tests.fixtures.clock import fake_clock, no_sleep  # noqa: E402,F401
from tests.fixtures.http_mocking import executor, http_mock, router  # noqa: E402,F401


@pytest.fixture(autouse=True)
def _isolate_pigeon_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.upper().startswith("PIGEON_"):
            monkeypatch.delenv(key, raising=False)
