import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def _isolated_curation_env(monkeypatch, tmp_path):
    """Keep developer env overrides and log files out of the test run."""

    import os

    for key in list(os.environ):
        if key.startswith("CURATORWORKS_CURATION__"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("CURATORWORKS_LOG_DIR", str(tmp_path / "logs"))
    yield
