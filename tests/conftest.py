from __future__ import annotations

import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT, ROOT / "src"):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import pytest


@pytest.fixture(autouse=True)
def _reset_package_logger():
    logger = logging.getLogger("logdiag")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def write_logs(tmp_path: Path):
    def _write(build: str = "", run: str = "") -> tuple[Path, Path]:
        build_log = tmp_path / "session_build.log"
        run_log = tmp_path / "session_run.log"
        build_log.write_text(build, encoding="utf-8")
        run_log.write_text(run, encoding="utf-8")
        return build_log, run_log

    return _write
