import logging
import os
import stat
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest

from speedtest_exporter.metrics import SpeedtestMetrics


@pytest.fixture
def metrics():
    return SpeedtestMetrics()


@pytest.fixture
def make_stub(tmp_path):
    """Write an executable shell script standing in for fast-cli."""

    def _make(body: str, name: str = "fast-cli") -> str:
        path = tmp_path / name
        path.write_text("#!/bin/sh\n" + body + "\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make


@pytest.fixture
def stub_on_path(make_stub, monkeypatch):
    """Create a stub named fast-cli and put its directory first on PATH."""

    def _install(body: str) -> str:
        path = make_stub(body)
        monkeypatch.setenv("PATH", os.path.dirname(path) + os.pathsep + os.environ.get("PATH", ""))
        return path

    return _install


@pytest.fixture(autouse=True)
def reset_package_logging():
    """Drop handlers installed by configure_logging so they never outlive a test's capture."""
    yield
    package_logger = logging.getLogger("speedtest_exporter")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)
