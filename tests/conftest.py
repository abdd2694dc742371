"""Pytest configuration and fixtures."""

from __future__ import annotations

import io
import os
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent

SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"

from runall.config import Config  # noqa: E402
from runall.runtime import ConsoleSink  # noqa: E402


@pytest.fixture
def src_dir() -> Path:
    return SRC_DIR


@pytest.fixture
def fake_service_path() -> Path:
    """Path to the fake service script."""
    return FIXTURES_DIR / "fake_service.py"


@pytest.fixture
def config() -> Config:
    """Config using /bin/sh with a generous drain timeout."""
    return Config(shell="sh", drain_timeout=5.0)


@pytest.fixture
def sink_stream() -> io.BytesIO:
    return io.BytesIO()


@pytest.fixture
def sink(sink_stream: io.BytesIO) -> ConsoleSink:
    return ConsoleSink(sink_stream)


@pytest.fixture
def runall_env(src_dir: Path) -> dict[str, str]:
    """Environment for running ``python -m runall`` from the source tree."""
    env = os.environ.copy()
    existing = env.get("PYTHONPATH")
    env["PYTHONPATH"] = str(src_dir) + (os.pathsep + existing if existing else "")
    for key in list(env):
        if key.startswith("RUNALL_"):
            del env[key]
    return env
