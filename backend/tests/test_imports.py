"""Each package must import on its own, in a fresh interpreter.

conftest has already imported the app by the time tests run, so an
in-process import would hide an import cycle.
"""

import os
import subprocess
import sys
from pathlib import Path

import pytest

BACKEND_DIR = Path(__file__).resolve().parents[1]


@pytest.mark.parametrize(
    "module",
    [
        "streamcore.events",
        "streamcore.events.lifecycle",
        "streamcore.giveaways",
        "streamcore.giveaways.service",
        "streamcore.repositories.base",
        "streamcore.repositories.sql",
        "streamcore.services",
        "streamcore.tasks.giveaways",
        "streamcore.main",
    ],
)
def test_module_imports_standalone(module):
    env = {**os.environ, "PYTHONPATH": str(BACKEND_DIR)}
    result = subprocess.run(
        [sys.executable, "-c", f"import {module}"],
        capture_output=True,
        text=True,
        env=env,
        timeout=60,
    )
    assert result.returncode == 0, result.stderr
