import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]


@pytest.mark.parametrize(
    "module",
    [
        "runner.executor",
        "runner.recorder",
        "runner.actions",
        "runner.steps",
        "runner.selectors",
        "runner.analyzer",
        "scenario.service",
        "runner.automation_server",
    ],
)
def test_module_imports_in_fresh_interpreter(module):
    completed = subprocess.run(
        [sys.executable, "-c", f"import {module}"],
        cwd=ROOT,
        capture_output=True,
        text=True,
    )

    assert completed.returncode == 0, completed.stderr
