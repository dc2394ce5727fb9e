from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest


def pytest_configure() -> None:
    project_root = Path(__file__).resolve().parents[2]
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))


@pytest.fixture(autouse=True)
def _isolate_aws_config_file() -> Iterator[None]:
    """Keep ``AWS_CONFIG_FILE`` exports from leaking between tests."""

    previous = os.environ.pop("AWS_CONFIG_FILE", None)
    yield
    os.environ.pop("AWS_CONFIG_FILE", None)
    if previous is not None:
        os.environ["AWS_CONFIG_FILE"] = previous
