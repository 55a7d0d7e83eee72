import logging
from pathlib import Path

import pytest


@pytest.fixture
def roots(tmp_path: Path) -> dict[str, Path]:
    return {
        "raw": tmp_path / "raw",
        "output": tmp_path / "out",
        "data": tmp_path / "data",
    }


@pytest.fixture(autouse=True)
def _restore_root_handlers():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
