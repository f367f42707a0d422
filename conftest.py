import sys

import pytest
from loguru import logger


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    # the CLI rebinds loguru to the runner's captured stderr
    logger.remove()
    logger.add(sys.stderr, level="WARNING")
