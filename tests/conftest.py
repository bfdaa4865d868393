import logging

import pytest


@pytest.fixture(autouse=True)
def _sale_logging(caplog):
    caplog.set_level(logging.INFO, logger="b402_mint")
    yield
