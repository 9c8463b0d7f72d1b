import pytest

from config import TransferOptions
from report import Report


@pytest.fixture
def report():
    return Report(echo=False)


@pytest.fixture
def options():
    def _options(**kw):
        kw.setdefault("table", "HIVE_RESULTS")
        kw.setdefault("query", "SELECT id, name, score FROM events")
        return TransferOptions(**kw)
    return _options
