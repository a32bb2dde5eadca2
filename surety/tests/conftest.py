import pytest

from surety.config import Settings
from surety.coordinator import Coordinator
from surety.db import Ledger


class SequenceIndexSource:
    """Hands out predetermined indexes in order."""

    index_range = 10

    def __init__(self, values):
        self.values = list(values)

    def draw(self, caller, nonce):
        return self.values.pop(0)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        SURETY_DB=str(tmp_path / "test.db"),
        CONTRACT_OWNER="owner",
        FIRST_AIRLINE="airline-1",
        FIRST_AIRLINE_NAME="Airline 1",
        MIN_RESPONSES=3,
        VOTE_ROUNDING="up",
        STATUS_SOURCE_URL=None,
    )


@pytest.fixture
def make_app(settings):
    ledgers = []

    def _make(**kwargs):
        ledger = Ledger.open(settings.db_path)
        ledgers.append(ledger)
        app = Coordinator(ledger, settings, **kwargs)
        app.bootstrap()
        return app

    yield _make
    for ledger in ledgers:
        ledger.close()


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def sequence_source():
    return SequenceIndexSource
