import pytest

from surety.errors import (
    AlreadyRegistered,
    InsufficientFee,
    NotRegistered,
    SuretyError,
)
from surety.models import StatusCode
from surety.oracles import IndexSource, derive_index

TEST_ORACLES_COUNT = 10


def test_register_oracle_requires_fee(app):
    with pytest.raises(InsufficientFee):
        app.register_oracle("oracle-1", app.REGISTRATION_FEE - 1)
    with pytest.raises(NotRegistered):
        app.get_my_indexes("oracle-1")


def test_register_oracles(app):
    for a in range(1, TEST_ORACLES_COUNT):
        receipt = app.register_oracle(f"oracle-{a}", app.REGISTRATION_FEE)
        indexes = app.get_my_indexes(f"oracle-{a}")

        assert tuple(receipt.value) == indexes
        assert len(set(indexes)) == 3
        assert all(0 <= idx < 10 for idx in indexes)
        assert receipt.event_names == ["OracleRegistered"]

    with pytest.raises(AlreadyRegistered):
        app.register_oracle("oracle-1", app.REGISTRATION_FEE)


def test_derive_index_is_deterministic():
    first = [derive_index("oracle-1", n, b"entropy") for n in range(50)]
    again = [derive_index("oracle-1", n, b"entropy") for n in range(50)]

    assert first == again
    assert all(0 <= idx < 10 for idx in first)
    assert len(set(first)) > 1
    assert all(0 <= derive_index("oracle-1", n, b"e", 3) < 3 for n in range(20))


def test_index_source_uses_injected_entropy():
    a = IndexSource(lambda: b"block-42")
    b = IndexSource(lambda: b"block-42")
    assert [a.draw("x", n) for n in range(10)] == [b.draw("x", n) for n in range(10)]


def test_request_flight_status(app):
    for a in range(1, TEST_ORACLES_COUNT):
        app.register_oracle(f"oracle-{a}", app.REGISTRATION_FEE)
    flight = "ND1309"
    timestamp = 1700000000

    oracle_request = app.fetch_flight_status("airline-1", flight, timestamp, "owner")
    request_index = oracle_request.value

    event = oracle_request.events[0]
    assert event.name == "OracleRequest"
    assert event.args["index"] == request_index
    assert event.args["airline"] == "airline-1"
    assert event.args["flight"] == flight
    assert event.args["timestamp"] == timestamp

    accepted = 0
    for a in range(1, TEST_ORACLES_COUNT):
        for idx in app.get_my_indexes(f"oracle-{a}"):
            try:
                app.submit_oracle_response(
                    idx, "airline-1", flight, timestamp, StatusCode.ON_TIME, f"oracle-{a}"
                )
            except SuretyError:
                continue
            accepted += 1

    matching = sum(
        request_index in app.get_my_indexes(f"oracle-{a}")
        for a in range(1, TEST_ORACLES_COUNT)
    )
    assert accepted == matching
