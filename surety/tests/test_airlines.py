import pytest

from surety.airlines import required_votes
from surety.config import WEI
from surety.errors import (
    AlreadyFunded,
    AlreadyRegistered,
    DuplicateVote,
    InsufficientFunds,
    InvalidAmount,
    NotOperational,
    Unauthorized,
)
from surety.models import AirlineState


def pay_dues(app, airline):
    app.fund(airline, app.AIRLINE_FUNDING_AMOUNT)
    app.submit_airline_funding(airline)


def test_first_airline_registered_on_bootstrap(app):
    assert app.is_airline_registered("airline-1")
    assert not app.is_airline_funded("airline-1")
    assert app.bootstrap().value is False


def test_unfunded_airline_cannot_register(app):
    head = app.ledger.head()
    with pytest.raises(Unauthorized):
        app.register_airline("Airline 2", "airline-2", "airline-1")

    assert not app.is_airline_registered("airline-2")
    assert app.ledger.head() == head


def test_fund_and_pay_dues(app):
    assert app.get_airline_balance("airline-1") == 0

    app.fund("airline-1", 12 * WEI)
    assert app.get_airline_balance("airline-1") == 12 * WEI

    receipt = app.submit_airline_funding("airline-1")
    assert receipt.events[0].name == "AirlinePaid"
    assert app.get_airline_balance("airline-1") == 12 * WEI - app.AIRLINE_FUNDING_AMOUNT
    assert app.is_airline_funded("airline-1")

    with pytest.raises(AlreadyFunded):
        app.submit_airline_funding("airline-1")


def test_fund_rejects_bad_amount_and_strangers(app):
    with pytest.raises(InvalidAmount):
        app.fund("airline-1", 0)
    with pytest.raises(Unauthorized):
        app.fund("nobody", WEI)


def test_insufficient_funds_leave_state_untouched(app):
    app.fund("airline-1", 5 * WEI)
    with pytest.raises(InsufficientFunds):
        app.submit_airline_funding("airline-1")

    airline = app.airlines.get("airline-1")
    assert airline.state is AirlineState.REGISTERED
    assert airline.balance == 5 * WEI


def test_registration_events_carry_airline_name(app):
    registered = app.events_since(0, name="AirlineRegistered")
    assert registered[0].args == {"airline": "airline-1", "name": "Airline 1"}

    pay_dues(app, "airline-1")
    receipt = app.register_airline("Airline 2", "airline-2", "airline-1")
    assert receipt.events[0].name == "AirlineRegistered"
    assert receipt.events[0].args["name"] == "Airline 2"
    stored = app.events_since(0, name="AirlineRegistered")[-1]
    assert stored.args == {"airline": "airline-2", "name": "Airline 2"}


def test_sole_funded_airline_admits_fifth_with_one_vote(app):
    pay_dues(app, "airline-1")
    for n in (2, 3, 4):
        receipt = app.register_airline(f"Airline {n}", f"airline-{n}", "airline-1")
        assert receipt.event_names == ["AirlineRegistered"]
        assert app.is_airline_registered(f"airline-{n}")

    receipt = app.register_airline("Airline 5", "airline-5", "airline-1")

    assert receipt.event_names == ["AirlineVoted", "AirlineRegistered"]
    assert receipt.events[0].args["name"] == "Airline 5"
    assert receipt.events[0].args["voteCount"] == 1
    assert app.is_airline_registered("airline-5")


def test_fifth_airline_needs_half_of_funded_airlines(app):
    pay_dues(app, "airline-1")
    for n in (2, 3, 4):
        app.register_airline(f"Airline {n}", f"airline-{n}", "airline-1")
    for n in (2, 3, 4):
        pay_dues(app, f"airline-{n}")

    first = app.register_airline("Airline 5", "airline-5", "airline-1")
    assert first.event_names == ["AirlineVoted"]
    assert first.events[0].args["voteCount"] == 1
    assert not app.is_airline_registered("airline-5")
    assert app.airlines.get("airline-5").state is AirlineState.VOTED

    with pytest.raises(DuplicateVote):
        app.register_airline("Airline 5", "airline-5", "airline-1")

    second = app.register_airline("Airline 5", "airline-5", "airline-2")
    assert second.event_names == ["AirlineVoted", "AirlineRegistered"]
    assert second.events[0].args["voteCount"] == 2
    assert app.is_airline_registered("airline-5")

    with pytest.raises(AlreadyRegistered):
        app.register_airline("Airline 5", "airline-5", "airline-3")


def test_required_votes_rounding():
    assert required_votes(1) == 1
    assert required_votes(4) == 2
    assert required_votes(5) == 3
    assert required_votes(5, rounding="down") == 2
    assert required_votes(1, rounding="down") == 1
    assert required_votes(0) == 1


def test_mutations_blocked_when_not_operational(app):
    with pytest.raises(Unauthorized):
        app.set_operating_status(False, "airline-1")

    app.set_operating_status(False, "owner")
    assert not app.is_operational()
    with pytest.raises(NotOperational):
        app.fund("airline-1", WEI)

    app.set_operating_status(True, "owner")
    assert app.fund("airline-1", WEI).value == WEI
