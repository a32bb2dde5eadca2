import logging
from unittest.mock import Mock, patch

import pytest

from surety.models import StatusCode
from surety.oracle_agent import (
    HttpStatusSource,
    OracleAgent,
    RandomStatusSource,
    StatusSourceError,
    build_source,
)
from surety.tasks import build_scheduler

AIRLINE = "airline-1"
FLIGHT = "ND1309"
TS = 1700000000


class FixedSource:
    def __init__(self, status):
        self.status = status

    def status_for(self, oracle, airline, flight, timestamp):
        return self.status


class BrokenSource:
    def status_for(self, oracle, airline, flight, timestamp):
        raise StatusSourceError("feed down")


def make_pool_app(make_app, sequence_source):
    triplets = [(1, 2, 3), (1, 4, 5), (1, 6, 7), (8, 9, 0)]
    values = [idx for triplet in triplets for idx in triplet] + [1]
    app = make_app(index_source=sequence_source(values))
    app.register_flight(FLIGHT, TS, AIRLINE)
    return app


def test_random_source_sticks_to_one_code():
    source = RandomStatusSource(seed=7)
    first = source.status_for("oracle-1", AIRLINE, FLIGHT, TS)
    assert source.status_for("oracle-1", AIRLINE, "OTHER", TS + 1) == first
    assert first in {int(code) for code in StatusCode}


@patch("requests.get")
def test_http_source_reads_status(mock_get):
    mock_resp = Mock(status_code=200)
    mock_resp.json.return_value = {"status": 20}
    mock_get.return_value = mock_resp

    source = HttpStatusSource("https://status.example.com/")
    assert source.status_for("oracle-1", AIRLINE, FLIGHT, TS) == 20
    mock_get.assert_called_once_with(
        "https://status.example.com/status",
        params={"airline": AIRLINE, "flight": FLIGHT, "timestamp": TS},
        timeout=15,
    )


@patch("requests.get")
def test_http_source_errors(mock_get):
    source = HttpStatusSource("https://status.example.com")

    mock_get.return_value = Mock(status_code=503, text="unavailable")
    with pytest.raises(StatusSourceError):
        source.status_for("oracle-1", AIRLINE, FLIGHT, TS)

    mock_resp = Mock(status_code=200)
    mock_resp.json.return_value = {"status": 15}
    mock_get.return_value = mock_resp
    with pytest.raises(StatusSourceError):
        source.status_for("oracle-1", AIRLINE, FLIGHT, TS)


def test_build_source():
    assert isinstance(build_source(None), RandomStatusSource)
    assert isinstance(build_source("https://status.example.com"), HttpStatusSource)


def test_agent_answers_requests(make_app, sequence_source):
    app = make_pool_app(make_app, sequence_source)
    agent = OracleAgent(app, FixedSource(int(StatusCode.LATE_AIRLINE)))
    agent.register_oracles(4)
    app.fetch_flight_status(AIRLINE, FLIGHT, TS, "passenger")

    assert agent.poll() == 1
    assert app.get_flight(FLIGHT).status_code is StatusCode.LATE_AIRLINE
    assert len(app.events_since(0, name="OracleReport")) == 3
    assert agent.poll() == 0


def test_agent_tolerates_replay(make_app, sequence_source):
    app = make_pool_app(make_app, sequence_source)
    first = OracleAgent(app, FixedSource(int(StatusCode.ON_TIME)))
    first.register_oracles(4)
    app.fetch_flight_status(AIRLINE, FLIGHT, TS, "passenger")
    first.poll()

    replay = OracleAgent(app, FixedSource(int(StatusCode.LATE_AIRLINE)))
    replay.register_oracles(4)
    assert [o.indexes for o in replay.oracles] == [o.indexes for o in first.oracles]

    request = app.events_since(0, name="OracleRequest")[0]
    assert replay.handle_request(request) == 0
    assert app.get_flight(FLIGHT).status_code is StatusCode.ON_TIME


def test_agent_skips_failed_lookups(make_app, sequence_source, caplog):
    app = make_pool_app(make_app, sequence_source)
    agent = OracleAgent(app, BrokenSource())
    agent.register_oracles(4)
    app.fetch_flight_status(AIRLINE, FLIGHT, TS, "passenger")

    caplog.set_level(logging.WARNING)
    assert agent.poll() == 1
    assert app.events_since(0, name="OracleReport") == []
    assert any("Status lookup failed" in r.getMessage() for r in caplog.records)


def test_scheduler_job_polls_agent(make_app, sequence_source):
    app = make_pool_app(make_app, sequence_source)
    agent = OracleAgent(app, FixedSource(int(StatusCode.LATE_AIRLINE)))
    agent.register_oracles(4)
    app.fetch_flight_status(AIRLINE, FLIGHT, TS, "passenger")

    sched = build_scheduler(agent, 5)
    job = sched.get_job("oracle_poll")
    job.func()

    assert agent.offset > 0
    assert app.get_flight(FLIGHT).status_code is StatusCode.LATE_AIRLINE


def test_scheduler_job_survives_agent_errors(caplog):
    agent = Mock()
    agent.poll.side_effect = RuntimeError("ledger gone")

    job = build_scheduler(agent, 5).get_job("oracle_poll")
    job.func()

    assert any("oracle poll failed" in r.getMessage() for r in caplog.records)
