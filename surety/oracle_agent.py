from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple

import requests

from .coordinator import Coordinator
from .errors import AlreadyRegistered, SuretyError
from .models import Event, StatusCode

logger = logging.getLogger(__name__)


class StatusSourceError(RuntimeError):
    """Flight status could not be obtained from the upstream feed."""


class StatusSource(Protocol):
    def status_for(self, oracle: str, airline: str, flight: str, timestamp: int) -> int:
        ...


class RandomStatusSource:
    """Every oracle sticks to one randomly chosen status code."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self._rng = random.Random(seed)
        self._codes: Dict[str, int] = {}

    def status_for(self, oracle: str, airline: str, flight: str, timestamp: int) -> int:
        if oracle not in self._codes:
            self._codes[oracle] = int(self._rng.choice(list(StatusCode)))
        return self._codes[oracle]


class HttpStatusSource:
    """Reads the status code of a flight from a JSON HTTP feed."""

    def __init__(self, base_url: str, timeout: int = 15) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def status_for(self, oracle: str, airline: str, flight: str, timestamp: int) -> int:
        resp = requests.get(
            f"{self.base_url}/status",
            params={"airline": airline, "flight": flight, "timestamp": timestamp},
            timeout=self.timeout,
        )
        if resp.status_code != 200:
            raise StatusSourceError(f"HTTP {resp.status_code} – {resp.text[:120]}")
        data = resp.json()
        try:
            return int(StatusCode(int(data["status"])))
        except (KeyError, TypeError, ValueError):
            raise StatusSourceError(f"malformed status payload: {data!r}") from None


@dataclass(slots=True)
class SimulatedOracle:
    address: str
    indexes: Tuple[int, int, int]


class OracleAgent:
    """Off-ledger oracle pool answering ``OracleRequest`` events.

    The agent reads the event log from ``offset`` on; replayed requests only
    produce duplicate votes, which the ledger rejects and the agent discards.
    """

    def __init__(
        self,
        app: Coordinator,
        source: StatusSource,
        *,
        offset: int = 0,
    ) -> None:
        self.app = app
        self.source = source
        self.offset = offset
        self.oracles: List[SimulatedOracle] = []

    def register_oracles(self, count: int, prefix: str = "oracle") -> List[SimulatedOracle]:
        """Register ``count`` oracle accounts, reusing those already registered."""
        fee = self.app.REGISTRATION_FEE
        for n in range(1, count + 1):
            address = f"{prefix}-{n}"
            try:
                indexes = self.app.register_oracle(address, fee).value
            except AlreadyRegistered:
                indexes = self.app.get_my_indexes(address)
            self.oracles.append(SimulatedOracle(address, tuple(indexes)))
        logger.info("Oracle pool holds %d oracles", len(self.oracles))
        return self.oracles

    def poll(self) -> int:
        """Answer every ``OracleRequest`` after ``offset``; return how many."""
        events = self.app.events_since(self.offset, name="OracleRequest")
        for event in events:
            self.handle_request(event)
            self.offset = max(self.offset, event.seq)
        return len(events)

    def handle_request(self, event: Event) -> int:
        index = int(event.args["index"])
        airline = event.args["airline"]
        flight = event.args["flight"]
        timestamp = int(event.args["timestamp"])

        matching = [o for o in self.oracles if index in o.indexes]
        logger.info(
            "Request %s/%s@%s on index %s matches %d oracles",
            airline,
            flight,
            timestamp,
            index,
            len(matching),
        )
        accepted = 0
        for oracle in matching:
            try:
                status = self.source.status_for(oracle.address, airline, flight, timestamp)
            except StatusSourceError as exc:
                logger.warning("  Status lookup failed for %s: %s", flight, exc)
                continue
            try:
                self.app.submit_oracle_response(
                    index, airline, flight, timestamp, status, oracle.address
                )
            except SuretyError as exc:
                logger.warning(
                    "  Discarding response of %s: %s", oracle.address, exc
                )
                continue
            accepted += 1
        return accepted


def build_source(url: Optional[str], seed: Optional[int] = None) -> StatusSource:
    if url:
        return HttpStatusSource(url)
    return RandomStatusSource(seed)


__all__ = [
    "OracleAgent",
    "SimulatedOracle",
    "StatusSource",
    "StatusSourceError",
    "RandomStatusSource",
    "HttpStatusSource",
    "build_source",
]
