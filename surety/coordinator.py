"""Request router exposing the flight-surety entry points.

Every mutating call runs inside one ledger transaction and returns a
:class:`~surety.models.Receipt` with the events it emitted.  A rejected call
raises a :class:`~surety.errors.SuretyError` subclass and leaves no trace in
the ledger.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

from .airlines import AirlineRegistry
from .config import Settings, get_settings
from .consensus import FlightStatusEngine
from .db import Ledger, Transaction, get_var, set_var
from .errors import AlreadyRegistered, NotOperational, Unauthorized, UnknownFlight
from .insurance import InsuranceLedger, PayoutSink
from .models import Event, Flight, Policy, Receipt, StatusCode
from .oracles import IndexSource, OracleRegistry, ledger_entropy

logger = logging.getLogger(__name__)


class Coordinator:
    def __init__(
        self,
        ledger: Ledger,
        settings: Optional[Settings] = None,
        *,
        index_source: Optional[IndexSource] = None,
        payout_sink: Optional[PayoutSink] = None,
    ) -> None:
        self.ledger = ledger
        self.settings = settings or get_settings()
        source = index_source or IndexSource(
            ledger_entropy(ledger), self.settings.index_range
        )
        self.airlines = AirlineRegistry(ledger, self.settings)
        self.insurance = InsuranceLedger(ledger, self.settings, payout_sink)
        self.oracles = OracleRegistry(ledger, self.settings, source)
        self.consensus = FlightStatusEngine(ledger, self.settings, self.oracles)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **kwargs) -> "Coordinator":
        settings = settings or get_settings()
        return cls(Ledger.open(settings.db_path), settings, **kwargs)

    # ── constants ─────────────────────────────────────────────

    @property
    def REGISTRATION_FEE(self) -> int:
        return self.settings.registration_fee

    @property
    def AIRLINE_FUNDING_AMOUNT(self) -> int:
        return self.settings.airline_funding_amount

    @property
    def MIN_RESPONSES(self) -> int:
        return self.settings.min_responses

    # ── operational control ───────────────────────────────────

    def is_operational(self) -> bool:
        row = self.ledger.fetchone(
            "SELECT value FROM ledger_vars WHERE name='operational'"
        )
        return bool(row[0]) if row else True

    def set_operating_status(self, operational: bool, caller: str) -> Receipt:
        if caller != self.settings.owner:
            raise Unauthorized("caller is not the contract owner")
        with self.ledger.transaction() as tx:
            set_var(tx, "operational", int(operational))
            tx.emit("OperatingStatusChanged", caller, operational=operational)
        logger.info("Operating status set to %s", operational)
        return Receipt(operational, tx.events)

    @contextmanager
    def _mutation(self) -> Iterator[Transaction]:
        with self.ledger.transaction() as tx:
            if not get_var(tx, "operational", 1):
                raise NotOperational("contract is currently not operational")
            yield tx

    # ── bootstrap & flights ───────────────────────────────────

    def bootstrap(self, first_airline: Optional[str] = None, name: Optional[str] = None) -> Receipt:
        """Register the first airline if the ledger holds none yet."""
        address = first_airline or self.settings.first_airline
        with self._mutation() as tx:
            created = self.airlines.register_first(
                tx, address, name or self.settings.first_airline_name, self.settings.owner
            )
        return Receipt(created, tx.events)

    def register_flight(self, flight_code: str, timestamp: int, caller: str) -> Receipt:
        with self._mutation() as tx:
            if not self.airlines.is_registered(caller):
                raise Unauthorized(f"{caller} is not a registered airline")
            if self.get_flight(flight_code):
                raise AlreadyRegistered(f"flight {flight_code} already exists")
            tx.execute(
                "INSERT INTO flights(flight_code, airline, timestamp) VALUES (?,?,?)",
                (flight_code, caller, timestamp),
            )
            tx.emit(
                "FlightRegistered",
                caller,
                airline=caller,
                flight=flight_code,
                timestamp=timestamp,
            )
        logger.info("Flight %s of %s registered", flight_code, caller)
        return Receipt(flight_code, tx.events)

    @staticmethod
    def _flight(row) -> Flight:
        return Flight(
            airline=row[0],
            flight_code=row[1],
            timestamp=int(row[2]),
            status_code=StatusCode(row[3]),
        )

    def get_flight(self, flight_code: str) -> Optional[Flight]:
        row = self.ledger.fetchone(
            "SELECT airline, flight_code, timestamp, status_code FROM flights WHERE flight_code=?",
            (flight_code,),
        )
        return self._flight(row) if row else None

    def get_flights_count(self) -> int:
        return int(self.ledger.fetchone("SELECT COUNT(*) FROM flights")[0])

    def get_flight_by_index(self, index: int) -> Flight:
        row = self.ledger.fetchone(
            """
            SELECT airline, flight_code, timestamp, status_code FROM flights
             ORDER BY id LIMIT 1 OFFSET ?
            """,
            (index,),
        )
        if index < 0 or not row:
            raise UnknownFlight(f"no flight at index {index}")
        return self._flight(row)

    # ── airlines ──────────────────────────────────────────────

    def register_airline(self, name: str, candidate: str, caller: str) -> Receipt:
        with self._mutation() as tx:
            registered = self.airlines.register(tx, name, candidate, caller)
        return Receipt(registered, tx.events)

    def fund(self, caller: str, amount: int) -> Receipt:
        with self._mutation() as tx:
            balance = self.airlines.fund(tx, caller, amount)
        return Receipt(balance, tx.events)

    def submit_airline_funding(self, caller: str) -> Receipt:
        with self._mutation() as tx:
            balance = self.airlines.submit_funding(tx, caller)
        return Receipt(balance, tx.events)

    def is_airline_registered(self, airline: str) -> bool:
        return self.airlines.is_registered(airline)

    def is_airline_funded(self, airline: str) -> bool:
        return self.airlines.is_funded(airline)

    def get_airline_balance(self, airline: str) -> int:
        return self.airlines.balance(airline)

    # ── insurance ─────────────────────────────────────────────

    def purchase_insurance(self, flight_code: str, passenger: str, amount: int) -> Receipt:
        with self._mutation() as tx:
            policy = self.insurance.purchase(tx, flight_code, passenger, amount)
        return Receipt(policy, tx.events)

    def claim_insurance(self, flight_code: str, passenger: str) -> Receipt:
        with self._mutation() as tx:
            payout = self.insurance.claim(tx, flight_code, passenger)
        return Receipt(payout, tx.events)

    def withdraw_balance(self, caller: str) -> Receipt:
        with self._mutation() as tx:
            amount = self.insurance.withdraw(tx, caller)
        return Receipt(amount, tx.events)

    def get_balance(self, caller: str) -> int:
        return self.insurance.balance(caller)

    def get_insurance(self, flight_code: str, passenger: str) -> Optional[Policy]:
        return self.insurance.get(flight_code, passenger)

    # ── oracles ───────────────────────────────────────────────

    def register_oracle(self, caller: str, fee: int) -> Receipt:
        with self._mutation() as tx:
            indexes = self.oracles.register(tx, caller, fee)
        return Receipt(indexes, tx.events)

    def get_my_indexes(self, caller: str) -> Tuple[int, int, int]:
        return self.oracles.indexes_of(caller)

    def fetch_flight_status(
        self, airline: str, flight_code: str, timestamp: int, caller: str
    ) -> Receipt:
        with self._mutation() as tx:
            index = self.consensus.open_request(tx, airline, flight_code, timestamp, caller)
        return Receipt(index, tx.events)

    def submit_oracle_response(
        self,
        index: int,
        airline: str,
        flight_code: str,
        timestamp: int,
        status_code: int,
        caller: str,
    ) -> Receipt:
        with self._mutation() as tx:
            resolved = self.consensus.submit(
                tx, index, airline, flight_code, timestamp, status_code, caller
            )
        return Receipt(resolved, tx.events)

    # ── event log ─────────────────────────────────────────────

    def events_since(self, offset: int = 0, name: Optional[str] = None) -> List[Event]:
        return self.ledger.events_since(offset, name)


__all__ = ["Coordinator"]
