"""Airline admission: direct registration, funded-airline votes, dues."""

from __future__ import annotations

import logging
from typing import Optional

from .config import Settings
from .db import Ledger, Transaction
from .errors import (
    AlreadyFunded,
    AlreadyRegistered,
    DuplicateVote,
    InsufficientFunds,
    InvalidAmount,
    Unauthorized,
)
from .models import Airline, AirlineState

logger = logging.getLogger(__name__)

_REGISTERED = (AirlineState.REGISTERED.value, AirlineState.FUNDED.value)


def required_votes(funded: int, percent: int = 50, rounding: str = "up") -> int:
    """Return the number of votes needed out of *funded* airlines."""
    if rounding == "up":
        needed = -(-funded * percent // 100)
    else:
        needed = funded * percent // 100
    return max(needed, 1)


class AirlineRegistry:
    def __init__(self, ledger: Ledger, settings: Settings) -> None:
        self.ledger = ledger
        self.settings = settings

    # ── queries ───────────────────────────────────────────────

    def get(self, address: str) -> Optional[Airline]:
        row = self.ledger.fetchone(
            "SELECT address, name, state, vote_count, balance FROM airlines WHERE address=?",
            (address,),
        )
        if not row:
            return None
        return Airline(
            address=row[0],
            name=row[1],
            state=AirlineState(row[2]),
            vote_count=int(row[3]),
            balance=int(row[4]),
        )

    def is_registered(self, address: str) -> bool:
        airline = self.get(address)
        return bool(airline and airline.is_registered)

    def is_funded(self, address: str) -> bool:
        airline = self.get(address)
        return bool(airline and airline.is_funded)

    def balance(self, address: str) -> int:
        airline = self.get(address)
        return airline.balance if airline else 0

    def count(self, *states: AirlineState) -> int:
        marks = ",".join("?" for _ in states)
        row = self.ledger.fetchone(
            f"SELECT COUNT(*) FROM airlines WHERE state IN ({marks})",
            [s.value for s in states],
        )
        return int(row[0])

    def registered_count(self) -> int:
        return self.count(AirlineState.REGISTERED, AirlineState.FUNDED)

    def funded_count(self) -> int:
        return self.count(AirlineState.FUNDED)

    # ── mutations ─────────────────────────────────────────────

    def _admit(self, tx: Transaction, name: str, candidate: str, caller: str) -> None:
        tx.execute(
            """
            INSERT INTO airlines(address, name, state) VALUES (?,?,?)
            ON CONFLICT(address) DO UPDATE SET state=excluded.state, name=excluded.name
            """,
            (candidate, name, AirlineState.REGISTERED.value),
        )
        tx.emit("AirlineRegistered", caller, airline=candidate, name=name)
        logger.info("Airline %s (%s) registered", candidate, name)

    def register_first(self, tx: Transaction, address: str, name: str, caller: str) -> bool:
        """Register *address* when no airline exists yet."""
        if self.registered_count():
            return False
        self._admit(tx, name, address, caller)
        return True

    def register(self, tx: Transaction, name: str, candidate: str, caller: str) -> bool:
        """Register or vote for *candidate*; return whether it is now registered."""
        voter = self.get(caller)
        if not voter or not voter.is_funded:
            raise Unauthorized(
                f"{caller} needs to fund their account to register airlines"
            )
        existing = self.get(candidate)
        if existing and existing.is_registered:
            raise AlreadyRegistered(f"airline {candidate} is already registered")

        if self.registered_count() < self.settings.max_unvoted_airlines:
            self._admit(tx, name, candidate, caller)
            return True

        if tx.fetchone(
            "SELECT 1 FROM airline_votes WHERE candidate=? AND voter=?",
            (candidate, caller),
        ):
            raise DuplicateVote(f"{caller} already voted for {candidate}")

        tx.execute(
            "INSERT INTO airline_votes(candidate, voter) VALUES (?,?)",
            (candidate, caller),
        )
        votes = int(
            tx.fetchone(
                "SELECT COUNT(*) FROM airline_votes WHERE candidate=?", (candidate,)
            )[0]
        )
        tx.execute(
            """
            INSERT INTO airlines(address, name, state, vote_count) VALUES (?,?,?,?)
            ON CONFLICT(address) DO UPDATE SET vote_count=excluded.vote_count
            """,
            (candidate, name, AirlineState.VOTED.value, votes),
        )
        tx.emit("AirlineVoted", caller, airline=candidate, name=name, voteCount=votes)

        needed = required_votes(
            self.funded_count(),
            self.settings.vote_threshold_percent,
            self.settings.vote_rounding,
        )
        logger.info("Airline %s has %s/%s votes", candidate, votes, needed)
        if votes >= needed:
            self._admit(tx, name, candidate, caller)
            return True
        return False

    def fund(self, tx: Transaction, caller: str, amount: int) -> int:
        if amount <= 0:
            raise InvalidAmount("funding amount must be greater than 0")
        airline = self.get(caller)
        if not airline:
            raise Unauthorized(f"{caller} is not a known airline")
        balance = airline.balance + amount
        tx.execute(
            "UPDATE airlines SET balance=? WHERE address=?", (str(balance), caller)
        )
        logger.info("Airline %s balance is now %s", caller, balance)
        return balance

    def submit_funding(self, tx: Transaction, caller: str) -> int:
        airline = self.get(caller)
        if not airline or not airline.is_registered:
            raise Unauthorized(f"{caller} is not a registered airline")
        if airline.is_funded:
            raise AlreadyFunded(f"airline {caller} has already paid its dues")
        dues = self.settings.airline_funding_amount
        if airline.balance < dues:
            raise InsufficientFunds(
                f"balance {airline.balance} is below the funding amount {dues}"
            )
        balance = airline.balance - dues
        tx.execute(
            "UPDATE airlines SET balance=?, state=? WHERE address=?",
            (str(balance), AirlineState.FUNDED.value, caller),
        )
        tx.emit("AirlinePaid", caller, airline=caller, amount=dues)
        logger.info("Airline %s paid dues of %s", caller, dues)
        return balance


__all__ = ["AirlineRegistry", "required_votes"]
