from __future__ import annotations

import logging
from decimal import ROUND_DOWN, Decimal
from typing import Callable, Optional

from .config import Settings
from .db import Ledger, Transaction
from .errors import (
    AlreadyClaimed,
    DuplicatePolicy,
    ExceedsCap,
    InvalidAmount,
    NothingToWithdraw,
    NotYetLate,
    PolicyNotFound,
    UnknownFlight,
)
from .models import Policy, PolicyState, StatusCode

logger = logging.getLogger(__name__)

PayoutSink = Callable[[str, int], None]


def log_payout(account: str, amount: int) -> None:
    """Default payout effect: the transfer is left to the ledger operator."""
    logger.info("Transferring %s to %s", amount, account)


def compute_payout(amount: int, multiplier: Decimal) -> int:
    return int((Decimal(amount) * multiplier).to_integral_value(rounding=ROUND_DOWN))


class InsuranceLedger:
    """Escrow of passenger premiums and withdraw-pull payouts."""

    def __init__(
        self,
        ledger: Ledger,
        settings: Settings,
        payout_sink: Optional[PayoutSink] = None,
    ) -> None:
        self.ledger = ledger
        self.settings = settings
        self.payout_sink = payout_sink or log_payout

    def get(self, flight_code: str, passenger: str) -> Optional[Policy]:
        row = self.ledger.fetchone(
            """
            SELECT flight_code, passenger, amount, payout, state
              FROM policies WHERE flight_code=? AND passenger=?
            """,
            (flight_code, passenger),
        )
        if not row:
            return None
        return Policy(
            flight_code=row[0],
            passenger=row[1],
            amount=int(row[2]),
            payout=int(row[3]),
            state=PolicyState(row[4]),
        )

    def balance(self, account: str) -> int:
        row = self.ledger.fetchone(
            "SELECT amount FROM balances WHERE account=?", (account,)
        )
        return int(row[0]) if row else 0

    def _flight_status(self, flight_code: str) -> Optional[StatusCode]:
        row = self.ledger.fetchone(
            "SELECT status_code FROM flights WHERE flight_code=?", (flight_code,)
        )
        return StatusCode(row[0]) if row else None

    def purchase(self, tx: Transaction, flight_code: str, passenger: str, amount: int) -> Policy:
        if self._flight_status(flight_code) is None:
            raise UnknownFlight(f"flight {flight_code} is not registered")
        if amount <= 0:
            raise InvalidAmount("insurance amount must be greater than 0")
        if amount > self.settings.insurance_cap:
            raise ExceedsCap(
                f"max amount of insurance is {self.settings.insurance_cap}"
            )
        if self.get(flight_code, passenger):
            raise DuplicatePolicy(
                f"{passenger} already holds a policy for flight {flight_code}"
            )

        policy = Policy(
            flight_code=flight_code,
            passenger=passenger,
            amount=amount,
            payout=compute_payout(amount, self.settings.payout_multiplier),
        )
        tx.execute(
            """
            INSERT INTO policies(flight_code, passenger, amount, payout, state)
            VALUES (?,?,?,?,?)
            """,
            (
                policy.flight_code,
                policy.passenger,
                str(policy.amount),
                str(policy.payout),
                policy.state.value,
            ),
        )
        tx.emit(
            "InsurancePurchased",
            passenger,
            passenger=passenger,
            flightCode=flight_code,
            amount=amount,
            insuranceValue=policy.payout,
        )
        logger.info(
            "Passenger %s insured flight %s for %s (payout %s)",
            passenger,
            flight_code,
            amount,
            policy.payout,
        )
        return policy

    def claim(self, tx: Transaction, flight_code: str, passenger: str) -> int:
        policy = self.get(flight_code, passenger)
        if not policy:
            raise PolicyNotFound(
                f"no policy for {passenger} on flight {flight_code}"
            )
        if self._flight_status(flight_code) is not StatusCode.LATE_AIRLINE:
            raise NotYetLate(f"flight {flight_code} is not late due to the airline")
        if policy.state is PolicyState.CLAIMED:
            raise AlreadyClaimed(f"policy on flight {flight_code} was already claimed")

        tx.execute(
            "UPDATE policies SET state=? WHERE flight_code=? AND passenger=?",
            (PolicyState.CLAIMED.value, flight_code, passenger),
        )
        balance = self.balance(passenger) + policy.payout
        tx.execute(
            """
            INSERT INTO balances(account, amount) VALUES (?,?)
            ON CONFLICT(account) DO UPDATE SET amount=excluded.amount
            """,
            (passenger, str(balance)),
        )
        tx.emit(
            "InsuranceClaimed",
            passenger,
            passenger=passenger,
            flightCode=flight_code,
            payout=policy.payout,
        )
        logger.info("Passenger %s claimed %s on %s", passenger, policy.payout, flight_code)
        return policy.payout

    def withdraw(self, tx: Transaction, caller: str) -> int:
        amount = self.balance(caller)
        if amount <= 0:
            raise NothingToWithdraw(f"{caller} has no balance to withdraw")
        # Balance must be zero before the payout effect can observe it.
        tx.execute("UPDATE balances SET amount='0' WHERE account=?", (caller,))
        tx.emit("BalanceWithdrawn", caller, account=caller, amount=amount)
        self.payout_sink(caller, amount)
        logger.info("Withdrew %s for %s", amount, caller)
        return amount


__all__ = ["InsuranceLedger", "PayoutSink", "compute_payout", "log_payout"]
