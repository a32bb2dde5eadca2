"""Oracle registration and pseudo-random index assignment.

Each oracle receives three distinct indexes in ``[0, index_range)``.  A
status request is routed to a single index, so only the oracles holding it
are expected to answer.  Indexes come from :class:`IndexSource`, a pure
function of ``(entropy, caller, nonce)``; the entropy provider is injected so
that assignment is reproducible in tests.
"""

from __future__ import annotations

import hashlib
import logging
import struct
from typing import Callable, Optional, Tuple

from .config import Settings
from .db import Ledger, Transaction, next_nonce
from .errors import AlreadyRegistered, InsufficientFee, NotRegistered
from .models import Oracle

logger = logging.getLogger(__name__)

EntropyProvider = Callable[[], bytes]


def derive_index(caller: str, nonce: int, entropy: bytes, index_range: int = 10) -> int:
    """Map ``sha256(entropy || caller || nonce)`` into ``[0, index_range)``."""
    digest = hashlib.sha256(
        entropy + caller.encode("utf-8") + struct.pack(">Q", nonce)
    ).digest()
    return int.from_bytes(digest, "big") % index_range


class IndexSource:
    """Seeded index generator reading entropy from *entropy*."""

    def __init__(self, entropy: EntropyProvider, index_range: int = 10) -> None:
        self.entropy = entropy
        self.index_range = index_range

    def draw(self, caller: str, nonce: int) -> int:
        return derive_index(caller, nonce, self.entropy(), self.index_range)


def ledger_entropy(ledger: Ledger) -> EntropyProvider:
    """Use the latest event sequence number as the entropy value."""

    def _entropy() -> bytes:
        return struct.pack(">Q", ledger.head())

    return _entropy


class OracleRegistry:
    def __init__(self, ledger: Ledger, settings: Settings, source: IndexSource) -> None:
        self.ledger = ledger
        self.settings = settings
        self.source = source

    def get(self, address: str) -> Optional[Oracle]:
        row = self.ledger.fetchone(
            "SELECT address, fee, idx0, idx1, idx2 FROM oracles WHERE address=?",
            (address,),
        )
        if not row:
            return None
        return Oracle(address=row[0], fee=int(row[1]), indexes=(row[2], row[3], row[4]))

    def draw_index(self, tx: Transaction, caller: str) -> int:
        return self.source.draw(caller, next_nonce(tx))

    def _draw_triplet(self, tx: Transaction, caller: str) -> Tuple[int, int, int]:
        first = self.draw_index(tx, caller)
        second = first
        while second == first:
            second = self.draw_index(tx, caller)
        third = first
        while third in (first, second):
            third = self.draw_index(tx, caller)
        return first, second, third

    def register(self, tx: Transaction, caller: str, fee: int) -> Tuple[int, int, int]:
        if fee < self.settings.registration_fee:
            raise InsufficientFee(
                f"registration fee is {self.settings.registration_fee}, got {fee}"
            )
        if self.get(caller):
            raise AlreadyRegistered(f"oracle {caller} is already registered")
        if self.source.index_range < 3:
            raise ValueError("INDEX_RANGE must allow three distinct indexes")

        indexes = self._draw_triplet(tx, caller)
        tx.execute(
            "INSERT INTO oracles(address, fee, idx0, idx1, idx2) VALUES (?,?,?,?,?)",
            (caller, str(fee), *indexes),
        )
        tx.emit("OracleRegistered", caller, oracle=caller, indexes=list(indexes))
        logger.info("Oracle %s registered with indexes %s", caller, indexes)
        return indexes

    def indexes_of(self, caller: str) -> Tuple[int, int, int]:
        oracle = self.get(caller)
        if not oracle:
            raise NotRegistered(f"{caller} is not a registered oracle")
        return oracle.indexes


__all__ = [
    "OracleRegistry",
    "IndexSource",
    "EntropyProvider",
    "derive_index",
    "ledger_entropy",
]
