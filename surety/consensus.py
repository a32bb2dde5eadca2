from __future__ import annotations

import logging
from typing import Optional

from .config import Settings
from .db import Ledger, Transaction
from .errors import (
    DuplicateVote,
    IndexMismatch,
    InvalidStatusCode,
    NoSuchRequest,
    NotAnOracle,
)
from .models import StatusCode, StatusRequest
from .oracles import OracleRegistry

logger = logging.getLogger(__name__)


class FlightStatusEngine:
    """Collects oracle votes per status request and commits the first quorum.

    A request is ``Open`` until one status code collects ``min_responses``
    votes from distinct oracles, then ``Resolved``.  Votes arriving after
    resolution are stored but never trigger a second settlement; only a new
    fetch landing on the same key reopens it, with its votes cleared.
    """

    def __init__(self, ledger: Ledger, settings: Settings, oracles: OracleRegistry) -> None:
        self.ledger = ledger
        self.settings = settings
        self.oracles = oracles

    def _request_row(self, index: int, airline: str, flight_code: str, timestamp: int):
        return self.ledger.fetchone(
            """
            SELECT id, requester, resolved, status_code FROM status_requests
             WHERE idx=? AND airline=? AND flight_code=? AND timestamp=?
            """,
            (index, airline, flight_code, timestamp),
        )

    def get_request(
        self, index: int, airline: str, flight_code: str, timestamp: int
    ) -> Optional[StatusRequest]:
        row = self._request_row(index, airline, flight_code, timestamp)
        if not row:
            return None
        request_id, requester, resolved, status_code = row
        votes = self.ledger.fetchall(
            "SELECT oracle, status_code FROM oracle_votes WHERE request_id=? ORDER BY rowid",
            (request_id,),
        )
        return StatusRequest(
            index=index,
            airline=airline,
            flight_code=flight_code,
            timestamp=timestamp,
            requester=requester,
            resolved=bool(resolved),
            status_code=StatusCode(status_code) if status_code is not None else None,
            votes=[(oracle, code) for oracle, code in votes],
        )

    def open_request(
        self, tx: Transaction, airline: str, flight_code: str, timestamp: int, caller: str
    ) -> int:
        index = self.oracles.draw_index(tx, caller)
        row = tx.fetchone(
            """
            SELECT id, resolved FROM status_requests
             WHERE idx=? AND airline=? AND flight_code=? AND timestamp=?
            """,
            (index, airline, flight_code, timestamp),
        )
        if row is None:
            tx.execute(
                """
                INSERT INTO status_requests(idx, airline, flight_code, timestamp, requester)
                VALUES (?,?,?,?,?)
                """,
                (index, airline, flight_code, timestamp, caller),
            )
        elif row[1]:
            # a settled key starts a fresh round for the new requester
            tx.execute("DELETE FROM oracle_votes WHERE request_id=?", (row[0],))
            tx.execute(
                """
                UPDATE status_requests
                   SET resolved=0, status_code=NULL, requester=?
                 WHERE id=?
                """,
                (caller, row[0]),
            )
            logger.info(
                "Reopened settled request %s/%s@%s on index %s",
                airline,
                flight_code,
                timestamp,
                index,
            )
        tx.emit(
            "OracleRequest",
            caller,
            index=index,
            airline=airline,
            flight=flight_code,
            timestamp=timestamp,
        )
        logger.info(
            "Opened status request %s/%s@%s on index %s",
            airline,
            flight_code,
            timestamp,
            index,
        )
        return index

    def submit(
        self,
        tx: Transaction,
        index: int,
        airline: str,
        flight_code: str,
        timestamp: int,
        status_code: int,
        caller: str,
    ) -> bool:
        """Record a vote; return ``True`` if it resolved the request."""
        oracle = self.oracles.get(caller)
        if not oracle:
            raise NotAnOracle(f"{caller} is not a registered oracle")
        if index not in oracle.indexes:
            raise IndexMismatch(f"index {index} does not match oracle request")
        row = self._request_row(index, airline, flight_code, timestamp)
        if not row:
            raise NoSuchRequest(
                f"no request for {airline}/{flight_code}@{timestamp} on index {index}"
            )
        try:
            code = StatusCode(status_code)
        except ValueError:
            raise InvalidStatusCode(f"unknown status code {status_code}") from None
        request_id, _requester, resolved, _status = row
        if tx.fetchone(
            "SELECT 1 FROM oracle_votes WHERE request_id=? AND oracle=?",
            (request_id, caller),
        ):
            raise DuplicateVote(f"oracle {caller} already answered this request")

        tx.execute(
            "INSERT INTO oracle_votes(request_id, oracle, status_code) VALUES (?,?,?)",
            (request_id, caller, int(code)),
        )
        tx.emit(
            "OracleReport",
            caller,
            airline=airline,
            flight=flight_code,
            timestamp=timestamp,
            status=int(code),
        )
        if resolved:
            return False

        votes = int(
            tx.fetchone(
                "SELECT COUNT(*) FROM oracle_votes WHERE request_id=? AND status_code=?",
                (request_id, int(code)),
            )[0]
        )
        if votes < self.settings.min_responses:
            return False

        self._resolve(tx, request_id, airline, flight_code, timestamp, code, caller)
        return True

    def _resolve(
        self,
        tx: Transaction,
        request_id: int,
        airline: str,
        flight_code: str,
        timestamp: int,
        code: StatusCode,
        caller: str,
    ) -> None:
        tx.execute(
            "UPDATE status_requests SET resolved=1, status_code=? WHERE id=?",
            (int(code), request_id),
        )
        cur = tx.execute(
            "UPDATE flights SET status_code=? WHERE airline=? AND flight_code=?",
            (int(code), airline, flight_code),
        )
        if cur.rowcount == 0:
            logger.warning(
                "Consensus reached for unknown flight %s/%s", airline, flight_code
            )
        tx.emit(
            "FlightStatusInfo",
            caller,
            airline=airline,
            flight=flight_code,
            timestamp=timestamp,
            status=int(code),
        )
        tx.emit(
            "FlightStatusProcessed",
            caller,
            airline=airline,
            flight=flight_code,
            timestamp=timestamp,
            status=int(code),
        )
        logger.info(
            "Flight %s/%s@%s resolved to %s", airline, flight_code, timestamp, code.name
        )


__all__ = ["FlightStatusEngine"]
