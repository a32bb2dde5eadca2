"""Data models used throughout the project."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Tuple


class AirlineState(str, Enum):
    UNREGISTERED = "Unregistered"
    VOTED = "Voted"
    REGISTERED = "Registered"
    FUNDED = "Funded"


class StatusCode(IntEnum):
    UNKNOWN = 0
    ON_TIME = 10
    LATE_AIRLINE = 20
    LATE_WEATHER = 30
    LATE_TECHNICAL = 40
    LATE_OTHER = 50


class PolicyState(str, Enum):
    ACTIVE = "Active"
    CLAIMED = "Claimed"


@dataclass(slots=True)
class Airline:
    address: str
    name: str
    state: AirlineState
    vote_count: int = 0
    balance: int = 0

    @property
    def is_registered(self) -> bool:
        return self.state in (AirlineState.REGISTERED, AirlineState.FUNDED)

    @property
    def is_funded(self) -> bool:
        return self.state is AirlineState.FUNDED


@dataclass(slots=True)
class Flight:
    airline: str
    flight_code: str
    timestamp: int
    status_code: StatusCode = StatusCode.UNKNOWN


@dataclass(slots=True)
class Policy:
    flight_code: str
    passenger: str
    amount: int
    payout: int
    state: PolicyState = PolicyState.ACTIVE


@dataclass(slots=True)
class Oracle:
    address: str
    fee: int
    indexes: Tuple[int, int, int]


@dataclass(slots=True)
class StatusRequest:
    index: int
    airline: str
    flight_code: str
    timestamp: int
    requester: str
    resolved: bool = False
    status_code: Optional[StatusCode] = None
    votes: List[Tuple[str, int]] = field(default_factory=list)


@dataclass(slots=True)
class Event:
    """One record of the append-only event log."""

    seq: int
    name: str
    actor: str
    args: Dict[str, Any]
    created_at: str


@dataclass(slots=True)
class Receipt:
    """Outcome of a committed transaction: its return value and events."""

    value: Any
    events: List[Event]

    @property
    def event_names(self) -> List[str]:
        return [ev.name for ev in self.events]


__all__ = [
    "AirlineState",
    "StatusCode",
    "PolicyState",
    "Airline",
    "Flight",
    "Policy",
    "Oracle",
    "StatusRequest",
    "Event",
    "Receipt",
]
