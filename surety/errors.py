from __future__ import annotations


class SuretyError(RuntimeError):
    """Operation rejected; the enclosing ledger transaction is rolled back."""


# Capability
class Unauthorized(SuretyError):
    pass


class NotOperational(SuretyError):
    pass


# Value constraints
class InvalidAmount(SuretyError):
    pass


class InsufficientFunds(SuretyError):
    pass


class InsufficientFee(SuretyError):
    pass


class ExceedsCap(SuretyError):
    pass


class InvalidStatusCode(SuretyError):
    pass


# Idempotency
class DuplicateVote(SuretyError):
    pass


class DuplicatePolicy(SuretyError):
    pass


class AlreadyFunded(SuretyError):
    pass


class AlreadyClaimed(SuretyError):
    pass


class AlreadyRegistered(SuretyError):
    pass


# Preconditions
class NotAnOracle(SuretyError):
    pass


class NotRegistered(SuretyError):
    pass


class IndexMismatch(SuretyError):
    pass


class NoSuchRequest(SuretyError):
    pass


class NotYetLate(SuretyError):
    pass


class PolicyNotFound(SuretyError):
    pass


class NothingToWithdraw(SuretyError):
    pass


class UnknownFlight(SuretyError):
    pass


__all__ = [
    "SuretyError",
    "Unauthorized",
    "NotOperational",
    "InvalidAmount",
    "InsufficientFunds",
    "InsufficientFee",
    "ExceedsCap",
    "InvalidStatusCode",
    "DuplicateVote",
    "DuplicatePolicy",
    "AlreadyFunded",
    "AlreadyClaimed",
    "AlreadyRegistered",
    "NotAnOracle",
    "NotRegistered",
    "IndexMismatch",
    "NoSuchRequest",
    "NotYetLate",
    "PolicyNotFound",
    "NothingToWithdraw",
    "UnknownFlight",
]
