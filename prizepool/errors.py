"""Exception types raised by the pool accounting and lottery engine.

Caller errors derive from :class:`ValueError` and abort the whole operation.
Failures of external collaborators derive from :class:`RuntimeError` and are
raised after any speculative local change has been rolled back.
"""

from __future__ import annotations


class InsufficientBalanceError(ValueError):
    """A withdrawal would take a balance below zero."""


class InvalidIntervalError(ValueError):
    """A timestamp interval or ordering requirement is violated."""


class DrawNotFoundError(ValueError):
    """The requested draw is unknown or has been evicted."""


class PrizeDistributionNotFoundError(ValueError):
    """No prize distribution has been generated for the draw yet."""


class InvalidDistributionParametersError(ValueError):
    """A cardinality/bit-range pair cannot describe the draw."""


class PicksNotGeneratedError(ValueError):
    """The account has no generated picks for the draw."""


class PicksAlreadyGeneratedError(ValueError):
    """Picks for the (account, draw) pair were already written."""


class InvalidPickError(ValueError):
    """The pick index is outside the account's allowance."""


class PickAlreadyClaimedError(ValueError):
    """The pick is reserved by a pending claim or was already paid out."""


class RingBufferCollisionError(ValueError):
    """A record identifier is already live in another ring-buffer slot."""


class DrawProviderError(RuntimeError):
    """The draw provider could not return a draw."""


class YieldSourceError(RuntimeError):
    """The yield source rejected or failed an operation."""


__all__ = [
    "DrawNotFoundError",
    "DrawProviderError",
    "InsufficientBalanceError",
    "InvalidDistributionParametersError",
    "InvalidIntervalError",
    "InvalidPickError",
    "PickAlreadyClaimedError",
    "PicksAlreadyGeneratedError",
    "PicksNotGeneratedError",
    "PrizeDistributionNotFoundError",
    "RingBufferCollisionError",
    "YieldSourceError",
]
