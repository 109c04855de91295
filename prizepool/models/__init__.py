from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .ledger import AccountBalance, TwabCheckpoint, Twab  # noqa: F401
from .ring import RingBufferCursor  # noqa: F401
from .draw import Draw, DrawClockState  # noqa: F401
from .prize import PrizeDistribution  # noqa: F401
from .picks import PickAllocation, PickClaim  # noqa: F401
from .venue import YieldSourceTransaction  # noqa: F401

__all__ = [
    "Base",
    "AccountBalance",
    "TwabCheckpoint",
    "Twab",
    "RingBufferCursor",
    "Draw",
    "DrawClockState",
    "PrizeDistribution",
    "PickAllocation",
    "PickClaim",
    "YieldSourceTransaction",
]
