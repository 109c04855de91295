"""Column types for unsigned integers wider than the database's native ones."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator


U128_MAX = (1 << 128) - 1
U256_MAX = (1 << 256) - 1


class UnsignedInt(TypeDecorator):
    """Exact unsigned integer persisted as its decimal text.

    Balances are u128 and winning numbers u256, neither of which fits a SQL
    ``BIGINT``. Values are range-checked on the way in so that an overflow is
    caught at flush time rather than silently truncated.
    """

    impl = String(78)
    cache_ok = True

    def __init__(self, bits: int = 128, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.bits = bits

    def process_bind_param(self, value: Optional[int], dialect) -> Optional[str]:
        if value is None:
            return None
        value = int(value)
        if value < 0 or value >= (1 << self.bits):
            raise ValueError(f"value {value} does not fit in u{self.bits}")
        return str(value)

    def process_result_value(self, value: Optional[str], dialect) -> Optional[int]:
        if value is None:
            return None
        return int(value)


U128 = UnsignedInt(128)
U256 = UnsignedInt(256)
