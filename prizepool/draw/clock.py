"""Epoch-gated state machine producing one draw per duration window."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol

from sqlalchemy.orm import Session

from .winning_number import derive_winning_number, random_seed
from ..errors import DrawNotFoundError, DrawProviderError
from ..models.draw import Draw, DrawClockState
from ..ring_buffer import RingBuffer
from ..settings import DEFAULT_SETTINGS, PoolSettings

logger = logging.getLogger(__name__)


class DrawProvider(Protocol):
    """Anything able to return a completed draw by id."""

    def get_draw(self, draw_id: int) -> Draw: ...


def fetch_draw(draw_provider: DrawProvider, draw_id: int) -> Draw:
    """Fetch a completed draw, translating provider failures.

    Raises
    ------
    DrawProviderError
        If the provider itself fails.
    DrawNotFoundError
        If the provider answers with the zero-valued draw.
    """

    try:
        draw = draw_provider.get_draw(draw_id)
    except Exception as e:
        logger.error(f"Error occurred while fetching draw {draw_id}: {e}")
        raise DrawProviderError(f"Failed to fetch draw {draw_id}: {e}") from e
    if draw is None or draw.is_default:
        raise DrawNotFoundError(f"Draw {draw_id} is unknown or no longer retained")
    return draw


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class DrawClock:
    """Draw lifecycle: ``Idle -> start_draw -> Open -> complete_draw -> Idle``.

    There is one clock per database: every instance reads and advances the
    same persisted state and draw buffer.

    Both transitions are silent no-ops when their precondition does not hold;
    callers use :meth:`can_start` / :meth:`can_complete` (or the return
    values) to tell "nothing happened" apart from success.
    """

    def __init__(
        self,
        session: Session,
        *,
        epoch_source: Callable[[], int],
        time_source: Optional[Callable[[], int]] = None,
        randomness: Optional[Callable[[], bytes]] = None,
        settings: Optional[PoolSettings] = None,
    ) -> None:
        """Create a draw clock bound to a SQLAlchemy session.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session holding the clock state and draw buffer.
        epoch_source : Callable[[], int]
            Returns the current coarse platform epoch height.
        time_source : Optional[Callable[[], int]], default: None
            Returns the current time in milliseconds. Defaults to the wall clock.
        randomness : Optional[Callable[[], bytes]], default: None
            Returns a fresh 32-byte unpredictable seed. Defaults to
            :func:`secrets.token_bytes`.
        settings : Optional[PoolSettings], default: None
            Draw duration and buffer capacity. Defaults to :data:`DEFAULT_SETTINGS`.
        """

        self._session = session
        self._epoch_source = epoch_source
        self._time_source = time_source or _now_ms
        self._randomness = randomness or random_seed
        self._settings = settings or DEFAULT_SETTINGS
        self._draws: RingBuffer[Draw] = RingBuffer(
            session,
            Draw,
            self._settings.draw_buffer_capacity,
        )

    def _state(self) -> DrawClockState:
        return DrawClockState.load(self._session)

    @property
    def current_draw_id(self) -> int:
        """Id of the open draw, or of the last completed one when idle."""
        return self._state().current_draw_id

    @property
    def is_open(self) -> bool:
        return self._state().is_started

    def can_start(self) -> bool:
        return not self._state().is_started

    def can_complete(self) -> bool:
        state = self._state()
        return state.is_started and self._epoch_source() >= (
            state.last_epoch_started + self._settings.draw_duration_epochs
        )

    def start_draw(self) -> Optional[int]:
        """Open a new draw window.

        Returns
        -------
        Optional[int]
            The new draw id, or ``None`` when a draw is already open.
        """

        if not self.can_start():
            logger.debug("start_draw ignored: draw %d is still open", self.current_draw_id)
            return None

        state = self._state()
        state.is_started = True
        state.last_epoch_started = self._epoch_source()
        state.started_at = self._time_source()
        state.current_draw_id = state.current_draw_id + 1
        self._session.flush()

        logger.info(
            "Draw %d started at epoch %d", state.current_draw_id, state.last_epoch_started
        )
        return state.current_draw_id

    def complete_draw(self) -> Optional[Draw]:
        """Close the open draw, sample its winning number and store it.

        Returns
        -------
        Optional[Draw]
            The completed draw, or ``None`` when no draw can be completed yet.
        """

        if not self.can_complete():
            logger.debug("complete_draw ignored: no draw ready for completion")
            return None

        state = self._state()
        draw = Draw(
            draw_id=state.current_draw_id,
            winning_number=derive_winning_number(self._randomness()),
            started_at=state.started_at,
            completed_at=self._time_source(),
        )
        self._draws.add(draw)

        state.is_started = False
        state.last_epoch_started = 0
        self._session.flush()

        logger.info(
            "Draw %d completed (window %d..%d)",
            draw.draw_id,
            draw.started_at,
            draw.completed_at,
        )
        return draw

    # -------- draw provider surface --------
    def get_draw(self, draw_id: int) -> Draw:
        """Return the completed draw ``draw_id``, or the zero-valued draw if unknown or evicted."""
        return self._draws.get_by_identifier(draw_id)

    def get_draws(self, from_index: int = 0, limit: Optional[int] = None) -> list[Draw]:
        """Return retained draws in buffer order."""
        return self._draws.records(from_index, limit)


__all__ = ["DrawClock", "DrawProvider", "fetch_draw"]
