"""
Stage engine core logic for the Face-Off Stage.
Handles question ordering and the per-question countdown.
"""
import random
import asyncio
import logging
import time
from typing import List, Optional, Callable, Any

from .models import Cue, Phase, SessionState

# Set up logger for timer operations
logger = logging.getLogger(__name__)


def shuffle_order(n: int, rng: random.Random = None) -> List[int]:
    """
    Produce a uniformly random permutation of range(n).

    Fisher-Yates: for i from n-1 down to 1, swap position i with a
    position drawn from [0, i].

    Args:
        n: Number of problems in the active set
        rng: Optional random source, defaults to the module-level generator

    Returns:
        New list holding a permutation of 0..n-1
    """
    rng = rng or random
    order = identity_order(n)
    for i in range(len(order) - 1, 0, -1):
        j = rng.randint(0, i)
        order[i], order[j] = order[j], order[i]
    return order


def identity_order(n: int) -> List[int]:
    """Return [0, 1, ..., n-1]."""
    return list(range(max(0, n)))


class TimerLifecycleLogger:
    """Structured logging for countdown lifecycle events."""

    @staticmethod
    def log_timer_armed(stage_id: str, time_left: int) -> None:
        logger.debug(
            f"Timer lifecycle: ARMED - Stage {stage_id}, {time_left}s left",
            extra={
                'event_type': 'timer_armed',
                'stage_id': stage_id,
                'time_left': time_left,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(stage_id: str, time_left: int, total_duration: int) -> None:
        """Log countdown ticks (throttled to avoid spam)."""
        if time_left % 10 == 0 or time_left <= 5:
            logger.debug(
                f"Timer lifecycle: UPDATE - Stage {stage_id}, Remaining {time_left}s of {total_duration}s",
                extra={
                    'event_type': 'timer_update',
                    'stage_id': stage_id,
                    'time_left': time_left,
                    'total_duration': total_duration,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_expired(stage_id: str, total_duration: int) -> None:
        logger.info(
            f"Timer lifecycle: EXPIRED - Stage {stage_id}, Duration {total_duration}s",
            extra={
                'event_type': 'timer_expired',
                'stage_id': stage_id,
                'total_duration': total_duration,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(stage_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.debug(
            f"Timer lifecycle: STATE_TRANSITION - Stage {stage_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'stage_id': stage_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )


class CountdownTimer:
    """
    Cancellable countdown bound to a SessionState.

    At most one pending decrement exists at any time. Every call to
    rearm() cancels the pending decrement first and schedules a new one
    only while the session is Active, not paused and time is left.

    Without an event loop the timer is clocked by the caller through tick().
    """

    TICK_WINDOW = 5

    def __init__(
        self,
        state: SessionState,
        on_cue: Callable[[Cue], Any],
        loop: Optional[asyncio.AbstractEventLoop] = None,
        interval: float = 1.0,
        stage_id: str = "stage"
    ):
        self._state = state
        self._on_cue = on_cue
        self._loop = loop
        self._task: Optional[asyncio.Task] = None
        self.interval = interval
        self.stage_id = stage_id

    @property
    def eligible(self) -> bool:
        """True while the countdown is allowed to advance."""
        return self._state.phase is Phase.ACTIVE and not self._state.paused

    @property
    def has_pending(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def time_left(self) -> int:
        return self._state.time_left

    def arm(self, deadline: int) -> None:
        """Set time_left to deadline and schedule one pending decrement."""
        self._state.time_left = deadline
        TimerLifecycleLogger.log_timer_armed(self.stage_id, deadline)
        self.rearm()

    def reset(self) -> None:
        """Restore time_left to the configured question time."""
        self.arm(self._state.question_time_seconds)

    def cancel(self) -> None:
        """Cancel the pending decrement, keeping time_left as is."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def rearm(self) -> None:
        """Cancel any pending decrement and schedule one if still eligible."""
        self.cancel()
        if self._loop is None:
            return
        if not self.eligible or self._state.time_left <= 0:
            TimerLifecycleLogger.log_timer_state_transition(
                self.stage_id,
                "armed",
                "idle",
                "paused" if self._state.paused else f"phase={self._state.phase.value}, left={self._state.time_left}"
            )
            return
        self._task = self._loop.create_task(self._pending_decrement())

    async def _pending_decrement(self) -> None:
        try:
            await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            TimerLifecycleLogger.log_timer_state_transition(
                self.stage_id, "pending", "cancelled", "rearm or stop"
            )
            raise
        self._task = None
        self.tick()

    def tick(self) -> Optional[Cue]:
        """
        Perform one countdown step.

        Returns:
            The cue emitted by this step, if any
        """
        if not self.eligible or self._state.time_left <= 0:
            return None

        self._state.time_left -= 1
        remaining = self._state.time_left
        TimerLifecycleLogger.log_timer_update(
            self.stage_id, remaining, self._state.question_time_seconds
        )

        cue = None
        if 0 < remaining <= self.TICK_WINDOW:
            cue = Cue.TICK
        elif remaining == 0:
            cue = Cue.END
            TimerLifecycleLogger.log_timer_expired(
                self.stage_id, self._state.question_time_seconds
            )

        if cue is not None:
            self._on_cue(cue)

        self.rearm()
        return cue
