"""
Session controller for the Face-Off Stage.
Owns the session state machine: active set, round order, position,
pause/reveal flags and the question countdown.
"""
import asyncio
import dataclasses
import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional

from .models import Bank, Cue, Phase, Problem, ProblemSet, ReorderKind, SessionState
from .stage_engine import CountdownTimer, identity_order, shuffle_order


MIN_QUESTION_TIME = 5
MIN_ROUNDS = 1


def coerce_int(value: Any) -> Optional[int]:
    """
    Interpret host input as an integer.

    Accepts ints, integral floats and strings holding either. Returns None
    for anything else, including booleans and fractional values.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return int(number) if number.is_integer() else None
    return None


class SessionController:
    """
    Explicit state machine driving the stage.

    Every host intent maps to one transition method. A transition returns
    True when it changed the session and False when the input was ignored.
    Transitions that touch phase, paused or the question time re-arm the
    countdown so that exactly one decrement is pending while it may run.
    """

    def __init__(
        self,
        question_time: int = 45,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        tick_interval: float = 1.0,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the session controller.

        Args:
            question_time: Seconds per question (clamped to at least 5)
            loop: Event loop for the countdown; None means ticks are driven
                by calling tick()
            tick_interval: Seconds between countdown decrements
            rng: Optional random source for shuffling
        """
        self.logger = logging.getLogger(__name__)
        question_time = max(MIN_QUESTION_TIME, question_time)

        self._bank = Bank()
        self._rng = rng
        self._state = SessionState(
            question_time_seconds=question_time,
            time_left=question_time
        )
        self._cue_listeners: List[Callable[[Cue], Any]] = []
        self.timer = CountdownTimer(self._state, self._emit, loop=loop, interval=tick_interval)

        self.logger.info("SessionController initialized")

    # Read projection

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def bank(self) -> Bank:
        return self._bank

    @property
    def active_set(self) -> Optional[ProblemSet]:
        return self._bank.get_set(self._state.active_set_index)

    @property
    def effective_rounds(self) -> int:
        return self._state.effective_rounds

    def snapshot(self) -> SessionState:
        """Detached copy of the session state for presentation."""
        return dataclasses.replace(self._state, order=list(self._state.order))

    def current_problem(self) -> Optional[Problem]:
        """Problem at the current position of the round order."""
        problem_set = self.active_set
        order = self._state.order
        if problem_set is None or not 0 <= self._state.current_index < len(order):
            return None
        problem_index = order[self._state.current_index]
        if not 0 <= problem_index < len(problem_set.problems):
            return None
        return problem_set.problems[problem_index]

    def current_image_url(self) -> Optional[str]:
        problem = self.current_problem()
        if problem is None:
            return None
        return self._bank.resolve_image(problem.image)

    def get_progress(self) -> Dict[str, Any]:
        """Summary of the session used by the host surface."""
        problem_set = self.active_set
        state = self._state
        return {
            'set_name': problem_set.name if problem_set else None,
            'set_size': len(problem_set.problems) if problem_set else 0,
            'round': min(state.current_index + 1, state.total_rounds),
            'total_rounds': state.total_rounds,
            'effective_rounds': state.effective_rounds,
            'phase': state.phase.value,
            'paused': state.paused,
            'revealed': state.revealed,
            'time_left': state.time_left,
            'question_time': state.question_time_seconds
        }

    # Cue notifications

    def add_cue_listener(self, listener: Callable[[Cue], Any]) -> None:
        self._cue_listeners.append(listener)

    def remove_cue_listener(self, listener: Callable[[Cue], Any]) -> None:
        if listener in self._cue_listeners:
            self._cue_listeners.remove(listener)

    def _emit(self, cue: Cue) -> None:
        for listener in list(self._cue_listeners):
            try:
                listener(cue)
            except Exception as e:
                self.logger.error(
                    f"Cue listener failed for {cue.value}: {e}",
                    exc_info=True,
                    extra={'event_type': 'cue_listener_error', 'cue': cue.value}
                )

    # Bank and clock

    def load_bank(self, bank: Bank) -> None:
        """Replace the bank wholesale and select its first set."""
        self._bank = bank
        self.logger.info(f"Bank replaced with {len(bank.sets)} sets")
        self._select_set(0)

    def tick(self) -> Optional[Cue]:
        """Advance the countdown by one step."""
        return self.timer.tick()

    def close(self) -> None:
        self.timer.cancel()

    # Transitions

    def start(self) -> bool:
        """Begin the round at the first position of the order."""
        problem_set = self.active_set
        if problem_set is None or not problem_set.problems or self.effective_rounds < 1:
            self._log_ignored("start", "no problems in the active set")
            return False

        self._enter_question(0)
        self.logger.info(
            f"Session started on '{problem_set.name}' with {self.effective_rounds} rounds",
            extra={'event_type': 'session_started', 'timestamp': time.time()}
        )
        return True

    def next(self) -> bool:
        """Advance to the next question, or end the session after the last one."""
        state = self._state
        if state.phase is not Phase.ACTIVE:
            self._log_ignored("next", "session is idle")
            return False

        if state.current_index + 1 >= self.effective_rounds:
            self._enter_idle()
            self.logger.info(
                "Session completed",
                extra={'event_type': 'session_completed', 'timestamp': time.time()}
            )
            return True

        self._enter_question(state.current_index + 1)
        return True

    def goto(self, number: Any) -> bool:
        """Jump to the 1-based question number and make the session active."""
        n = coerce_int(number)
        if n is None or not 1 <= n <= self.effective_rounds:
            self._log_ignored("goto", f"invalid question number {number!r}")
            return False

        self._enter_question(n - 1)
        return True

    def toggle_reveal(self) -> bool:
        self._state.revealed = not self._state.revealed
        return True

    def toggle_pause(self) -> bool:
        self._state.paused = not self._state.paused
        self.logger.info(f"Session {'paused' if self._state.paused else 'resumed'}")
        self.timer.rearm()
        return True

    def reset_timer(self) -> bool:
        self.timer.reset()
        return True

    def home(self) -> bool:
        """Leave the question display; the position is kept."""
        self._enter_idle()
        return True

    def change_active_set(self, index: Any) -> bool:
        i = coerce_int(index)
        if i is None or self._bank.get_set(i) is None:
            self._log_ignored("change_active_set", f"no set at index {index!r}")
            return False
        self._select_set(i)
        return True

    def change_question_time(self, seconds: Any) -> bool:
        t = coerce_int(seconds)
        if t is None:
            self._log_ignored("change_question_time", f"not a number: {seconds!r}")
            return False

        t = max(MIN_QUESTION_TIME, t)
        self._state.question_time_seconds = t
        self.timer.arm(t)
        self.logger.info(f"Question time set to {t} seconds")
        return True

    def change_rounds(self, rounds: Any) -> bool:
        r = coerce_int(rounds)
        if r is None:
            self._log_ignored("change_rounds", f"not a number: {rounds!r}")
            return False

        self._state.total_rounds = max(MIN_ROUNDS, r)
        return True

    def reorder(self, kind: Any) -> bool:
        """
        Replace the round order with a fresh shuffle or the file order.

        Refused while a question is on display, since it would change which
        problem the current position points to.
        """
        try:
            kind = ReorderKind(kind)
        except ValueError:
            self._log_ignored("reorder", f"unknown order kind {kind!r}")
            return False

        if self._state.phase is Phase.ACTIVE:
            self.logger.warning("Reorder refused while a question is active")
            return False

        problem_set = self.active_set
        size = len(problem_set.problems) if problem_set else 0
        if kind is ReorderKind.SHUFFLE:
            self._state.order = shuffle_order(size, self._rng)
        else:
            self._state.order = identity_order(size)
        self.logger.info(f"Order replaced ({kind.value}) for {size} problems")
        return True

    # Internal helpers

    def _select_set(self, index: int) -> None:
        state = self._state
        problem_set = self._bank.get_set(index)
        size = len(problem_set.problems) if problem_set else 0

        state.active_set_index = index
        state.total_rounds = max(MIN_ROUNDS, size)
        state.order = shuffle_order(size, self._rng)
        state.current_index = 0
        state.phase = Phase.IDLE
        state.revealed = False
        state.paused = False
        self.timer.arm(state.question_time_seconds)
        self.logger.info(f"Active set changed to {index} ({size} problems)")

    def _enter_question(self, index: int) -> None:
        state = self._state
        state.current_index = index
        state.phase = Phase.ACTIVE
        state.revealed = False
        state.paused = False
        self.timer.arm(state.question_time_seconds)
        self._emit(Cue.START)
        self.logger.debug(f"Showing question {index + 1}/{self.effective_rounds}")

    def _enter_idle(self) -> None:
        state = self._state
        state.phase = Phase.IDLE
        state.revealed = False
        state.paused = False
        self.timer.arm(state.question_time_seconds)

    def _log_ignored(self, transition: str, reason: str) -> None:
        self.logger.debug(
            f"Ignored {transition}: {reason}",
            extra={'event_type': 'transition_ignored', 'transition': transition}
        )
