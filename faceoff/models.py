"""
Core data models for the Face-Off Stage.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union
from urllib.parse import urljoin


def stringify_value(value) -> str:
    """Render a JSON scalar the way the stage displays it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class Problem:
    """A single question/answer unit within a problem set."""
    id: int
    question: str
    answer: Union[str, int, float]
    image: str = ""

    @property
    def answer_text(self) -> str:
        return stringify_value(self.answer)


@dataclass(frozen=True)
class ProblemSet:
    """Named, ordered collection of problems."""
    name: str
    problems: Tuple[Problem, ...] = ()


@dataclass(frozen=True)
class Bank:
    """All problem sets loaded from one manifest."""
    sets: Tuple[ProblemSet, ...] = ()
    source_url: str = ""

    def get_set(self, index: int) -> Optional[ProblemSet]:
        if 0 <= index < len(self.sets):
            return self.sets[index]
        return None

    def resolve_image(self, image: str) -> Optional[str]:
        """
        Resolve an image path for display.

        Paths are resolved against the manifest URL, not the URL of the set
        file that declared them.
        """
        if not image:
            return None
        if not self.source_url:
            return image
        return urljoin(self.source_url, image)


class Phase(Enum):
    """Session phases."""
    IDLE = "idle"
    ACTIVE = "active"


class Cue(Enum):
    """Notifications for the audio collaborator."""
    TICK = "tick"
    START = "start"
    END = "end"


class ReorderKind(Enum):
    SHUFFLE = "shuffle"
    IN_ORDER = "in_order"


@dataclass
class SessionState:
    """Mutable state of the stage session."""
    active_set_index: int = 0
    order: List[int] = field(default_factory=list)
    current_index: int = 0
    total_rounds: int = 1
    question_time_seconds: int = 45
    phase: Phase = Phase.IDLE
    paused: bool = False
    revealed: bool = False
    time_left: int = 45

    @property
    def effective_rounds(self) -> int:
        return min(self.total_rounds, len(self.order))


@dataclass
class Player:
    """A leaderboard entry managed by the host."""
    id: str
    name: str
    score: int = 0
