"""
Host-managed player leaderboard.
"""
import itertools
import logging
from typing import Dict, Iterator, List, Optional

from .models import Player


class Leaderboard:
    """Roster of players and their integer scores, keyed by player id."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._players: Dict[str, Player] = {}
        self._ids = itertools.count(1)

    def add(self, name: str) -> Optional[Player]:
        """
        Add a player with score 0.

        Args:
            name: Display name; surrounding whitespace is trimmed

        Returns:
            The new Player, or None if the trimmed name is empty
        """
        name = (name or "").strip()
        if not name:
            return None

        player = Player(id=f"p{next(self._ids)}", name=name, score=0)
        self._players[player.id] = player
        self.logger.info(f"Added player {player.id} '{name}'")
        return player

    def bump(self, player_id: str, delta: int) -> bool:
        """Add delta to a player's score. Scores are not clamped."""
        player = self._players.get(player_id)
        if player is None or isinstance(delta, bool) or not isinstance(delta, int):
            return False
        player.score += delta
        self.logger.debug(f"Player {player_id} score {delta:+d} -> {player.score}")
        return True

    def rename(self, player_id: str, name: str) -> bool:
        """Replace a player's display name verbatim."""
        player = self._players.get(player_id)
        if player is None:
            return False
        player.name = name
        return True

    def remove(self, player_id: str) -> bool:
        if self._players.pop(player_id, None) is None:
            return False
        self.logger.info(f"Removed player {player_id}")
        return True

    def get(self, player_id: str) -> Optional[Player]:
        return self._players.get(player_id)

    def display_order(self) -> List[Player]:
        """
        Players by score descending.

        Equal scores keep the order in which the players were added.
        """
        return sorted(self._players.values(), key=lambda p: -p.score)

    def __len__(self) -> int:
        return len(self._players)

    def __iter__(self) -> Iterator[Player]:
        return iter(list(self._players.values()))
