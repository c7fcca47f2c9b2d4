"""Lock-guarded game sessions held by the game server."""

import logging
import random
import threading
import uuid
from collections import OrderedDict
from typing import Dict, Optional, Tuple

import board_rules
from board_rules import GameState

logger = logging.getLogger(__name__)


class UnknownGameError(KeyError):
    """Raised when a session id is not held by the store."""


class GameSession:
    """One active game plus the lock that serializes moves on it."""

    def __init__(self, game_id: str, rng=None):
        self.game_id = game_id
        self.lock = threading.Lock()
        self.rng = rng if rng is not None else random.Random()
        self.state: GameState = board_rules.init_game(self.rng)

    def new_game(self) -> GameState:
        with self.lock:
            self.state = board_rules.init_game(self.rng)
            return self.state

    def move(self, direction) -> Tuple[GameState, bool]:
        """Apply ``direction`` and report whether the board changed."""
        with self.lock:
            previous = self.state
            self.state = board_rules.move(previous, direction, self.rng)
            return self.state, self.state is not previous

    def snapshot(self) -> Dict:
        with self.lock:
            payload = self.state.to_dict()
            payload["id"] = self.game_id
            return payload


class SessionStore:
    """Active sessions in creation order, capped at ``max_sessions``.

    Creating a session beyond the cap evicts the oldest one.
    """

    def __init__(self, seed: Optional[int] = None, max_sessions: Optional[int] = None):
        if max_sessions is not None and max_sessions < 1:
            raise ValueError(f"max_sessions must be positive, got {max_sessions}")
        self.lock = threading.RLock()
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, GameSession]" = OrderedDict()
        # Session generators are derived from this one, so a fixed seed
        # replays the same games in creation order.
        self._seeder = random.Random(seed)

    def create(self) -> GameSession:
        with self.lock:
            game_id = uuid.uuid4().hex
            rng = random.Random(self._seeder.getrandbits(64))
            session = GameSession(game_id, rng)
            self._sessions[game_id] = session
            evicted = []
            while self.max_sessions is not None and len(self._sessions) > self.max_sessions:
                evicted.append(self._sessions.popitem(last=False)[0])
        for old_id in evicted:
            logger.info("Evicted game %s", old_id)
        logger.info("Started game %s", game_id)
        return session

    def get(self, game_id: str) -> GameSession:
        with self.lock:
            try:
                return self._sessions[game_id]
            except KeyError:
                raise UnknownGameError(game_id) from None

    def discard(self, game_id: str) -> None:
        with self.lock:
            if self._sessions.pop(game_id, None) is None:
                raise UnknownGameError(game_id)
        logger.info("Removed game %s", game_id)

    def __len__(self) -> int:
        with self.lock:
            return len(self._sessions)


__all__ = ["GameSession", "SessionStore", "UnknownGameError"]
