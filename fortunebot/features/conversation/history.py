"""Bounded per-user conversation history (FIFO)."""

import logging
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from fortunebot.features.store.service import JsonStore, history_key
from fortunebot.models.conversation import Turn


logger = logging.getLogger("fortunebot")

_TURNS = TypeAdapter(List[Turn])


def trim_history(turns: List[Turn], max_turns: int) -> List[Turn]:
    """Drop the oldest turns until at most max_turns remain."""
    if max_turns <= 0:
        return []
    if len(turns) <= max_turns:
        return list(turns)
    return list(turns[-max_turns:])


class HistoryStore:
    def __init__(self, store: JsonStore, max_turns: int = 12, ttl: Optional[int] = 30 * 24 * 3600):
        self.store = store
        self.max_turns = max_turns
        self.ttl = ttl

    async def load(self, user_id: str) -> List[Turn]:
        raw = await self.store.get_raw(history_key(user_id))
        if not raw:
            return []
        try:
            return _TURNS.validate_json(raw)
        except PydanticValidationError:
            logger.warning("[history] discarding unreadable history")
            return []

    async def save(self, user_id: str, turns: List[Turn]) -> List[Turn]:
        trimmed = trim_history(turns, self.max_turns)
        await self.store.set_raw(history_key(user_id), _TURNS.dump_json(trimmed).decode("utf-8"), ex=self.ttl)
        return trimmed

    async def append(self, user_id: str, turn: Turn) -> List[Turn]:
        turns = await self.load(user_id)
        turns.append(turn)
        return await self.save(user_id, turns)

    async def clear(self, user_id: str) -> None:
        await self.store.delete(history_key(user_id))
