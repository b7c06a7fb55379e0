"""
Chat service: history + prompt + completion + fallback.

The user always gets a reply in the heading format. Quota exhaustion is
reported with a dedicated capacity message; every other completion
failure falls back to the static reading.
"""

from dataclasses import dataclass
import logging

from fortunebot.core.errors import CompletionError, CompletionQuotaError
from fortunebot.features.conversation.history import HistoryStore, trim_history
from fortunebot.features.conversation.prompts import FALLBACK_REPLY, build_messages
from fortunebot.features.llm.service import CompletionClient
from fortunebot.models.conversation import Turn


logger = logging.getLogger("fortunebot")

CAPACITY_MESSAGE = (
    "ただいま鑑定のご依頼が集中しており、順番にお受けしています🌙\n"
    "少し時間をおいてから、もう一度メッセージをお送りください。"
)


@dataclass(frozen=True)
class ChatReply:
    text: str
    generated: bool


class ChatService:
    def __init__(self, history: HistoryStore, completions: CompletionClient, context_turns: int = 6):
        self.history = history
        self.completions = completions
        self.context_turns = context_turns

    async def reply(self, user_id: str, text: str) -> ChatReply:
        turns = await self.history.load(user_id)
        turns.append(Turn(role="user", content=text))
        turns = trim_history(turns, self.history.max_turns)

        messages = build_messages(turns, self.context_turns)
        try:
            content = await self.completions.complete(messages)
            generated = True
        except CompletionQuotaError:
            await self.history.save(user_id, turns)
            return ChatReply(CAPACITY_MESSAGE, generated=False)
        except CompletionError as e:
            logger.warning(f"[chat] completion failed, using fallback: {e.message}", extra={"error_code": e.code})
            content = FALLBACK_REPLY
            generated = False

        turns.append(Turn(role="assistant", content=content))
        await self.history.save(user_id, turns)
        return ChatReply(content, generated=generated)

    async def reset(self, user_id: str) -> None:
        await self.history.clear(user_id)
