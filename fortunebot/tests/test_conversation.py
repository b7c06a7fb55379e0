"""History cap, prompt rendering and chat fallback behaviour."""

import pytest

from fortunebot.core.errors import CompletionError, CompletionQuotaError
from fortunebot.features.conversation.history import HistoryStore, trim_history
from fortunebot.features.conversation.prompts import (
    FALLBACK_REPLY,
    REQUIRED_HEADINGS,
    SYSTEM_PROMPT,
    build_messages,
    build_prompt,
)
from fortunebot.features.conversation.service import CAPACITY_MESSAGE, ChatService
from fortunebot.models.conversation import Turn
from fortunebot.tests.mocks import FakeCompletionClient


def turns(n):
    return [Turn(role="user" if i % 2 == 0 else "assistant", content=f"m{i}") for i in range(n)]


def test_trim_history_keeps_newest():
    trimmed = trim_history(turns(15), 12)
    assert len(trimmed) == 12
    assert trimmed[0].content == "m3"
    assert trimmed[-1].content == "m14"


@pytest.mark.asyncio
async def test_history_never_exceeds_cap(json_store):
    store = HistoryStore(json_store, max_turns=4)
    for i in range(10):
        saved = await store.append("user-a", Turn(role="user", content=f"q{i}"))
        assert len(saved) <= 4
    loaded = await store.load("user-a")
    assert [t.content for t in loaded] == ["q6", "q7", "q8", "q9"]


@pytest.mark.asyncio
async def test_unreadable_history_is_discarded(json_store):
    await json_store.set_raw("history:user-a", "{not json")
    assert await HistoryStore(json_store).load("user-a") == []


@pytest.mark.asyncio
async def test_clear_history(json_store):
    store = HistoryStore(json_store)
    await store.append("user-a", Turn(role="user", content="hello"))
    await store.clear("user-a")
    assert await store.load("user-a") == []


def test_first_prompt_marks_first_session():
    prompt = build_prompt([Turn(role="user", content="恋愛運は？")])
    assert "（初回）" in prompt
    assert "恋愛運は？" in prompt
    for heading in REQUIRED_HEADINGS:
        assert heading.strip("【】") in prompt
    assert "300〜500字" in prompt


def test_prompt_uses_only_recent_context():
    history = turns(11) + [Turn(role="user", content="仕事運は？")]
    prompt = build_prompt(history, context_turns=6)
    assert "m5" in prompt and "m10" in prompt
    assert "m4" not in prompt


def test_build_messages_shape():
    history = turns(4) + [Turn(role="user", content="金運は？")]
    messages = build_messages(history, context_turns=2)
    assert messages[0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert [m["content"] for m in messages[1:3]] == ["m2", "m3"]
    assert messages[-1]["role"] == "user"
    assert "金運は？" in messages[-1]["content"]
    assert len(messages) == 4


def test_fallback_reply_has_every_heading():
    for heading in REQUIRED_HEADINGS:
        assert heading in FALLBACK_REPLY


@pytest.mark.asyncio
async def test_reply_persists_both_turns(chat, history, completions):
    result = await chat.reply("user-a", "今日の運勢は？")
    assert result.generated is True
    assert result.text == completions.reply
    saved = await history.load("user-a")
    assert [(t.role, t.content) for t in saved] == [("user", "今日の運勢は？"), ("assistant", completions.reply)]


@pytest.mark.asyncio
async def test_completion_failure_uses_fallback(history):
    chat = ChatService(history, FakeCompletionClient(error=CompletionError("Completion API returned 500")))
    result = await chat.reply("user-a", "今日の運勢は？")
    assert result.generated is False
    assert result.text == FALLBACK_REPLY
    saved = await history.load("user-a")
    assert saved[-1].content == FALLBACK_REPLY


@pytest.mark.asyncio
async def test_quota_returns_capacity_message_without_storing_it(history):
    chat = ChatService(history, FakeCompletionClient(error=CompletionQuotaError("Completion API rate limited: 429")))
    result = await chat.reply("user-a", "今日の運勢は？")
    assert result.generated is False
    assert result.text == CAPACITY_MESSAGE
    saved = await history.load("user-a")
    assert [t.role for t in saved] == ["user"]


@pytest.mark.asyncio
async def test_reset_only_clears_history(chat, history):
    await chat.reply("user-a", "hello")
    await chat.reset("user-a")
    assert await history.load("user-a") == []
