"""Prompt templates for the fortune-telling persona.

The reply contract is the heading order below; the static fallback uses
the same headings so the user-visible format holds when the model is down.
"""

from typing import Dict, List, Sequence

from fortunebot.models.conversation import Turn


PERSONA_NAME = "りゅうせい"

REQUIRED_HEADINGS = ("【結論】", "【理由】", "【アクション】", "【注意点】", "【ひとこと励まし】")

SYSTEM_PROMPT = (
    f"あなたは温かく誠実な占い師『{PERSONA_NAME}』。"
    "相談者の不安を和らげ、具体的行動を提示する。"
)

DIRECTIVE_TEMPLATE = """あなたは日本語で鑑定するプロ占い師『{persona}』。
{headings} の順で見出しを付け、{min_chars}〜{max_chars}字で答える。
断定しすぎずやさしい敬語で、実行可能な提案を必ず入れる。
医療・法律・投資の確約は禁止。相手を不安にさせる表現や、相手を責める表現は避ける。

【直近会話要約】
{transcript}

【相談内容】
{question}

【鑑定】"""

FALLBACK_REPLY = """【結論】流れは落ち着いて上向き。焦らず整えるほど成果に結びつきます。
【理由】足元を固めるほど選択の質が上がる運気。
【アクション】今日ひとつだけ「連絡／整理／メモ化」を完了。
【注意点】夜の衝動決断は回避。判断は翌朝に。
【ひとこと励まし】丁寧な一歩が未来の近道です。"""

ROLE_LABELS = {"user": "ユーザー", "assistant": "占い師"}

REPLY_MIN_CHARS = 300
REPLY_MAX_CHARS = 500


def render_transcript(history: Sequence[Turn], context_turns: int = 6) -> str:
    recent = list(history)[-context_turns:] if context_turns > 0 else []
    if not recent:
        return "（初回）"
    return "\n".join(f"{ROLE_LABELS[t.role]}：{t.content}" for t in recent)


def build_prompt(history: Sequence[Turn], context_turns: int = 6) -> str:
    """Render the directive for the newest user turn, with recent turns as context."""
    turns = list(history)
    question = turns[-1].content if turns and turns[-1].role == "user" else ""
    context = turns[:-1] if question else turns
    return DIRECTIVE_TEMPLATE.format(
        persona=PERSONA_NAME,
        headings="→".join(h.strip("【】") for h in REQUIRED_HEADINGS),
        min_chars=REPLY_MIN_CHARS,
        max_chars=REPLY_MAX_CHARS,
        transcript=render_transcript(context, context_turns),
        question=question or "（なし）",
    )


def build_messages(history: Sequence[Turn], context_turns: int = 6) -> List[Dict[str, str]]:
    """System persona + recent turns + templated directive."""
    turns = list(history)
    prior = turns[:-1] if turns and turns[-1].role == "user" else turns
    recent = prior[-context_turns:] if context_turns > 0 else []
    messages = [{"role": "system", "content": SYSTEM_PROMPT}]
    messages.extend({"role": t.role, "content": t.content} for t in recent)
    messages.append({"role": "user", "content": build_prompt(turns, context_turns)})
    return messages
