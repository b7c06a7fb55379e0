"""Keyword commands and order-code recognition."""

from enum import Enum
import re
import unicodedata
from typing import Optional, Pattern


class Command(str, Enum):
    RESET = "reset"
    MENU = "menu"
    STATUS = "status"


COMMANDS = {
    Command.RESET: {"/reset", "リセット", "reset"},
    Command.MENU: {"/menu", "メニュー", "help", "？", "?"},
    Command.STATUS: {"/status", "プラン確認", "status"},
}

AUTH_KEYWORDS = ("認証", "authenticate", "auth")


def match_command(text: str) -> Optional[Command]:
    normalized = text.strip()
    lowered = normalized.lower()
    for command, keywords in COMMANDS.items():
        if normalized in keywords or lowered in keywords:
            return command
    return None


def build_order_code_pattern(prefix: str = "ST", numeric_length: int = 10) -> Pattern[str]:
    keywords = "|".join(re.escape(k) for k in AUTH_KEYWORDS)
    alternatives = [rf"\d{{{numeric_length}}}"]
    if prefix:
        # at least one digit, so words like "STRENGTH" stay chat text
        alternatives.insert(0, rf"{re.escape(prefix)}(?=[A-Z0-9]*\d)[A-Z0-9]{{6,20}}")
    return re.compile(
        rf"^(?:(?:{keywords})\s*[:：]?\s*)?#?(?P<code>{'|'.join(alternatives)})$",
        re.IGNORECASE,
    )


def extract_order_code(text: str, pattern: Pattern[str]) -> Optional[str]:
    """Return the upper-cased order code when the whole message is one."""
    # NFKC folds full-width digits/letters typed on Japanese keyboards.
    normalized = unicodedata.normalize("NFKC", text).strip()
    match = pattern.match(normalized)
    if not match:
        return None
    return match.group("code").upper()
