"""
fortunebot/models/conversation.py

Conversation turns kept per user for short-term completion context.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict


class Turn(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str
