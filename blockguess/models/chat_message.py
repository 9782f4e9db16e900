"""Chat message record."""
from datetime import datetime
from enum import Enum
from typing import Optional

from blockguess.models.base import BaseRecord

# Round id used for messages that belong to every round
GLOBAL_CHANNEL = "global"


class ChatMessageKind(str, Enum):
    CHAT = "chat"
    GUESS = "guess"
    SYSTEM = "system"
    WINNER = "winner"


class ChatMessage(BaseRecord):
    """A message in a round channel or the global channel."""

    round_id: str = GLOBAL_CHANNEL
    user_id: str
    display_name: str
    message: str
    avatar_url: Optional[str] = None
    timestamp: datetime
    kind: ChatMessageKind = ChatMessageKind.CHAT
