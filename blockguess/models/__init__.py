from blockguess.models.base import BaseRecord
from blockguess.models.round import Round, RoundStatus
from blockguess.models.guess import Guess
from blockguess.models.chat_message import ChatMessage, ChatMessageKind, GLOBAL_CHANNEL
from blockguess.models.log_event import LogEvent
from blockguess.models.prize_config import PrizeConfig
from blockguess.models.user import User

__all__ = [
    "BaseRecord",
    "Round",
    "RoundStatus",
    "Guess",
    "ChatMessage",
    "ChatMessageKind",
    "GLOBAL_CHANNEL",
    "LogEvent",
    "PrizeConfig",
    "User",
]
