from blockguess.services.round_lifecycle_service import (
    RoundLifecycleManager,
    InvalidDurationError,
    InvalidBlockNumberError,
    InvalidGuessValueError,
    InvalidTxCountError,
    InvalidPrizeConfigError,
    RoundNotFoundError,
    RoundNotOpenError,
    RoundExpiredError,
    DuplicateGuessError,
    RoundAlreadyOpenError,
    RoundAlreadyFinishedError,
)
from blockguess.services.block_data_client import (
    BlockDataSource,
    MempoolBlockDataClient,
)
from blockguess.services.winner_resolution_service import (
    WinnerResolutionEngine,
    NO_WINNER,
    select_winner,
)
from blockguess.services.chat_feed_service import ChatFeed
from blockguess.services.identity_service import IdentityService
from blockguess.services.game_session import GameSession

__all__ = [
    "RoundLifecycleManager",
    "InvalidDurationError",
    "InvalidBlockNumberError",
    "InvalidGuessValueError",
    "InvalidTxCountError",
    "InvalidPrizeConfigError",
    "RoundNotFoundError",
    "RoundNotOpenError",
    "RoundExpiredError",
    "DuplicateGuessError",
    "RoundAlreadyOpenError",
    "RoundAlreadyFinishedError",
    "BlockDataSource",
    "MempoolBlockDataClient",
    "WinnerResolutionEngine",
    "NO_WINNER",
    "select_winner",
    "ChatFeed",
    "IdentityService",
    "GameSession",
]
