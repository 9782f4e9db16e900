"""Round lifecycle reducers.

Every state change in the game goes through ``RoundLifecycleManager``. Each
reducer checks all of its preconditions before touching a table, writes through
the connected ``TableStore`` and appends exactly one ``LogEvent`` on success.
"""
import logging
from datetime import datetime, timedelta
from threading import RLock
from typing import Callable, List, Optional

from blockguess.config import Settings, get_settings
from blockguess.models import (
    GLOBAL_CHANNEL,
    ChatMessage,
    ChatMessageKind,
    Guess,
    LogEvent,
    PrizeConfig,
    Round,
    RoundStatus,
)
from blockguess.store.connection import ConnectionManager
from blockguess.store.table_store import TableStore
from blockguess.utils.datetime_helpers import utc_now
from blockguess.utils.exceptions import PreconditionError, ValidationError

logger = logging.getLogger(__name__)


class InvalidDurationError(ValidationError):
    """Raised when a round duration is not positive."""
    pass


class InvalidBlockNumberError(ValidationError):
    """Raised when a target block number is negative."""
    pass


class InvalidGuessValueError(ValidationError):
    """Raised when a guess is negative or above the configured maximum."""

    def __init__(self, value: int, maximum: int):
        self.value = value
        self.maximum = maximum
        super().__init__(f"Guess {value} must be between 0 and {maximum}")


class InvalidTxCountError(ValidationError):
    """Raised when an observed transaction count is negative."""
    pass


class InvalidPrizeConfigError(ValidationError):
    """Raised when a prize amount is negative."""
    pass


class RoundNotFoundError(PreconditionError):
    """Raised when the round does not exist."""

    def __init__(self, round_id: int):
        self.round_id = round_id
        super().__init__(f"Round {round_id} not found")


class RoundNotOpenError(PreconditionError):
    """Raised when an action needs an open round."""

    def __init__(self, round_id: int, status: RoundStatus):
        self.round_id = round_id
        self.status = status
        super().__init__(f"Round {round_id} is not open (status={status.value})")


class RoundExpiredError(PreconditionError):
    """Raised when a guess arrives at or after the round end time."""

    def __init__(self, round_id: int):
        self.round_id = round_id
        super().__init__(f"Round {round_id} no longer accepts guesses")


class DuplicateGuessError(PreconditionError):
    """Raised when the user already guessed in this round."""

    def __init__(self, round_id: int, user_id: str):
        self.round_id = round_id
        self.user_id = user_id
        super().__init__(f"User {user_id} already guessed in round {round_id}")


class RoundAlreadyOpenError(PreconditionError):
    """Raised when creating a round while another one is still open."""

    def __init__(self, open_round_id: int):
        self.open_round_id = open_round_id
        super().__init__(f"Round {open_round_id} is still open")


class RoundAlreadyFinishedError(PreconditionError):
    """Raised when recording a result for a round that already has one."""

    def __init__(self, round_id: int):
        self.round_id = round_id
        super().__init__(f"Round {round_id} is already finished")


class RoundLifecycleManager:
    """Validated reducers over the game tables."""

    def __init__(
        self,
        connection: ConnectionManager,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.connection = connection
        self.settings = settings or get_settings()
        self.clock = clock
        self.max_guess_value = self.settings.max_guess_value
        self._lock = RLock()

    @property
    def store(self) -> TableStore:
        return self.connection.store

    # ------------------------------------------------------------------
    # Reducers
    # ------------------------------------------------------------------

    def create_round(
        self,
        round_number: int,
        duration_minutes: int,
        prize: str,
        block_number: Optional[int] = None,
    ) -> Round:
        """
        Open a new round that accepts guesses for ``duration_minutes``.

        Raises:
            InvalidDurationError: duration is not positive
            InvalidBlockNumberError: target block is negative
            RoundAlreadyOpenError: another round is still open
        """
        if duration_minutes <= 0:
            raise InvalidDurationError(f"Round duration must be positive, got {duration_minutes}")
        if block_number is not None and block_number < 0:
            raise InvalidBlockNumberError(f"Block number must be >= 0, got {block_number}")

        with self._lock:
            store = self.store
            current = self._find_open_round(store)
            if current is not None:
                raise RoundAlreadyOpenError(current.id)

            now = self.clock()
            round_ = Round(
                round_number=round_number,
                start_time=now,
                end_time=now + timedelta(minutes=duration_minutes),
                duration_minutes=duration_minutes,
                prize=prize,
                status=RoundStatus.OPEN,
                block_number=block_number,
                created_at=now,
            )
            round_id = store.rounds.insert(round_)

            block_label = f"#{block_number}" if block_number is not None else "N/A"
            self._log(
                store,
                "round_created",
                f"Round #{round_number} created for Block {block_label} with prize {prize} "
                f"- Duration: {duration_minutes} minutes",
            )

        logger.info(f"🎮 Round {round_id} (#{round_number}) created, target block {block_label}")
        return store.rounds.get(round_id)

    def submit_guess(
        self,
        round_id: int,
        user_id: str,
        display_name: str,
        guess_value: int,
        avatar_url: Optional[str] = None,
    ) -> Guess:
        """
        Record a user's prediction for an open round.

        Checks run in order and the first failure wins: round exists, round is
        open, round has not reached its end time, user has not guessed yet,
        guess value is in range.
        """
        with self._lock:
            store = self.store
            round_ = self._require_round(store, round_id)
            if not round_.is_open:
                raise RoundNotOpenError(round_id, round_.status)

            now = self.clock()
            if not round_.accepts_guesses_at(now):
                raise RoundExpiredError(round_id)

            if self._user_guess(store, round_id, user_id) is not None:
                raise DuplicateGuessError(round_id, user_id)

            if guess_value < 0 or guess_value > self.max_guess_value:
                raise InvalidGuessValueError(guess_value, self.max_guess_value)

            guess_id = store.guesses.insert(
                Guess(
                    round_id=round_id,
                    user_id=user_id,
                    display_name=display_name,
                    guess=guess_value,
                    avatar_url=avatar_url,
                    submitted_at=now,
                )
            )
            self._log(store, "guess_submitted", f"{display_name} predicted {guess_value} transactions")

        logger.info(f"🎯 Guess {guess_id} by {user_id} for round {round_id}: {guess_value}")
        return store.guesses.get(guess_id)

    def end_round_manually(self, round_id: int) -> Round:
        """
        Close an open round. Not idempotent: closing a closed or finished round
        raises ``RoundNotOpenError``.
        """
        with self._lock:
            store = self.store
            round_ = self._require_round(store, round_id)
            if not round_.status.can_transition_to(RoundStatus.CLOSED):
                raise RoundNotOpenError(round_id, round_.status)

            closed = round_.model_copy(update={"status": RoundStatus.CLOSED})
            store.rounds.update(round_id, closed)
            self._log(store, "round_ended", f"Round {round_id} has been closed")

        logger.info(f"⏹️ Round {round_id} closed")
        return store.rounds.get(round_id)

    def update_round_result(
        self,
        round_id: int,
        actual_tx_count: int,
        block_hash: str,
        winning_user_id: str,
    ) -> Round:
        """
        Finish a round with its observed block data and winner.

        The result fields are written together with the finished status.
        Recording a second result for the same round raises
        ``RoundAlreadyFinishedError``.
        """
        if actual_tx_count < 0:
            raise InvalidTxCountError(f"Transaction count must be >= 0, got {actual_tx_count}")

        with self._lock:
            store = self.store
            round_ = self._require_round(store, round_id)
            if round_.is_finished:
                raise RoundAlreadyFinishedError(round_id)
            if round_.is_open:
                logger.warning(f"Round {round_id} finished without being closed first")

            finished = round_.model_copy(
                update={
                    "status": RoundStatus.FINISHED,
                    "actual_tx_count": actual_tx_count,
                    "block_hash": block_hash,
                    "winning_user_id": winning_user_id,
                }
            )
            store.rounds.update(round_id, finished)
            self._log(
                store,
                "round_finished",
                f"Round {round_id} finished - {actual_tx_count} transactions in block {block_hash}, "
                f"winner: {winning_user_id}",
            )

        logger.info(f"🏆 Round {round_id} finished: {actual_tx_count=} winner={winning_user_id}")
        return store.rounds.get(round_id)

    def add_chat_message(self, message: ChatMessage) -> ChatMessage:
        """Append a chat message. No rate limiting or filtering is applied."""
        with self._lock:
            store = self.store
            chat_id = store.chat_messages.insert(message)
            self._log(
                store,
                "chat_message_sent",
                f"{message.display_name} posted a {message.kind.value} message in {message.round_id}",
            )

        logger.debug(f"💬 Chat message {chat_id} from {message.user_id}")
        return store.chat_messages.get(chat_id)

    def post_chat_message(
        self,
        user_id: str,
        display_name: str,
        text: str,
        round_id: str = GLOBAL_CHANNEL,
        kind: ChatMessageKind = ChatMessageKind.CHAT,
        avatar_url: Optional[str] = None,
    ) -> ChatMessage:
        """Build a message stamped with the current time and add it."""
        return self.add_chat_message(
            ChatMessage(
                round_id=round_id,
                user_id=user_id,
                display_name=display_name,
                message=text,
                avatar_url=avatar_url,
                timestamp=self.clock(),
                kind=kind,
            )
        )

    def save_prize_config(
        self,
        jackpot_amount: int,
        first_place_amount: int,
        second_place_amount: int,
        currency: str,
        token_address: str,
    ) -> PrizeConfig:
        """
        Insert the prize configuration, or update the existing row.

        The first save fires insert subscribers, later saves fire update
        subscribers on that same row.
        """
        amounts = (jackpot_amount, first_place_amount, second_place_amount)
        if any(amount < 0 for amount in amounts):
            raise InvalidPrizeConfigError(f"Prize amounts must be >= 0, got {amounts}")

        with self._lock:
            store = self.store
            config = PrizeConfig(
                jackpot_amount=jackpot_amount,
                first_place_amount=first_place_amount,
                second_place_amount=second_place_amount,
                currency=currency,
                token_address=token_address,
                updated_at=self.clock(),
            )

            existing = next(iter(store.prize_configs.iterate()), None)
            if existing is None:
                config_id = store.prize_configs.insert(config)
            else:
                config_id = existing.id
                store.prize_configs.update(config_id, config)

            self._log(
                store,
                "prize_config_saved",
                f"Prize config updated - Jackpot: {jackpot_amount} {currency}, "
                f"1st: {first_place_amount}, 2nd: {second_place_amount} {currency}",
            )

        logger.info(f"💰 Prize config {config_id} saved")
        return store.prize_configs.get(config_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_round(self, round_id: int) -> Optional[Round]:
        return self.store.rounds.get(round_id)

    def active_round(self) -> Optional[Round]:
        """The open round, if any (first match in insertion order)."""
        return self._find_open_round(self.store)

    def list_rounds(self) -> List[Round]:
        return list(self.store.rounds.iterate())

    def guesses_for_round(self, round_id: int) -> List[Guess]:
        return [guess for guess in self.store.guesses.iterate() if guess.round_id == round_id]

    def has_user_guessed(self, round_id: int, user_id: str) -> bool:
        return self._user_guess(self.store, round_id, user_id) is not None

    def prize_config(self) -> Optional[PrizeConfig]:
        return next(iter(self.store.prize_configs.iterate()), None)

    def recent_logs(self, limit: int = 50) -> List[LogEvent]:
        """Newest log entries first."""
        logs = list(self.store.logs.iterate())
        return list(reversed(logs))[:limit]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _find_open_round(store: TableStore) -> Optional[Round]:
        return next((r for r in store.rounds.iterate() if r.is_open), None)

    @staticmethod
    def _require_round(store: TableStore, round_id: int) -> Round:
        round_ = store.rounds.get(round_id)
        if round_ is None:
            raise RoundNotFoundError(round_id)
        return round_

    @staticmethod
    def _user_guess(store: TableStore, round_id: int, user_id: str) -> Optional[Guess]:
        normalized = user_id.lower()
        return next(
            (
                g for g in store.guesses.iterate()
                if g.round_id == round_id and g.user_id.lower() == normalized
            ),
            None,
        )

    def _log(self, store: TableStore, event_type: str, details: str) -> None:
        store.logs.insert(LogEvent(event_type=event_type, details=details, timestamp=self.clock()))
