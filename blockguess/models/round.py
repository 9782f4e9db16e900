"""Round record."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from blockguess.models.base import BaseRecord


class RoundStatus(str, Enum):
    """Round lifecycle states, in the only order they may be visited."""

    OPEN = "open"
    CLOSED = "closed"
    FINISHED = "finished"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    def can_transition_to(self, target: "RoundStatus") -> bool:
        return target.rank > self.rank


_STATUS_ORDER = [RoundStatus.OPEN, RoundStatus.CLOSED, RoundStatus.FINISHED]


class Round(BaseRecord):
    """One instance of the prediction game."""

    round_number: int
    start_time: datetime
    end_time: datetime
    duration_minutes: int = Field(gt=0)
    prize: str
    status: RoundStatus = RoundStatus.OPEN
    block_number: Optional[int] = None
    actual_tx_count: Optional[int] = None
    winning_user_id: Optional[str] = None
    block_hash: Optional[str] = None
    created_at: datetime

    @property
    def is_open(self) -> bool:
        return self.status == RoundStatus.OPEN

    @property
    def is_finished(self) -> bool:
        return self.status == RoundStatus.FINISHED

    def accepts_guesses_at(self, now: datetime) -> bool:
        return self.is_open and now < self.end_time
