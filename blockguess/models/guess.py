"""Guess record."""
from datetime import datetime
from typing import Optional

from pydantic import Field

from blockguess.models.base import BaseRecord


class Guess(BaseRecord):
    """One user's prediction for exactly one round."""

    round_id: int
    user_id: str
    display_name: str
    guess: int = Field(ge=0)
    avatar_url: Optional[str] = None
    submitted_at: datetime
