"""Prize configuration record."""
from datetime import datetime

from pydantic import Field

from blockguess.models.base import BaseRecord


class PrizeConfig(BaseRecord):
    """Jackpot and placement amounts. The first stored row is authoritative."""

    jackpot_amount: int = Field(ge=0)
    first_place_amount: int = Field(ge=0)
    second_place_amount: int = Field(ge=0)
    currency: str
    token_address: str
    updated_at: datetime
