"""Signed-in user as supplied by the identity provider."""
from typing import Optional

from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    """Identity of the caller. Not stored in any table."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str
    display_name: str
    avatar_url: Optional[str] = None
    is_admin: bool = False
