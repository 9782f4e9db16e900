"""Mapping from identity provider data to game users."""
import logging
from typing import Optional

from blockguess.config import Settings, get_settings
from blockguess.models import User

logger = logging.getLogger(__name__)

USER_ID_PREFIX = "fid-"
DEFAULT_AVATAR_URL = "https://i.imgur.com/placeholder.jpg"


def user_id_for_fid(fid: int) -> str:
    return f"{USER_ID_PREFIX}{fid}"


def fid_from_user_id(user_id: str) -> Optional[int]:
    """Extract the numeric id from a ``fid-<n>`` user id, if it is one."""
    if not user_id.startswith(USER_ID_PREFIX):
        return None
    try:
        return int(user_id[len(USER_ID_PREFIX):])
    except ValueError:
        return None


class IdentityService:
    """Builds ``User`` objects and answers admin checks against the allow-list."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def resolve_user(
        self,
        fid: int,
        username: Optional[str] = None,
        display_name: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> User:
        """Create the user for a signed-in identity."""
        username = username or f"user{fid}"
        user = User(
            user_id=user_id_for_fid(fid),
            username=username,
            display_name=display_name or username or "Anonymous",
            avatar_url=avatar_url or DEFAULT_AVATAR_URL,
            is_admin=self.settings.is_admin_fid(fid),
        )
        logger.info(f"👤 Signed in {user.user_id} ({user.username}), admin={user.is_admin}")
        return user

    def is_admin_user_id(self, user_id: str) -> bool:
        return self.settings.is_admin_fid(fid_from_user_id(user_id))
