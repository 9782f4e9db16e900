"""Audit log record."""
from datetime import datetime

from blockguess.models.base import BaseRecord


class LogEvent(BaseRecord):
    """Append-only audit entry written by every successful reducer."""

    event_type: str
    details: str
    timestamp: datetime
