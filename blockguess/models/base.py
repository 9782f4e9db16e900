"""Base record model shared by every table."""
from datetime import datetime, UTC
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_serializer

from blockguess.utils.datetime_helpers import ensure_utc


def serialize_datetime_utc(dt: datetime) -> str:
    """
    Serialize datetime to ISO 8601 with explicit UTC timezone.

    Naive datetimes are treated as UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat().replace('+00:00', 'Z')


class BaseRecord(BaseModel):
    """
    Immutable table record.

    ``id`` is ``None`` until the owning table assigns one on insert. Records are
    frozen: state changes are expressed by storing a modified copy through the
    table's ``update``.
    """

    model_config = ConfigDict(
        frozen=True,
        from_attributes=True,
        use_enum_values=False,
    )

    id: Optional[int] = None

    @field_validator("*", mode="after")
    @classmethod
    def normalize_datetimes(cls, value):
        """Store every datetime field as an aware UTC instant."""
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value

    @model_serializer(mode="wrap")
    def serialize_model(self, handler):
        """Serialize model values with custom datetime handling."""

        def _convert(value):
            if isinstance(value, datetime):
                return serialize_datetime_utc(value)
            if isinstance(value, list):
                return [_convert(item) for item in value]
            if isinstance(value, dict):
                return {key: _convert(item) for key, item in value.items()}
            return value

        data = handler(self)
        return {key: _convert(value) for key, value in data.items()}

    def with_id(self, record_id: int):
        """Return a copy carrying the table-assigned id."""
        return self.model_copy(update={"id": record_id})
