"""Exception taxonomy shared across the game core.

Reducers raise typed refusals before touching any table.
"""


class BlockGuessException(Exception):
    """Base exception for all game errors."""
    pass


class ValidationError(BlockGuessException):
    """Raised for malformed input (out-of-range values, non-positive durations)."""
    pass


class PreconditionError(BlockGuessException):
    """Raised when the current game state does not allow the requested action."""
    pass


class NotFoundError(BlockGuessException):
    """Raised when a table record does not exist."""

    def __init__(self, table: str, record_id: int):
        self.table = table
        self.record_id = record_id
        super().__init__(f"{table} record {record_id} not found")


class ConnectivityError(BlockGuessException):
    """Raised when the backing store is unreachable."""
    pass


class UpstreamDataError(BlockGuessException):
    """Raised when the block data source fails (distinct from "not mined yet")."""
    pass
