"""Utilities module - exceptions, datetime helpers and observables."""
from blockguess.utils.datetime_helpers import ensure_utc, utc_now
from blockguess.utils.observable import ObservableValue

__all__ = ["ensure_utc", "utc_now", "ObservableValue"]
