"""Observable value holder used to surface state such as connectivity."""
import logging
from threading import Lock
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ObservableValue(Generic[T]):
    """
    Holds a value and notifies observers whenever it changes.

    Setting the same value again is a no-op, so observers only see transitions.
    """

    def __init__(self, initial: T):
        self._value = initial
        self._observers: list[Callable[[T], None]] = []
        self._lock = Lock()

    @property
    def value(self) -> T:
        return self._value

    def __bool__(self) -> bool:
        return bool(self._value)

    def set(self, value: T) -> bool:
        """Update the value. Returns True if it changed."""
        with self._lock:
            if value == self._value:
                return False
            self._value = value
            observers = list(self._observers)

        for observer in observers:
            try:
                observer(value)
            except Exception as e:
                logger.exception(f"Observer {observer!r} failed: {e}")
        return True

    def subscribe(self, observer: Callable[[T], None]) -> Callable[[], None]:
        """Register an observer; returns an idempotent unsubscribe callable."""
        with self._lock:
            self._observers.append(observer)

        def _unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return _unsubscribe
