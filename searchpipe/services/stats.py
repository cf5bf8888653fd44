import threading


class Counter:
    """
    Progress counter shared by reference across worker threads.

    The value only ever grows. It is meant for progress lines only and must
    not drive control flow: a reader may see a value that is already stale.
    """

    def __init__(self, start: int = 0) -> None:
        if start < 0:
            raise ValueError("counter cannot start below zero")
        self._value = start
        self._lock = threading.Lock()

    def increment(self, amount: int) -> int:
        """Add ``amount`` and return the value after the increment."""
        if amount < 0:
            raise ValueError("counter can only increase")
        with self._lock:
            self._value += amount
            return self._value

    @property
    def value(self) -> int:
        return self._value
