"""
Bounded, observable ring buffer of human-readable gateway log lines.
"""
from collections import deque
from datetime import datetime
from typing import Callable, Deque, List, Optional

from aiproxy.core.config import settings
from aiproxy.core.logger import get_logger

logger = get_logger(__name__)

LogObserver = Callable[[str], None]


class LogSink:
    """
    Append-only buffer holding the most recent log lines.

    Once the capacity is reached every append evicts exactly one line, the
    oldest. Observers are called with each new line in append order.
    """

    def __init__(self, capacity: Optional[int] = None):
        self.capacity = capacity or settings.log_buffer_size
        self._lines: Deque[str] = deque(maxlen=self.capacity)
        self._observers: List[LogObserver] = []

    def append(self, message: str) -> str:
        """
        Timestamp and store a message.

        Args:
            message: Log message

        Returns:
            The stored line
        """
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        line = f"[{timestamp}] {message}"
        self._lines.append(line)
        logger.info(message)

        for observer in list(self._observers):
            try:
                observer(line)
            except Exception as e:
                logger.warning("Log observer failed", error=str(e))
        return line

    def lines(self) -> List[str]:
        """Return an ordered snapshot, oldest first."""
        return list(self._lines)

    def filter(self, query: str) -> List[str]:
        """Return lines containing ``query``, case-insensitively."""
        if not query:
            return self.lines()
        needle = query.casefold()
        return [line for line in self._lines if needle in line.casefold()]

    def clear(self) -> None:
        self._lines.clear()

    def subscribe(self, observer: LogObserver) -> Callable[[], None]:
        """
        Register an observer for new lines.

        Returns:
            A callable that removes the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self):
        return iter(self.lines())
