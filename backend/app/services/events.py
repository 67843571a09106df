import threading
from typing import Callable, List

from app.utils.logging import get_logger

logger = get_logger(__name__)


class CartEvents:
    """
    Process-wide "cart changed" broadcast. No payload: observers (header
    badges, cart listings) re-read whatever they display.
    Publishing is fire-and-forget; a failing observer is logged and skipped.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: List[Callable[[], None]] = []

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)
        return callback

    def unsubscribe(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def publish(self) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for cb in subscribers:
            try:
                cb()
            except Exception:
                logger.warning(f"cart-changed subscriber {cb!r} failed", exc_info=True)


cart_events = CartEvents()
