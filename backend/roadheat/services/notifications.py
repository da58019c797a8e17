"""In-process fan-out of "new report inserted" signals."""

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class NotificationHub:
    """Broadcast payload-less change signals to registered listeners.

    Signals carry no data, so duplicated or reordered deliveries from the
    upstream stream are harmless: listeners only learn that something changed.
    """

    def __init__(self):
        self._listeners: list[Listener] = []
        self.signals_received = 0

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that detaches it."""
        self._listeners.append(listener)

        def detach() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return detach

    def publish(self) -> int:
        """Signal all listeners. Returns the number notified."""
        self.signals_received += 1
        listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Report notification listener failed")
        logger.debug(f"Report insert signal delivered to {len(listeners)} listeners")
        return len(listeners)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
