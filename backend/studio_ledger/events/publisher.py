"""Event publisher - in-process observer registry for ledger changes."""
import logging
from threading import Lock
from typing import Any, Callable, Dict, List, Protocol

logger = logging.getLogger(__name__)


class Event(Protocol):
    """Protocol for event types."""

    topic: str

    def to_dict(self) -> Dict[str, Any]:
        ...


Listener = Callable[[Event], None]


class LedgerEventBus:
    """
    Publishes ledger events to subscribed callbacks.

    Owned by whoever wires the application together and handed to services;
    there is no module-level instance. Services publish only after their
    transaction commits, so listeners never observe rolled-back state.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}
        self._lock = Lock()

    def subscribe(self, topic: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for ``topic``; returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.setdefault(topic, []).append(listener)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(topic, [])
                if listener in listeners:
                    listeners.remove(listener)

        return unsubscribe

    def publish(self, event: Event) -> None:
        """Deliver ``event`` to every listener of its topic.

        A failing listener is logged and skipped; the change it reacts to
        has already been committed.
        """
        with self._lock:
            listeners = list(self._listeners.get(event.topic, []))

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Ledger event listener failed",
                    extra={"topic": event.topic, "event": event.to_dict()},
                )

    def listener_count(self, topic: str) -> int:
        with self._lock:
            return len(self._listeners.get(topic, []))
