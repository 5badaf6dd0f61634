"""
In-process change notifications for live dashboards.

The database backend publishes an event after each committed write to the
guests and attendance tables. Subscribers are plain callables; the
check-in logic itself never depends on them.
"""

import logging
import threading
from dataclasses import dataclass, asdict

logger = logging.getLogger(__name__)

INSERT = 'INSERT'
UPDATE = 'UPDATE'
DELETE = 'DELETE'


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    action: str
    row_id: str = None

    def to_dict(self):
        return asdict(self)


class ChangeFeed:
    """Fan-out of ChangeEvents to subscribed callbacks."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers = []

    def subscribe(self, callback, tables=None):
        """
        Register a callback for events on the given tables (all if None).

        Returns:
            A function that removes the subscription.
        """
        entry = (callback, frozenset(tables) if tables else None)
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe():
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def publish(self, event):
        with self._lock:
            subscribers = list(self._subscribers)

        for callback, tables in subscribers:
            if tables is not None and event.table not in tables:
                continue
            try:
                callback(event)
            except Exception as e:
                # Listener failures never reach the publishing write
                logger.error(f"Change feed subscriber failed on {event.table} {event.action}: {e}")

    @property
    def subscriber_count(self):
        with self._lock:
            return len(self._subscribers)
