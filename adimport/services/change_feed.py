"""
In-process change feed for month import rows.

The status store publishes an event after every committed write; status
trackers subscribe per project and patch their in-memory collection.
"""
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from adimport.utils.logger import log

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    event_type: str  # INSERT | UPDATE | DELETE
    project_id: str
    new: Optional[dict] = None
    old: Optional[dict] = None


Subscriber = Callable[[ChangeEvent], None]


class ChangeFeed:
    """Row-level change events fanned out to subscribers of one project."""

    def __init__(self):
        self._subscribers: Dict[str, List[Subscriber]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, project_id: str, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that removes it."""
        with self._lock:
            self._subscribers[project_id].append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(project_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(project_id, None)

        return unsubscribe

    def subscriber_count(self, project_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(project_id, []))

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(event.project_id, []))

        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                # A broken subscriber must not fail the write that triggered it
                log.error(f"Change feed subscriber error for project {event.project_id}: {e}")


# Shared feed for the process
change_feed = ChangeFeed()
