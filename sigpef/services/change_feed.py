"""Monotonic change sequence shared by every write path.

Each mutation is stamped with the next sequence number and recorded in a
bounded history, so a client that polls ``events_since`` learns what changed
and can tell whether a list snapshot is older than its own last write.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock

from sigpef.core import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    sequence: int
    table: str
    action: str
    row_id: int | str | None = None
    created_at: datetime = field(default_factory=datetime.now)


class ChangeFeed:
    def __init__(self, history_size: int = config.CHANGE_FEED_HISTORY):
        self._lock = Lock()
        self._sequence = 0
        self._events: deque[ChangeEvent] = deque(maxlen=history_size)

    def current(self) -> int:
        with self._lock:
            return self._sequence

    def publish(self, table: str, action: str, row_id: int | str | None = None) -> ChangeEvent:
        with self._lock:
            self._sequence += 1
            event = ChangeEvent(sequence=self._sequence, table=table, action=action, row_id=row_id)
            self._events.append(event)
        logger.debug('change %s %s %s #%s', table, action, row_id, event.sequence)
        return event

    def events_since(self, sequence: int, table: str | None = None) -> tuple[int, list[ChangeEvent]]:
        """Events newer than ``sequence`` and the current head.

        When ``sequence`` fell out of the retained history the caller gets
        everything still retained and should do a full reload.
        """
        with self._lock:
            head = self._sequence
            events = [
                event for event in self._events
                if event.sequence > sequence and (table is None or event.table == table)
            ]
        return head, events

    def is_truncated(self, sequence: int) -> bool:
        with self._lock:
            if not self._events:
                return False
            return sequence < self._events[0].sequence - 1


change_feed = ChangeFeed()


class SyncedAppointmentList:
    """Client-side holder of an appointment snapshot.

    Refresh responses older than the last locally applied mutation are
    discarded, so a slow reload can no longer overwrite a newer edit.
    """

    def __init__(self):
        self.items: list = []
        self.snapshot_sequence = 0
        self.last_local_sequence = 0

    def apply_refresh(self, sequence: int, items: list) -> bool:
        if sequence < self.last_local_sequence or sequence < self.snapshot_sequence:
            logger.debug('discarding stale refresh #%s (local #%s)', sequence, self.last_local_sequence)
            return False
        self.items = list(items)
        self.snapshot_sequence = sequence
        return True

    def apply_local(self, sequence: int, mutate) -> None:
        """Apply an optimistic change confirmed by the server as ``sequence``."""
        self.items = mutate(list(self.items))
        self.last_local_sequence = max(self.last_local_sequence, sequence)
