"""Latest chat events kept in memory for clients that poll instead of streaming"""
import threading

from django.conf import settings

from .broker import in_scope, now_ms


class EventLog:
    """Newest-first list of events, capped at max_events"""

    def __init__(self, max_events=None):
        self.max_events = max_events or settings.REALTIME_MAX_EVENTS
        self._events = []
        self._lock = threading.Lock()

    def add(self, event):
        stamped = {**event, 'timestamp': now_ms()}
        with self._lock:
            self._events.insert(0, stamped)
            del self._events[self.max_events:]
        return stamped

    def since(self, timestamp=0, scope=None):
        with self._lock:
            return [
                event for event in self._events
                if event['timestamp'] > timestamp and in_scope(event, scope)
            ]

    def clear(self):
        with self._lock:
            self._events = []

    def __len__(self):
        return len(self._events)


event_log = EventLog()
