"""
In-process fan-out of chat events to Server-Sent Events connections.

Subscribers only exist in the process that accepted the connection, so
events broadcast by another worker never reach them.
"""
import logging
import queue
import threading
import time
import uuid

from crm.core.utils import parse_int

logger = logging.getLogger(__name__)

SUBSCRIBER_QUEUE_SIZE = 100


def now_ms():
    return int(time.time() * 1000)


def in_scope(event, scope):
    """scope is a set of (account id, inbox id) pairs; None lets everything through"""
    if scope is None:
        return True
    return (str(event.get('accountId')), parse_int(event.get('inboxId'))) in scope


class Subscriber:
    """One open stream and the filters it asked for"""

    def __init__(self, client_id, account_id=None, inbox_ids=None, conversation_id=None, scope=None):
        self.client_id = client_id
        self.account_id = str(account_id) if account_id not in (None, '') else None
        self.inbox_ids = [int(inbox_id) for inbox_id in (inbox_ids or [])]
        self.conversation_id = conversation_id
        self.scope = scope
        self.connected_at = now_ms()
        self.queue = queue.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)

    def accepts(self, event):
        if self.account_id is not None and str(event.get('accountId')) != self.account_id:
            return False
        inbox_id = event.get('inboxId')
        if inbox_id and self.inbox_ids and parse_int(inbox_id) not in self.inbox_ids:
            return False
        # No conversation filter: clients refresh their conversation list from every event of their inboxes
        return True

    def permits(self, event):
        return in_scope(event, self.scope)

    def deliver(self, event):
        self.queue.put_nowait(event)

    def next_event(self, timeout):
        """Block for the next event; None when the timeout passes first"""
        try:
            return self.queue.get(timeout=timeout)
        except queue.Empty:
            return None


class EventBroker:
    """
    Thread-safe registry of subscribers.

    A filtering broker only delivers events matching the subscriber's
    account and inboxes; an unfiltered one delivers everything. Both
    drop events outside the subscriber's channel scope.
    """

    def __init__(self, name, filtered=True):
        self.name = name
        self.filtered = filtered
        self._subscribers = {}
        self._lock = threading.Lock()

    def subscribe(self, account_id=None, inbox_ids=None, conversation_id=None, scope=None):
        client_id = f"client_{now_ms()}_{uuid.uuid4().hex[:7]}"
        subscriber = Subscriber(client_id, account_id, inbox_ids, conversation_id, scope)
        with self._lock:
            self._subscribers[client_id] = subscriber
            total = len(self._subscribers)
        logger.info(f"[{self.name}] client {client_id} connected (account={subscriber.account_id}, "
                    f"inboxes={subscriber.inbox_ids}); total {total}")
        return subscriber

    def unsubscribe(self, client_id):
        with self._lock:
            subscriber = self._subscribers.pop(client_id, None)
            total = len(self._subscribers)
        if subscriber:
            duration = round((now_ms() - subscriber.connected_at) / 1000)
            logger.info(f"[{self.name}] client {client_id} disconnected after {duration}s; remaining {total}")
        return subscriber is not None

    def broadcast(self, event):
        """Queue the event for every matching subscriber; returns how many got it"""
        event = {**event, 'timestamp': event.get('timestamp') or now_ms()}
        with self._lock:
            subscribers = list(self._subscribers.values())

        sent = filtered = failed = 0
        for subscriber in subscribers:
            if not subscriber.permits(event) or (self.filtered and not subscriber.accepts(event)):
                filtered += 1
                continue
            try:
                subscriber.deliver(event)
                sent += 1
            except queue.Full:
                # Client stopped reading
                failed += 1
                self.unsubscribe(subscriber.client_id)

        logger.debug(f"[{self.name}] broadcast {event.get('event')}: {sent} sent, {filtered} filtered, {failed} failed")
        return sent

    def stats(self):
        with self._lock:
            subscribers = list(self._subscribers.values())
        now = now_ms()
        by_account = {}
        by_inbox = {}
        for subscriber in subscribers:
            account = subscriber.account_id or 'any'
            by_account[account] = by_account.get(account, 0) + 1
            for inbox_id in subscriber.inbox_ids:
                by_inbox[str(inbox_id)] = by_inbox.get(str(inbox_id), 0) + 1
        return {
            'total': len(subscribers),
            'by_account': by_account,
            'by_inbox': by_inbox,
            'connections': [
                {
                    'client_id': subscriber.client_id,
                    'account_id': subscriber.account_id,
                    'inbox_ids': subscriber.inbox_ids,
                    'conversation_id': subscriber.conversation_id,
                    'duration': round((now - subscriber.connected_at) / 1000),
                }
                for subscriber in subscribers
            ],
        }

    def close_all(self):
        with self._lock:
            count = len(self._subscribers)
            self._subscribers.clear()
        return count


chat_broker = EventBroker('chat')
realtime_broker = EventBroker('realtime', filtered=False)
