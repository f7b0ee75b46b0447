from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

MessageCallback = Callable[[Any], Any]


class Subscription:
    """Ordered delivery of one conversation's new messages to one callback.

    Events are queued on the event loop that created the subscription and
    handed to the callback by a dedicated task. ``stop()`` is final: no
    callback runs after it returns, and queued events are dropped.
    """

    def __init__(self, feed: "MessageFeed", conversation_id: str, callback: MessageCallback):
        self.conversation_id = conversation_id
        self._feed = feed
        self._callback = callback
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._stopped = False
        self._task = self._loop.create_task(self._run())

    @property
    def active(self) -> bool:
        return not self._stopped

    def _enqueue(self, message) -> None:
        if not self._stopped:
            self._queue.put_nowait(message)

    def deliver(self, message) -> bool:
        if self._stopped or self._loop.is_closed():
            return False
        self._loop.call_soon_threadsafe(self._enqueue, message)
        return True

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            if self._stopped:
                return
            try:
                result = self._callback(message)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Message subscriber for %s failed", self.conversation_id)

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._feed._remove(self)
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._task.cancel)


class MessageFeed:
    """In-process change feed of inserted messages, filtered by conversation."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: Dict[str, List[Subscription]] = {}

    def subscribe(self, conversation_id: str, callback: MessageCallback) -> Subscription:
        subscription = Subscription(self, conversation_id, callback)
        with self._lock:
            self._subscriptions.setdefault(conversation_id, []).append(subscription)
        logger.debug("Subscribed to conversation %s", conversation_id)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            items = self._subscriptions.get(subscription.conversation_id, [])
            if subscription in items:
                items.remove(subscription)
            if not items:
                self._subscriptions.pop(subscription.conversation_id, None)

    def subscriber_count(self, conversation_id: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(conversation_id, []))

    def publish(self, conversation_id: str, message) -> int:
        with self._lock:
            targets = list(self._subscriptions.get(conversation_id, []))
        delivered = 0
        for subscription in targets:
            if subscription.deliver(message):
                delivered += 1
            else:
                self._remove(subscription)
        return delivered


_feed: MessageFeed | None = None


def get_feed() -> MessageFeed:
    global _feed
    if _feed is None:
        _feed = MessageFeed()
    return _feed


def reset_feed() -> None:
    global _feed
    _feed = None
