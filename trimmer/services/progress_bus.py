"""
Progress Bus - Push delivery and last-snapshot registry keyed by task id.

One ProgressBus instance is created per application (see main.lifespan) and
injected wherever progress is published or consumed. Each task has at most
one live Subscription; the latest event is kept as a snapshot so late or
reconnecting readers see the current state immediately.

Everything runs on the application's event loop, so the registry needs no
locking: each task only ever touches its own key.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    """Lifecycle states of a trim task."""

    STARTING = "starting"
    DOWNLOADING = "downloading"
    TRIMMING = "trimming"
    CLEANING = "cleaning"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETE, TaskStatus.ERROR)


@dataclass(frozen=True)
class ProgressEvent:
    """Immutable progress snapshot for one task."""

    task_id: str
    status: TaskStatus
    percent: int
    message: str
    filename: Optional[str] = None  # Only set on COMPLETE

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_payload(self) -> dict[str, Any]:
        """Wire format delivered to clients."""
        payload: dict[str, Any] = {
            "status": self.status.value,
            "progress": self.percent,
            "message": self.message,
        }
        if self.filename:
            payload["filename"] = self.filename
        return payload


class Subscription:
    """A single live reader attached to one task."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        self._queue: asyncio.Queue[Optional[ProgressEvent]] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: ProgressEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def close(self) -> None:
        """Stop the subscription; a pending get() returns None."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    async def get(self) -> Optional[ProgressEvent]:
        """Wait for the next event. Returns None once the subscription is closed."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def drain(self) -> list[ProgressEvent]:
        """Return every queued event without waiting."""
        events = []
        while not self._queue.empty():
            event = self._queue.get_nowait()
            if event is not None:
                events.append(event)
        return events


class ProgressBus:
    """
    Registry of live subscriptions and last-known snapshots.

    Contract:
    - publish() stores the event as the snapshot (last write wins) and pushes
      it to the attached subscriber, in publish order, without drops.
    - register() attaches a subscriber and queues the current snapshot to it
      first. A second register() for the same task closes the previous one.
    - unregister() detaches a subscriber; the snapshot remains queryable.
    - Terminal snapshots expire snapshot_ttl_seconds after the terminal event.
    """

    def __init__(self, snapshot_ttl_seconds: float = 600):
        self.snapshot_ttl_seconds = snapshot_ttl_seconds
        self._subscribers: dict[str, Subscription] = {}
        self._snapshots: dict[str, ProgressEvent] = {}
        self._expiry_handles: dict[str, asyncio.TimerHandle] = {}

    def register(self, task_id: str) -> Subscription:
        previous = self._subscribers.get(task_id)
        if previous is not None:
            logger.debug(f"Replacing progress subscriber for {task_id}")
            previous.close()

        subscription = Subscription(task_id)
        snapshot = self._snapshots.get(task_id)
        if snapshot is not None:
            subscription.push(snapshot)

        self._subscribers[task_id] = subscription
        logger.debug(f"Progress subscriber attached: {task_id}")
        return subscription

    def unregister(self, task_id: str, subscription: Optional[Subscription] = None) -> None:
        current = self._subscribers.get(task_id)
        if current is None:
            return
        # A replaced subscriber must not detach its successor
        if subscription is not None and current is not subscription:
            return
        del self._subscribers[task_id]
        current.close()
        logger.debug(f"Progress subscriber detached: {task_id}")

    def publish(self, event: ProgressEvent) -> None:
        self._snapshots[event.task_id] = event

        subscriber = self._subscribers.get(event.task_id)
        if subscriber is not None:
            subscriber.push(event)

        logger.info(
            f"[{event.task_id}] {event.status.value} {event.percent}% - {event.message}"
        )

        if event.is_terminal:
            self._schedule_expiry(event.task_id)

    def snapshot(self, task_id: str) -> Optional[ProgressEvent]:
        return self._snapshots.get(task_id)

    def has_subscriber(self, task_id: str) -> bool:
        return task_id in self._subscribers

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._snapshots

    def close(self) -> None:
        """Teardown hook: close every subscription and clear the registry."""
        for handle in self._expiry_handles.values():
            handle.cancel()
        self._expiry_handles.clear()
        for subscriber in self._subscribers.values():
            subscriber.close()
        self._subscribers.clear()
        self._snapshots.clear()
        logger.info("Progress bus closed")

    def _schedule_expiry(self, task_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Published outside an event loop (sync callers); keep the snapshot
            return

        existing = self._expiry_handles.pop(task_id, None)
        if existing is not None:
            existing.cancel()
        self._expiry_handles[task_id] = loop.call_later(
            self.snapshot_ttl_seconds, self._expire, task_id
        )

    def _expire(self, task_id: str) -> None:
        self._expiry_handles.pop(task_id, None)
        self._snapshots.pop(task_id, None)
        subscriber = self._subscribers.pop(task_id, None)
        if subscriber is not None:
            subscriber.close()
        logger.debug(f"Progress snapshot expired: {task_id}")
