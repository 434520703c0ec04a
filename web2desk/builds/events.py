"""Build change notifications.

This module handles:
- A per-build event bus with cancellable subscriptions
- Queuing events on a SQLAlchemy session, published only after commit
- A client-side watcher combining pushed events with periodic polling
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import event as sa_event
from sqlalchemy.orm import Session, SessionTransaction

from web2desk.builds.state import is_terminal
from web2desk.types import BuildStatus

logger = logging.getLogger(__name__)

_PENDING_KEY = "web2desk.pending_build_events"


@dataclass(frozen=True)
class BuildEvent:
    """A change to a build's externally visible state."""

    build_id: str
    status: BuildStatus
    error_message: str | None = None
    artifact_count: int = 0
    occurred_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc), compare=False
    )

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    def same_state(self, other: BuildEvent | None) -> bool:
        """Check whether two events describe the same build state."""
        return other is not None and (
            self.status,
            self.error_message,
            self.artifact_count,
        ) == (other.status, other.error_message, other.artifact_count)


BuildCallback = Callable[[BuildEvent], None]


class Subscription:
    """Handle returned by BuildEventBus.subscribe."""

    def __init__(self, bus: BuildEventBus, build_id: str, callback: BuildCallback) -> None:
        self.bus = bus
        self.build_id = build_id
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        """Stop receiving events. Safe to call more than once."""
        if self.active:
            self.active = False
            self.bus._remove(self)


class BuildEventBus:
    """In-process publish/subscribe keyed by build id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Subscription]] = {}

    def subscribe(self, build_id: str, callback: BuildCallback) -> Subscription:
        """Register a callback for one build's events."""
        subscription = Subscription(self, build_id, callback)
        with self._lock:
            self._subscribers.setdefault(build_id, []).append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(subscription.build_id, [])
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                self._subscribers.pop(subscription.build_id, None)

    def subscriber_count(self, build_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(build_id, []))

    def publish(self, build_event: BuildEvent) -> None:
        """Deliver an event to the build's current subscribers.

        A failing callback is logged and does not prevent delivery to the
        remaining subscribers.
        """
        with self._lock:
            subs = list(self._subscribers.get(build_event.build_id, []))
        for sub in subs:
            if not sub.active:
                continue
            try:
                sub.callback(build_event)
            except Exception:
                logger.exception(
                    "Subscriber for build %s raised while handling %s",
                    build_event.build_id,
                    build_event.status.value,
                )


default_bus = BuildEventBus()


def queue_build_event(
    session: Session,
    build_event: BuildEvent,
    bus: BuildEventBus | None = None,
) -> None:
    """Queue an event for publication when the session commits.

    Args:
        session: Session holding the change.
        build_event: Event to publish.
        bus: Target bus; the module default bus if not provided.
    """
    session.info.setdefault(_PENDING_KEY, []).append((bus or default_bus, build_event))


@sa_event.listens_for(Session, "after_commit")
def _publish_after_commit(session: Session) -> None:
    # Savepoint commits fire this hook too; wait for the outermost commit
    if session.in_nested_transaction():
        return
    pending = session.info.pop(_PENDING_KEY, None)
    for bus, build_event in pending or []:
        bus.publish(build_event)


@sa_event.listens_for(Session, "after_soft_rollback")
def _discard_after_rollback(session: Session, previous_transaction: SessionTransaction) -> None:
    if previous_transaction.nested:
        return
    pending = session.info.pop(_PENDING_KEY, None)
    if pending:
        logger.debug("Discarded %d build event(s) after rollback", len(pending))


class WatchTimeoutError(Exception):
    """Raised when a watched build does not finish in time."""

    def __init__(self, build_id: str, timeout: float, code: str = "timeout") -> None:
        super().__init__(f"Build {build_id} did not finish within {timeout:.0f}s")
        self.build_id = build_id
        self.timeout = timeout
        self.code = code


class BuildWatcher:
    """Follow one build until it reaches a terminal status.

    Events come from two sources feeding the same callback: pushes from an
    event bus (when the build runs in this process) and a poll function
    called every ``poll_interval`` seconds. Only changes are delivered.

    Args:
        build_id: Build to follow.
        poll: Returns the build's current state (typically by running a
            status check).
        callback: Receives each changed state.
        bus: Optional bus to subscribe to for pushed events.
        poll_interval: Seconds between polls.
        timeout: Give up after this many seconds; wait forever when None.
    """

    def __init__(
        self,
        build_id: str,
        poll: Callable[[], BuildEvent],
        callback: BuildCallback,
        bus: BuildEventBus | None = None,
        poll_interval: float = 12.0,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.build_id = build_id
        self.poll = poll
        self.callback = callback
        self.bus = bus
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.clock = clock
        self.last: BuildEvent | None = None
        self._inbox: queue.Queue[BuildEvent] = queue.Queue()

    def _deliver(self, build_event: BuildEvent) -> None:
        if build_event.same_state(self.last):
            return
        self.last = build_event
        self.callback(build_event)

    def run(self) -> BuildEvent:
        """Block until the build is terminal.

        Returns:
            The terminal event.

        Raises:
            WatchTimeoutError: If ``timeout`` elapses first.
        """
        subscription = self.bus.subscribe(self.build_id, self._inbox.put) if self.bus else None
        deadline = None if self.timeout is None else self.clock() + self.timeout
        try:
            next_poll = self.clock()
            while True:
                now = self.clock()
                if now >= next_poll:
                    self._deliver(self.poll())
                    next_poll = now + self.poll_interval
                if self.last is not None and self.last.is_terminal:
                    return self.last

                if deadline is not None and now >= deadline:
                    raise WatchTimeoutError(self.build_id, self.timeout or 0)
                wait = next_poll - now
                if deadline is not None:
                    wait = min(wait, deadline - now)
                try:
                    pushed = self._inbox.get(timeout=max(wait, 0))
                except queue.Empty:
                    continue
                self._deliver(pushed)
                if pushed.is_terminal:
                    return pushed
        finally:
            if subscription is not None:
                subscription.cancel()


__all__ = [
    "BuildCallback",
    "BuildEvent",
    "BuildEventBus",
    "BuildWatcher",
    "Subscription",
    "WatchTimeoutError",
    "default_bus",
    "queue_build_event",
]
