"""Tests for build change notifications."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from web2desk.builds.events import (
    BuildEvent,
    BuildEventBus,
    BuildWatcher,
    WatchTimeoutError,
    queue_build_event,
)
from web2desk.builds.models import Build
from web2desk.db import Base
from web2desk.types import BuildStatus


@pytest.fixture
def engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def session(engine):
    """Create a session for testing."""
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def build(session):
    """Create a queued build."""
    b = Build(
        app_name="Events",
        framework="electron",
        target_os="linux",
        source_type="url",
        source_url="https://example.com",
        wrapper_mode="webview",
        strategy="simulated",
    )
    session.add(b)
    session.commit()
    return b


class TestBuildEventBus:
    """Tests for BuildEventBus."""

    def test_publish_to_matching_build(self):
        """Only subscribers of the event's build receive it."""
        bus = BuildEventBus()
        received_a, received_b = [], []
        bus.subscribe("a", received_a.append)
        bus.subscribe("b", received_b.append)

        bus.publish(BuildEvent(build_id="a", status=BuildStatus.BUILDING))

        assert [e.status for e in received_a] == [BuildStatus.BUILDING]
        assert received_b == []

    def test_cancel(self):
        """Cancelled subscriptions stop receiving and are removed."""
        bus = BuildEventBus()
        received = []
        sub = bus.subscribe("a", received.append)
        sub.cancel()
        sub.cancel()

        bus.publish(BuildEvent(build_id="a", status=BuildStatus.BUILDING))

        assert received == []
        assert bus.subscriber_count("a") == 0

    def test_failing_subscriber_does_not_block_others(self):
        """A raising callback is logged and delivery continues."""
        bus = BuildEventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe("a", broken)
        bus.subscribe("a", received.append)

        bus.publish(BuildEvent(build_id="a", status=BuildStatus.FAILED))

        assert len(received) == 1


class TestBuildEvent:
    """Tests for BuildEvent."""

    def test_same_state_ignores_timestamp(self):
        """Events with equal state compare equal regardless of time."""
        first = BuildEvent(build_id="a", status=BuildStatus.BUILDING)
        second = BuildEvent(build_id="a", status=BuildStatus.BUILDING)

        assert first.same_state(second)
        assert not first.same_state(None)
        assert not first.same_state(
            BuildEvent(build_id="a", status=BuildStatus.BUILDING, artifact_count=1)
        )

    def test_is_terminal(self):
        """Completed and failed are terminal."""
        assert BuildEvent(build_id="a", status=BuildStatus.COMPLETED).is_terminal
        assert not BuildEvent(build_id="a", status=BuildStatus.QUEUED).is_terminal


class TestQueuedEvents:
    """Tests for events queued on a session."""

    def test_published_after_commit(self, session, build):
        """Queued events reach the bus when the session commits."""
        bus = BuildEventBus()
        received = []
        bus.subscribe(build.id, received.append)

        build.status = BuildStatus.BUILDING.value
        queue_build_event(session, BuildEvent(build_id=build.id, status=BuildStatus.BUILDING), bus)
        assert received == []

        session.commit()
        assert [e.status for e in received] == [BuildStatus.BUILDING]

    def test_discarded_on_rollback(self, session, build):
        """Rolled back changes are never announced."""
        bus = BuildEventBus()
        received = []
        bus.subscribe(build.id, received.append)

        queue_build_event(session, BuildEvent(build_id=build.id, status=BuildStatus.FAILED), bus)
        session.rollback()
        session.commit()

        assert received == []

    def test_savepoint_commit_waits_for_outer_commit(self, session, build):
        """Events queued inside a savepoint wait for the outer commit."""
        bus = BuildEventBus()
        received = []
        bus.subscribe(build.id, received.append)

        with session.begin_nested():
            queue_build_event(
                session, BuildEvent(build_id=build.id, status=BuildStatus.BUILDING), bus
            )
        assert received == []

        session.commit()
        assert len(received) == 1


class TestBuildWatcher:
    """Tests for BuildWatcher."""

    def test_polls_until_terminal(self):
        """Only changed states are delivered and the terminal one is returned."""
        states = iter(
            [BuildStatus.QUEUED, BuildStatus.QUEUED, BuildStatus.BUILDING, BuildStatus.COMPLETED]
        )
        seen = []

        watcher = BuildWatcher(
            "a",
            poll=lambda: BuildEvent(build_id="a", status=next(states)),
            callback=seen.append,
            poll_interval=0.01,
        )
        final = watcher.run()

        assert final.status == BuildStatus.COMPLETED
        assert [e.status for e in seen] == [
            BuildStatus.QUEUED,
            BuildStatus.BUILDING,
            BuildStatus.COMPLETED,
        ]

    def test_pushed_event_ends_watch(self):
        """A terminal event from the bus ends the watch without polling."""
        bus = BuildEventBus()
        polls = []
        seen = []

        def poll():
            polls.append(1)
            return BuildEvent(build_id="a", status=BuildStatus.BUILDING)

        def callback(event):
            seen.append(event)
            if event.status == BuildStatus.BUILDING:
                bus.publish(BuildEvent(build_id="a", status=BuildStatus.FAILED, error_message="x"))

        watcher = BuildWatcher("a", poll=poll, callback=callback, bus=bus, poll_interval=60)
        final = watcher.run()

        assert final.status == BuildStatus.FAILED
        assert len(polls) == 1
        assert [e.status for e in seen] == [BuildStatus.BUILDING, BuildStatus.FAILED]
        assert bus.subscriber_count("a") == 0

    def test_timeout(self):
        """A build that never finishes raises WatchTimeoutError."""
        watcher = BuildWatcher(
            "a",
            poll=lambda: BuildEvent(build_id="a", status=BuildStatus.BUILDING),
            callback=lambda e: None,
            poll_interval=0.01,
            timeout=0.05,
        )

        with pytest.raises(WatchTimeoutError) as exc_info:
            watcher.run()
        assert exc_info.value.code == "timeout"
        assert exc_info.value.build_id == "a"
