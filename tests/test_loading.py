import pytest

from feedesk.core.loading import LoadingTracker


def test_visibility_follows_outstanding_tickets() -> None:
    tracker = LoadingTracker()
    changes = []
    tracker.subscribe(changes.append)

    first = tracker.acquire("fee-balances")
    second = tracker.acquire("payment-submit")
    assert tracker.count == 2
    assert changes == [True]

    tracker.release(first)
    assert tracker.is_loading
    assert changes == [True]

    tracker.release(second)
    assert not tracker.is_loading
    assert changes == [True, False]


def test_release_is_idempotent() -> None:
    tracker = LoadingTracker()
    changes = []
    tracker.subscribe(changes.append)
    ticket = tracker.acquire("fee-balances")
    other = tracker.acquire("students")

    tracker.release(ticket)
    tracker.release(ticket)
    assert tracker.count == 1
    assert changes == [True]

    tracker.release(other)
    assert changes == [True, False]


def test_current_prefers_priority_then_age() -> None:
    tracker = LoadingTracker()
    assert tracker.current is None

    tracker.acquire("students")
    high = tracker.acquire("payment-submit", priority=10, message="Processing payment")
    tracker.acquire("enrollments", priority=10)
    assert tracker.current == high
    assert tracker.current.message == "Processing payment"

    tracker.release(high)
    assert tracker.current.label == "enrollments"


@pytest.mark.asyncio
async def test_track_releases_on_error() -> None:
    tracker = LoadingTracker()
    with pytest.raises(RuntimeError):
        async with tracker.track("fee-balances"):
            assert tracker.is_loading
            raise RuntimeError("boom")
    assert tracker.count == 0


def test_unsubscribe() -> None:
    tracker = LoadingTracker()
    changes = []
    unsubscribe = tracker.subscribe(changes.append)
    unsubscribe()
    tracker.release(tracker.acquire("students"))
    assert changes == []
