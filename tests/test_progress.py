from unittest.mock import AsyncMock

import pytest

from models import ProgressStatus
from orchestration.progress import ProgressReporter, is_valid_transition


@pytest.mark.asyncio
async def test_events_are_numbered_in_emission_order():
    received = []
    reporter = ProgressReporter(received.append)

    await reporter.started("research", "Researching topic...")
    await reporter.completed("research", "Research complete", "3 sources")
    await reporter.skipped("brief", "content brief")

    assert [e.sequence for e in received] == [1, 2, 3]
    assert received[1].details == "3 sources"
    assert received[2].status is ProgressStatus.COMPLETED
    assert received[2].message == "Skipped content brief"
    assert reporter.history == received
    assert reporter.last_phase == "brief"


@pytest.mark.asyncio
async def test_async_observer_is_awaited():
    observer = AsyncMock()
    reporter = ProgressReporter(observer)

    event = await reporter.failed("writing", "Writer failed", "boom")

    observer.assert_awaited_once_with(event)
    assert event.status is ProgressStatus.ERROR


@pytest.mark.asyncio
async def test_observer_error_goes_to_handler():
    errors = []

    def observer(event):
        raise RuntimeError("render failed")

    reporter = ProgressReporter(observer, lambda exc, event: errors.append((exc, event)))

    event = await reporter.started("research", "Researching topic...")

    assert len(errors) == 1
    assert str(errors[0][0]) == "render failed"
    assert errors[0][1] is event


@pytest.mark.asyncio
async def test_failing_error_handler_is_contained():
    observer = AsyncMock(side_effect=RuntimeError("observer"))
    on_error = AsyncMock(side_effect=RuntimeError("handler"))
    reporter = ProgressReporter(observer, on_error)

    await reporter.started("research", "Researching topic...")
    await reporter.completed("research", "Research complete")

    assert on_error.await_count == 2
    assert len(reporter.history) == 2


@pytest.mark.asyncio
async def test_without_observer_events_are_still_recorded():
    reporter = ProgressReporter()
    await reporter.started("research", "Researching topic...")
    assert len(reporter.history) == 1


@pytest.mark.parametrize(
    "previous, phase, expected",
    [
        (None, "research", True),
        ("research", "research", True),
        ("research", "brief", True),
        ("brief", "writing", True),
        ("decide", "revision", True),
        ("revision", "scoring", True),
        ("scoring", "finalize", True),
        ("research", "finalize", True),
        ("writing", "research", False),
        ("qa", "scoring", False),
        ("decide", "unknown", False),
    ],
)
def test_transitions(previous, phase, expected):
    assert is_valid_transition(previous, phase) is expected
