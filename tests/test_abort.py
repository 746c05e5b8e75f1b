import asyncio
import gc

import pytest

from core.abort import AbortCoordinator, AbortToken, describe_exception
from core.errors import PipelineCancelled, StageTimeoutError


def test_check_passes_until_aborted():
    token = AbortToken()
    token.check("anything")
    token.abort("user request")
    with pytest.raises(PipelineCancelled) as excinfo:
        token.check("before writer")
    assert excinfo.value.details == {
        "context": "before writer",
        "abort_reason": "user request",
    }


def test_first_abort_reason_wins():
    token = AbortToken()
    token.abort("first")
    token.abort("second")
    assert token.reason == "first"


def test_linked_token_follows_parent():
    parent = AbortToken()
    child = AbortToken.linked(parent, None)
    assert not child.aborted
    parent.abort("shutdown")
    assert child.aborted
    assert child.reason == "shutdown"


def test_parent_does_not_keep_linked_children_alive():
    parent = AbortToken()
    for _ in range(3):
        AbortToken.linked(parent)
    kept = AbortToken.linked(parent)
    gc.collect()

    assert len(parent._children) == 1
    parent.abort("shutdown")
    assert kept.aborted


def test_linked_to_aborted_parent_starts_aborted():
    parent = AbortToken()
    parent.abort()
    assert AbortToken.linked(parent).aborted


@pytest.mark.asyncio
async def test_guard_refuses_to_start_when_aborted():
    coordinator = AbortCoordinator()
    coordinator.token.abort()
    called = False

    async def stage():
        nonlocal called
        called = True

    with pytest.raises(PipelineCancelled):
        await coordinator.guard("research", stage)
    assert called is False


@pytest.mark.asyncio
async def test_guard_discards_result_when_aborted_mid_call():
    coordinator = AbortCoordinator()

    async def stage():
        coordinator.token.abort("stop")
        return "draft"

    with pytest.raises(PipelineCancelled) as excinfo:
        await coordinator.guard("writer", stage)
    assert excinfo.value.details["context"] == "after writer"


@pytest.mark.asyncio
async def test_guard_reports_failure_after_abort_as_cancellation():
    coordinator = AbortCoordinator()

    async def stage():
        coordinator.token.abort("stop")
        raise ConnectionError("socket closed")

    with pytest.raises(PipelineCancelled):
        await coordinator.guard("qa", stage)


@pytest.mark.asyncio
async def test_guard_timeout_raises_stage_timeout():
    coordinator = AbortCoordinator()

    async def stage():
        await asyncio.sleep(1)

    with pytest.raises(StageTimeoutError) as excinfo:
        await coordinator.guard("brief", stage, timeout=0.01)
    assert excinfo.value.stage == "brief"


@pytest.mark.asyncio
async def test_guard_propagates_stage_errors():
    coordinator = AbortCoordinator()

    async def stage():
        raise ValueError("bad payload")

    with pytest.raises(ValueError):
        await coordinator.guard("scorer", stage, timeout=1.0)


@pytest.mark.asyncio
async def test_wait_returns_once_aborted():
    token = AbortToken()
    waiter = asyncio.create_task(token.wait())
    await asyncio.sleep(0)
    token.abort()
    await asyncio.wait_for(waiter, timeout=1)


def test_describe_exception():
    assert describe_exception(KeyError("x")) == {"type": "KeyError", "message": "'x'"}
