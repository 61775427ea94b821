from __future__ import annotations

import asyncio

from pipeline.cancellation import CancellationToken, OperationCancelled
from pipeline.runner import STATUS_CANCELED, STATUS_DONE, InputError, Outcome, RunController


def test_completed_run_sets_done_and_notifies() -> None:
    changes: list[bool] = []
    controller = RunController("test")
    controller.on_change = lambda: changes.append(controller.busy)

    async def action(token: CancellationToken) -> None:
        assert controller.busy

    assert asyncio.run(controller.run(action)) is Outcome.COMPLETED
    assert controller.status == STATUS_DONE
    assert not controller.busy
    assert changes[0] is True and changes[-1] is False


def test_second_run_while_busy_is_skipped() -> None:
    controller = RunController("test")
    calls: list[str] = []

    async def slow(token: CancellationToken) -> None:
        calls.append("slow")
        await asyncio.sleep(0.05)

    async def run() -> tuple[Outcome, Outcome]:
        first = asyncio.ensure_future(controller.run(slow))
        await asyncio.sleep(0)
        second = await controller.run(slow)
        return await first, second

    first, second = asyncio.run(run())
    assert first is Outcome.COMPLETED
    assert second is Outcome.SKIPPED
    assert calls == ["slow"]


def test_cancel_ends_run_as_canceled() -> None:
    controller = RunController("test")

    async def forever(token: CancellationToken) -> None:
        await asyncio.sleep(3600)

    async def run() -> Outcome:
        task = asyncio.ensure_future(controller.run(forever))
        await asyncio.sleep(0.01)
        controller.cancel()
        return await task

    assert asyncio.run(run()) is Outcome.CANCELED
    assert controller.status == STATUS_CANCELED
    assert not controller.busy


def test_operation_cancelled_is_not_an_error() -> None:
    controller = RunController("test")

    async def action(token: CancellationToken) -> None:
        raise OperationCancelled()

    assert asyncio.run(controller.run(action)) is Outcome.CANCELED
    assert controller.last_error is None


def test_error_becomes_status_message() -> None:
    controller = RunController("test")

    async def action(token: CancellationToken) -> None:
        raise RuntimeError("disk on fire")

    assert asyncio.run(controller.run(action)) is Outcome.FAILED
    assert controller.status == "Error: disk on fire"
    assert isinstance(controller.last_error, RuntimeError)
    assert not controller.busy


def test_input_error_status_is_the_message() -> None:
    controller = RunController("test")

    async def action(token: CancellationToken) -> None:
        raise InputError("No video file selected.")

    assert asyncio.run(controller.run(action)) is Outcome.FAILED
    assert controller.status == "No video file selected."


def test_each_run_gets_a_fresh_token() -> None:
    controller = RunController("test")
    tokens: list[CancellationToken] = []

    async def action(token: CancellationToken) -> None:
        tokens.append(token)
        token.cancel()
        token.raise_if_cancelled()

    asyncio.run(controller.run(action))
    asyncio.run(controller.run(action))
    assert tokens[0] is not tokens[1]


def test_custom_status_is_kept() -> None:
    controller = RunController("test")

    async def action(token: CancellationToken) -> None:
        controller.set_status("Model downloaded.")

    asyncio.run(controller.run(action))
    assert controller.status == "Model downloaded."
