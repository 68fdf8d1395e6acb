from __future__ import annotations

import asyncio

import pytest

from context_stacker.scheduling import CancellationToken, Debouncer


@pytest.mark.unit
def test_cancellation_token() -> None:
    token = CancellationToken()
    assert token.is_cancelled is False

    token.cancel()

    assert token.is_cancelled is True


@pytest.mark.unit
def test_debouncer_coalesces_bursts() -> None:
    calls: list[int] = []

    async def action() -> None:
        calls.append(1)

    async def scenario() -> None:
        debouncer = Debouncer(0.01, action)
        for _ in range(3):
            debouncer.trigger()
        assert debouncer.pending
        await debouncer.wait()
        assert not debouncer.pending

    asyncio.run(scenario())

    assert calls == [1]


@pytest.mark.unit
def test_debouncer_flush_and_cancel() -> None:
    calls: list[str] = []

    async def action() -> None:
        calls.append("run")

    async def scenario() -> None:
        debouncer = Debouncer(10, action)
        debouncer.trigger()
        await debouncer.flush()
        await debouncer.flush()

        debouncer.trigger()
        debouncer.cancel()
        await debouncer.wait()

    asyncio.run(scenario())

    assert calls == ["run"]


@pytest.mark.unit
def test_debouncer_logs_failing_action(mocker) -> None:  # noqa: ANN001
    log = mocker.patch("context_stacker.scheduling.logger")

    async def action() -> None:
        raise RuntimeError("boom")

    async def scenario() -> None:
        debouncer = Debouncer(0, action)
        debouncer.trigger()
        await debouncer.wait()

    asyncio.run(scenario())

    log.exception.assert_called_once()
