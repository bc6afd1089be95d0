import asyncio
import os
import signal
import threading

import pytest

from sigcancel.adapter import MANUAL_REASON, SignalCancelAdapter, interrupt_token
from sigcancel.cancel import CancelToken, TokenView, background
from sigcancel.exceptions import UnsupportedSignalError

posix_only = pytest.mark.skipif(
    not hasattr(signal, "SIGUSR1"),
    reason="POSIX signals with loop.add_signal_handler required",
)


@pytest.mark.unit
def test_construction_requires_running_loop(fake_source):
    with pytest.raises(RuntimeError):
        SignalCancelAdapter(background(), signal.SIGINT, source=fake_source)
    assert fake_source.subscriptions == []


@pytest.mark.asyncio
async def test_construction_requires_a_signal(fake_source):
    with pytest.raises(ValueError):
        SignalCancelAdapter(background(), source=fake_source)


@pytest.mark.asyncio
async def test_fresh_adapter_is_not_cancelled(fake_source):
    adapter = SignalCancelAdapter(background(), signal.SIGINT, source=fake_source)
    await asyncio.sleep(0)

    assert adapter.token.cancelled is False
    assert adapter.listening
    assert adapter.signals == (signal.SIGINT,)
    assert adapter.name == "SIGINT"
    assert len(fake_source.subscriptions) == 1


@pytest.mark.asyncio
async def test_token_is_a_child_of_parent(fake_source):
    parent = background()
    adapter = SignalCancelAdapter(parent, signal.SIGINT, source=fake_source)

    assert adapter.token is not parent
    assert adapter.token.parent is parent
    assert isinstance(adapter.token, TokenView)
    assert not hasattr(adapter.token, "cancel")


@pytest.mark.asyncio
async def test_signal_delivery_cancels_token(fake_source, eventually):
    adapter = SignalCancelAdapter(background(), signal.SIGINT, source=fake_source)
    await asyncio.sleep(0)

    assert fake_source.raise_signal(signal.SIGINT) == 1
    await asyncio.wait_for(adapter.wait(), timeout=1.0)

    assert adapter.token.cancelled
    assert adapter.token.reason == "signal SIGINT"
    await eventually(lambda: not adapter.listening)


@pytest.mark.asyncio
async def test_any_subscribed_signal_cancels(fake_source):
    adapter = SignalCancelAdapter(
        background(), signal.SIGUSR1, "SIGUSR2", source=fake_source
    )

    fake_source.raise_signal(signal.SIGUSR2)
    await asyncio.wait_for(adapter.token.wait(), timeout=1.0)

    assert adapter.token.reason == "signal SIGUSR2"
    assert adapter.name == "SIGUSR1+SIGUSR2"


@pytest.mark.asyncio
async def test_unsubscribed_signal_is_ignored(fake_source):
    adapter = SignalCancelAdapter(background(), signal.SIGINT, source=fake_source)

    assert fake_source.raise_signal(signal.SIGTERM) == 0
    await asyncio.sleep(0.01)

    assert not adapter.token.cancelled
    assert adapter.listening


@pytest.mark.asyncio
async def test_repeated_cancel_now_is_harmless(fake_source):
    adapter = SignalCancelAdapter(background(), signal.SIGINT, source=fake_source)

    assert adapter.cancel_now() is True
    assert adapter.cancel_now() is False

    assert adapter.token.cancelled
    assert adapter.token.reason == MANUAL_REASON


@pytest.mark.asyncio
async def test_concurrent_cancel_now_from_threads(fake_source):
    adapter = SignalCancelAdapter(background(), signal.SIGINT, source=fake_source)
    transitions: list[CancelToken] = []
    adapter.token.add_done_callback(transitions.append)

    workers = 8
    barrier = threading.Barrier(workers)
    results: list[bool] = []

    def _cancel() -> None:
        barrier.wait()
        results.append(adapter.cancel_now())

    threads = [threading.Thread(target=_cancel) for _ in range(workers)]
    for thread in threads:
        thread.start()
    await asyncio.to_thread(lambda: [thread.join(timeout=5) for thread in threads])

    assert results.count(True) == 1
    assert len(transitions) == 1


@pytest.mark.asyncio
async def test_signal_racing_manual_cancel_yields_one_transition(fake_source, eventually):
    adapter = SignalCancelAdapter(background(), signal.SIGINT, source=fake_source)
    transitions: list[CancelToken] = []
    adapter.token.add_done_callback(transitions.append)
    await asyncio.sleep(0)

    canceller = threading.Thread(target=adapter.cancel_now)
    canceller.start()
    fake_source.raise_signal(signal.SIGINT)
    await asyncio.to_thread(canceller.join, 5)

    await asyncio.wait_for(adapter.wait(), timeout=1.0)
    await eventually(lambda: not adapter.listening)

    assert len(transitions) == 1
    assert adapter.token.reason in (MANUAL_REASON, "signal SIGINT")
    for _ in range(5):
        await asyncio.sleep(0)
        assert adapter.token.cancelled


@pytest.mark.asyncio
async def test_signal_after_manual_cancel_is_noop(fake_source, eventually):
    adapter = SignalCancelAdapter(background(), signal.SIGINT, source=fake_source)

    adapter.cancel_now("operator")
    await eventually(lambda: not adapter.listening)
    fake_source.raise_signal(signal.SIGINT)
    await asyncio.sleep(0.01)

    assert adapter.token.reason == "operator"


@pytest.mark.asyncio
async def test_manual_cancel_retires_listener_but_keeps_subscription(
    fake_source, eventually
):
    adapter = SignalCancelAdapter(background(), signal.SIGINT, source=fake_source)
    await asyncio.sleep(0)

    adapter.cancel_now()

    await eventually(lambda: not adapter.listening)
    assert len(fake_source.subscriptions) == 1


@pytest.mark.asyncio
async def test_parent_cancel_cancels_token_and_retires_listener(fake_source, eventually):
    parent = background()
    adapter = SignalCancelAdapter(parent, signal.SIGINT, source=fake_source)

    parent.cancel("process exit")

    assert adapter.token.cancelled
    assert adapter.token.reason == "process exit"
    await eventually(lambda: not adapter.listening)


@pytest.mark.asyncio
async def test_cancelled_parent_gives_cancelled_adapter(fake_source, eventually):
    parent = background()
    parent.cancel()

    adapter = SignalCancelAdapter(parent, signal.SIGINT, source=fake_source)

    assert adapter.token.cancelled
    await eventually(lambda: not adapter.listening)


@pytest.mark.asyncio
async def test_unknown_signal_name_fails_construction(fake_source):
    with pytest.raises(UnsupportedSignalError):
        SignalCancelAdapter(background(), "SIGBOGUS", source=fake_source)
    assert fake_source.subscriptions == []


@pytest.mark.asyncio
async def test_rejected_subscription_releases_earlier_ones(fake_source_cls):
    source = fake_source_cls(unsupported=[signal.SIGTERM])

    with pytest.raises(UnsupportedSignalError):
        SignalCancelAdapter(background(), signal.SIGINT, signal.SIGTERM, source=source)

    assert source.subscriptions == []


@pytest.mark.asyncio
async def test_listener_events_carry_adapter_context(fake_source, context_logs):
    adapter = SignalCancelAdapter(
        background(), signal.SIGINT, source=fake_source, name="graceful"
    )
    await asyncio.sleep(0)

    fake_source.raise_signal(signal.SIGINT)
    await asyncio.wait_for(adapter.wait(), timeout=1.0)
    await asyncio.sleep(0)

    events = {entry["event"]: entry for entry in context_logs.entries}
    assert events["signal_cancelling_token"]["signal"] == "SIGINT"
    assert events["signal_cancelling_token"]["adapter"] == "graceful"
    assert events["listener_retired"]["adapter"] == "graceful"
    assert events["listener_retired"]["reason"] == "signal SIGINT"


@pytest.mark.asyncio
async def test_interrupt_token_mirrors_adapter(fake_source):
    token, cancel = interrupt_token(source=fake_source)

    assert not token.cancelled
    assert fake_source.subscriptions[0].signal is signal.SIGINT

    fake_source.raise_signal("INT")
    await asyncio.wait_for(token.wait(), timeout=1.0)
    assert cancel() is False


@posix_only
@pytest.mark.integration
@pytest.mark.asyncio
async def test_real_signal_cancels_adapter(real_source):
    adapter = SignalCancelAdapter(background(), signal.SIGUSR1)
    assert adapter.token.cancelled is False

    os.kill(os.getpid(), signal.SIGUSR1)

    await asyncio.wait_for(adapter.token.wait(), timeout=2.0)
    assert adapter.token.cancelled
    assert adapter.token.reason == "signal SIGUSR1"


@posix_only
@pytest.mark.integration
@pytest.mark.asyncio
async def test_uncatchable_signal_fails_construction(real_source):
    with pytest.raises(UnsupportedSignalError):
        SignalCancelAdapter(background(), signal.SIGKILL)


@posix_only
@pytest.mark.integration
@pytest.mark.asyncio
async def test_failed_construction_restores_default_handlers(real_source):
    with pytest.raises(UnsupportedSignalError):
        SignalCancelAdapter(background(), signal.SIGUSR1, signal.SIGKILL)

    assert real_source.signals == ()
    assert signal.getsignal(signal.SIGUSR1) == signal.SIG_DFL
