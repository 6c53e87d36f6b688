"""CountdownScheduler のテスト"""

import threading

import pytest

from features.totp.application.dto import CredentialInput
from features.totp.application.registry import CredentialRegistry
from features.totp.application.scheduler import CountdownScheduler
from features.totp.domain.generator import generate_for_secret
from tests.helpers.totp_fakes import CANONICAL_SECRET, RFC_SECRET_SHA1


@pytest.fixture
def registry(credential_store, fixed_clock):
    registry = CredentialRegistry(1, credential_store, clock=fixed_clock)
    registry.add(CredentialInput(display_name="first", issuer="Example", secret=CANONICAL_SECRET))
    registry.add(CredentialInput(display_name="second", issuer="Example", secret=RFC_SECRET_SHA1, period=60))
    yield registry
    registry.close()


def test_tick_refreshes_registry_and_notifies(registry, fixed_clock):
    scheduler = CountdownScheduler(registry, clock=fixed_clock)
    received = []
    scheduler.subscribe(received.append)

    fixed_clock.advance(1)
    snapshot = scheduler.tick()

    assert received == [snapshot]
    assert scheduler.tick_count == 1
    assert snapshot is registry.snapshot
    assert snapshot.at_time == fixed_clock()
    # 1111111112 は 30 秒・60 秒どちらの窓でも残り 28 秒
    assert [entry.remaining_seconds for entry in snapshot] == [28, 28]


def test_each_tick_notifies_once_per_subscriber(registry, fixed_clock):
    scheduler = CountdownScheduler(registry, clock=fixed_clock)
    calls = []
    callback = scheduler.subscribe(lambda snapshot: calls.append(snapshot.at_time))
    scheduler.subscribe(callback)

    scheduler.tick()
    scheduler.tick(fixed_clock() + 1)

    assert calls == [fixed_clock(), fixed_clock() + 1]


def test_unsubscribe(registry, fixed_clock):
    scheduler = CountdownScheduler(registry, clock=fixed_clock)
    calls = []
    callback = scheduler.subscribe(calls.append)

    scheduler.unsubscribe(callback)
    scheduler.unsubscribe(callback)
    scheduler.tick()

    assert calls == []


def test_failing_subscriber_does_not_block_others(registry, fixed_clock, caplog):
    scheduler = CountdownScheduler(registry, clock=fixed_clock)
    received = []

    def _broken(snapshot):
        raise RuntimeError("render failed")

    scheduler.subscribe(_broken)
    scheduler.subscribe(received.append)

    scheduler.tick()

    assert len(received) == 1
    assert any(getattr(record, "event", None) == "totp.scheduler.subscriber_failed" for record in caplog.records)


def test_next_delay_aligns_to_second_boundary(registry):
    scheduler = CountdownScheduler(registry, interval=1.0, clock=lambda: 1000.25)

    assert scheduler._next_delay() == pytest.approx(0.755)


def test_interval_falls_back_to_settings(registry):
    assert CountdownScheduler(registry, interval=0).interval == 1.0
    assert CountdownScheduler(registry, interval=0.5).interval == 0.5


def test_background_thread_ticks_until_stopped(registry):
    scheduler = CountdownScheduler(registry, interval=0.02)
    ticked = threading.Event()
    scheduler.subscribe(lambda snapshot: ticked.set() if scheduler.tick_count >= 3 else None)

    scheduler.start()
    try:
        assert scheduler.running
        assert ticked.wait(5)
    finally:
        scheduler.stop()

    assert not scheduler.running
    count = scheduler.tick_count
    threading.Event().wait(0.1)
    assert scheduler.tick_count == count


def test_start_is_idempotent_and_restartable(registry):
    scheduler = CountdownScheduler(registry, interval=0.05)

    scheduler.start()
    thread = scheduler._thread
    scheduler.start()
    assert scheduler._thread is thread
    scheduler.stop()
    scheduler.stop()

    with scheduler:
        assert scheduler.running
        assert scheduler._thread is not thread
    assert not scheduler.running


def test_tick_sweep_keeps_countdown_and_codes_in_step(credential_store, fixed_clock):
    registry = CredentialRegistry(1, credential_store, clock=fixed_clock)
    params = [
        {"period": 15, "algorithm": "SHA1", "digits": 6},
        {"period": 30, "algorithm": "SHA256", "digits": 8},
        {"period": 60, "algorithm": "SHA512", "digits": 6},
    ]
    created = [
        registry.add(CredentialInput(display_name=f"p{index}", issuer="Sweep", secret=RFC_SECRET_SHA1, **values))
        for index, values in enumerate(params)
    ]
    scheduler = CountdownScheduler(registry, clock=fixed_clock)
    start = 1_111_111_080  # 60 の倍数
    previous = {}
    windows = {credential.id: set() for credential in created}
    try:
        for at_time in range(start, start + 180):
            snapshot = scheduler.tick(at_time)
            for credential, values in zip(created, params):
                period = values["period"]
                entry = snapshot.get(credential.id)

                assert 1 <= entry.remaining_seconds <= period
                assert entry.remaining_seconds == period - (at_time % period)
                assert entry.counter == at_time // period
                assert entry.code == generate_for_secret(
                    RFC_SECRET_SHA1,
                    algorithm=values["algorithm"],
                    digits=values["digits"],
                    period=period,
                    at_time=at_time,
                )
                last = previous.get(credential.id)
                if last is not None and last.counter == entry.counter:
                    assert entry.code == last.code
                    assert entry.remaining_seconds == last.remaining_seconds - 1
                previous[credential.id] = entry
                windows[credential.id].add(entry.counter)
    finally:
        registry.close()

    assert scheduler.tick_count == 180
    assert [len(windows[credential.id]) for credential in created] == [12, 6, 3]
