import asyncio

import pytest

import clicker.constants as C
from clicker.config import load_config
from clicker.errors import EncodingOverflow
from clicker.manager import TaskManager

from conftest import FakeLedger, identity_cfg, make_identity, wait_until


async def test_identities_progress_independently():
    ledger = FakeLedger()
    manager = TaskManager(ledger)
    a, b = make_identity(), make_identity()
    manager.start("task1", identity_cfg(a, 0, 0))
    manager.start("task2", identity_cfg(b, 500, 500))

    await asyncio.sleep(1.2)
    await manager.stop_all()

    times_a = ledger.sent_by(a.signer)
    times_b = ledger.sent_by(b.signer)
    assert 2 <= len(times_b) <= 3
    assert all(later - earlier >= 0.49 for earlier, later in zip(times_b, times_b[1:]))
    # No added sleep for A: it keeps clicking while B waits out its delay
    assert len(times_a) > 10 * len(times_b)
    assert any(times_b[0] < t < times_b[1] for t in times_a)
    assert not manager.is_running("task1")
    assert not manager.is_running("task2")


async def test_dead_task_does_not_affect_others(caplog):
    ledger = FakeLedger()
    manager = TaskManager(ledger)
    bad, good = make_identity(), make_identity()
    real_click = manager.builder.click

    async def click(identity):
        if identity is bad:
            raise EncodingOverflow("opcode[8]=300 does not fit in one byte")
        return await real_click(identity)

    manager.builder.click = click
    manager.start("task1", identity_cfg(bad, 0, 0))
    manager.start("task2", identity_cfg(good, 10, 10))

    await wait_until(lambda: manager.tasks["task1"].done())
    await wait_until(lambda: len(ledger.sent_by(good.signer)) >= 3)
    assert manager.is_running("task2")
    assert "task1: task died" in caplog.text

    await manager.stop_all()


async def test_start_stop_restart(identity):
    manager = TaskManager(FakeLedger())
    first = manager.start("task1", identity_cfg(identity, 60_000, 60_000))
    await wait_until(lambda: first.running)

    with pytest.raises(ValueError, match="already running"):
        manager.start("task1")

    await manager.stop("task1")
    assert not manager.is_running("task1")
    assert first.phase == C.SchedulerPhase.STOPPED

    second = manager.start("task1")
    assert second is not first
    assert second.identity is identity
    await wait_until(lambda: second.running)
    await manager.stop_all()
    assert not second.running


def test_start_unknown_task_needs_identity():
    manager = TaskManager(FakeLedger())
    with pytest.raises(KeyError):
        manager.start("task9")


async def test_snapshot_lists_every_task():
    manager = TaskManager(FakeLedger())
    manager.start_all([
        ("task1", identity_cfg(make_identity(), 60_000, 60_000)),
        ("task2", identity_cfg(make_identity(), 60_000, 60_000)),
    ])
    await wait_until(lambda: all(s.running for s in manager.schedulers.values()))
    assert [s["task_id"] for s in manager.snapshot()] == ["task1", "task2"]
    assert "task1" in manager
    await manager.stop_all()


def test_from_config(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        "[schedule]\n"
        "active_minutes = [1.0, 2.0]\n"
        "cooldown_minutes = [3.0, 4.0]\n"
        "transient_backoff = 1.5\n"
    )
    manager = TaskManager.from_config(load_config(path), FakeLedger())
    assert str(manager.builder.program) == C.PROGRAM_ID
    assert manager.scheduler_opts == {
        "active_minutes": (1.0, 2.0),
        "cooldown_minutes": (3.0, 4.0),
        "transient_backoff": 1.5,
        "counter_refresh": C.COUNTER_REFRESH,
    }
