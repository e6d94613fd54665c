"""Per-identity click loop.

One Scheduler drives one identity through

    IDLE -> RUNNING -> (COOLING <-> RUNNING) -> STOPPED

with EXHAUSTED as a parking state when the signer runs out of rent money.

Timing policy:
  - after a successful click sleep randint(min_delay_ms, max_delay_ms) ms,
    or not at all when both bounds are <= 0
  - after a transient failure sleep a fixed backoff (5s) and retry, forever
  - an active window of uniform[60, 120) minutes is drawn at the start of each
    cycle; when it runs out the loop cools down for uniform[10, 30] minutes
  - the on-chain counter is re-read after a successful click at most once
    per counter_refresh seconds, and again before each cooldown

Every sleep waits on the stop event, so stop() takes effect as soon as the
in-flight RPC call (if any) returns.
"""
import asyncio
import logging
import random
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass

import clicker.constants as C
from clicker import derive, randoms
from clicker.builder import RequestBuilder, SubmissionResult
from clicker.config import IdentityConfig
from clicker.errors import ClickerError, DerivationExhausted, EncodingOverflow

log = logging.getLogger("clicker.core")


@dataclass(frozen=True, slots=True)
class CounterSnapshot:
    value: int
    observed_at: float | None = None


class CounterCell:
    """Last observed on-chain counter.

    Written only by the owning Scheduler's loop (after clicks and at the end
    of each active window). Readers get an immutable snapshot and never wait
    on the writer.
    """

    def __init__(self, value: int = 0) -> None:
        self._snap = CounterSnapshot(value)

    def get(self) -> CounterSnapshot:
        return self._snap

    def _set(self, value: int) -> None:
        self._snap = CounterSnapshot(value, time.time())


@dataclass(slots=True)
class SchedulerStats:
    attempts: int = 0
    submitted: int = 0
    succeeded: int = 0
    failed: int = 0
    exhausted: int = 0
    cycles: int = 0
    started_at: float | None = None
    last_signature: str | None = None
    last_error: str | None = None


class Scheduler:
    def __init__(
        self,
        task_id: str,
        cfg: IdentityConfig,
        builder: RequestBuilder,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
        active_minutes: tuple[float, float] = C.ACTIVE_WINDOW_MINUTES,
        cooldown_minutes: tuple[float, float] = C.COOLDOWN_WINDOW_MINUTES,
        transient_backoff: float = C.TRANSIENT_BACKOFF,
        counter_timeout: float = C.COUNTER_TIMEOUT,
        counter_refresh: float = C.COUNTER_REFRESH,
    ):
        self.task_id = task_id
        self.cfg = cfg
        self.identity = cfg.identity
        self.builder = builder
        self.rng = rng or randoms.rng()
        self.clock = clock
        self.active_minutes = active_minutes
        self.cooldown_minutes = cooldown_minutes
        self.transient_backoff = transient_backoff
        self.counter_timeout = counter_timeout
        self.counter_refresh = counter_refresh

        self.phase = C.SchedulerPhase.IDLE
        self.running = False
        self.cycle_started_at: float | None = None
        self.cycle_duration: float = 0.0  # seconds
        self.counter = CounterCell()
        self._counter_read_at: float | None = None
        self.stats = SchedulerStats()

        self._stop = asyncio.Event()
        self._resume = asyncio.Event()

    # ---------------------------------------------------------------- draws

    def draw_delay(self) -> float:
        """Seconds to wait after a successful click."""
        lo, hi = self.cfg.min_delay_ms, self.cfg.max_delay_ms
        if lo <= 0 and hi <= 0:
            return 0.0
        lo = max(lo, 0)
        ms = self.rng.randint(lo, hi) if hi > lo else lo
        return ms / 1000

    def draw_cycle_duration(self) -> float:
        lo, hi = self.active_minutes
        # Half-open: random() never returns 1.0
        return (lo + self.rng.random() * (hi - lo)) * 60

    def draw_cooldown(self) -> float:
        lo, hi = self.cooldown_minutes
        return self.rng.uniform(lo, hi) * 60

    # -------------------------------------------------------------- control

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        if not self._stop.is_set():
            log.info("%s: stop requested", self.task_id)
        self._stop.set()

    def resume(self) -> bool:
        """Let an EXHAUSTED scheduler try again after the signer was topped up."""
        if self.phase != C.SchedulerPhase.EXHAUSTED:
            return False
        self._resume.set()
        return True

    async def _sleep(self, seconds: float) -> bool:
        """Sleep unless stopped first. Returns True if the loop should exit."""
        if seconds > 0 and not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                pass
        return self._stop.is_set()

    def _begin_cycle(self) -> None:
        self.cycle_started_at = self.clock()
        self.cycle_duration = self.draw_cycle_duration()
        log.info("%s: new active window of %.1f min", self.task_id, self.cycle_duration / 60)

    def _cycle_elapsed(self) -> bool:
        return self.clock() - self.cycle_started_at >= self.cycle_duration

    # ----------------------------------------------------------------- loop

    async def run(self) -> None:
        if self.running:
            raise RuntimeError(f"{self.task_id} is already running")
        self.running = True
        self.phase = C.SchedulerPhase.RUNNING
        self.stats.started_at = time.time()
        log.info("%s: starting clicks for %s (owner %s, delay %s-%sms)",
                 self.task_id, self.identity.signer, self.identity.owner,
                 self.cfg.min_delay_ms, self.cfg.max_delay_ms)
        self._begin_cycle()
        try:
            while not self._stop.is_set():
                if self._cycle_elapsed():
                    if await self._cool_down():
                        break
                    continue

                self.phase = C.SchedulerPhase.RUNNING
                result = await self._attempt()
                if self._stop.is_set():
                    break

                match result.outcome:
                    case C.Outcome.SUCCESS:
                        await self._refresh_counter()
                        stopped = await self._sleep(self.draw_delay())
                    case C.Outcome.INSUFFICIENT_RESOURCE:
                        stopped = await self._park()
                    case _:
                        stopped = await self._sleep(self.transient_backoff)
                if stopped:
                    break
        finally:
            self.running = False
            self.phase = C.SchedulerPhase.STOPPED
            log.info("%s: stopped - %s", self.task_id, asdict(self.stats))

    async def _attempt(self) -> SubmissionResult:
        self.stats.attempts += 1
        try:
            result = await self.builder.click(self.identity)
            # click() only returns once sendTransaction was reached
            self.stats.submitted += 1
        except EncodingOverflow:
            raise
        except DerivationExhausted as e:
            log.error("%s: address derivation failed: %s", self.task_id, e)
            result = SubmissionResult(C.Outcome.TRANSIENT_FAILURE, detail=str(e))
        except ClickerError as e:
            result = SubmissionResult(C.Outcome.TRANSIENT_FAILURE, detail=str(e))

        if result.ok:
            self.stats.succeeded += 1
            self.stats.last_signature = result.signature
            log.debug("%s: click %s", self.task_id, result.signature)
        else:
            self.stats.failed += 1
            self.stats.last_error = result.detail
            if result.outcome == C.Outcome.TRANSIENT_FAILURE:
                log.warning("%s: click failed, retrying in %.0fs: %s",
                            self.task_id, self.transient_backoff, result.detail)
        return result

    async def _cool_down(self) -> bool:
        counter = await self.current_observed_counter()
        duration = self.draw_cooldown()
        self.phase = C.SchedulerPhase.COOLING
        self.stats.cycles += 1
        log.info("%s: active window done (cycle %d, counter=%d), cooling down for %.1f min",
                 self.task_id, self.stats.cycles, counter, duration / 60)
        if await self._sleep(duration):
            return True
        self.phase = C.SchedulerPhase.RUNNING
        self._begin_cycle()
        return False

    async def _park(self) -> bool:
        """Wait for resume() or stop() after an insufficient-funds rejection."""
        self.phase = C.SchedulerPhase.EXHAUSTED
        self.stats.exhausted += 1
        log.error("%s: signer %s has insufficient funds for rent, clicks halted until resumed",
                  self.task_id, self.identity.signer)
        self._resume.clear()

        resume_task = asyncio.create_task(self._resume.wait())
        halt_task = asyncio.create_task(self._stop.wait())
        try:
            await asyncio.wait({resume_task, halt_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for t in (resume_task, halt_task):
                t.cancel()

        if self._stop.is_set():
            return True
        log.info("%s: resumed", self.task_id)
        self.phase = C.SchedulerPhase.RUNNING
        return False

    # -------------------------------------------------------------- queries

    async def _refresh_counter(self) -> None:
        now = self.clock()
        if self._counter_read_at is not None and now - self._counter_read_at < self.counter_refresh:
            return
        self._counter_read_at = now
        await self.current_observed_counter()

    async def current_observed_counter(self) -> int:
        """Read the counter from the user-info account.

        Falls back to the last good value when the read fails or the account
        data is too short.
        """
        last = self.counter.get().value
        try:
            user_info, _ = derive.user_info_address(self.identity.owner, self.builder.program)
            data = await asyncio.wait_for(
                self.builder.client.get_account_data(user_info, timeout=self.counter_timeout),
                timeout=self.counter_timeout,
            )
        except (ClickerError, asyncio.TimeoutError) as e:
            log.debug("%s: counter read failed, keeping %d: %s", self.task_id, last, e)
            return last

        end = C.COUNTER_OFFSET + C.COUNTER_SIZE
        if data is None or len(data) < end:
            return last
        value = int.from_bytes(data[C.COUNTER_OFFSET:end], "little")
        self.counter._set(value)
        return value

    def snapshot(self) -> dict:
        counter = self.counter.get()
        remaining = None
        if self.cycle_started_at is not None and self.phase == C.SchedulerPhase.RUNNING:
            remaining = max(0.0, self.cycle_duration - (self.clock() - self.cycle_started_at))
        return {
            "task_id": self.task_id,
            "phase": str(self.phase),
            "running": self.running,
            "signer": str(self.identity.signer),
            "owner": str(self.identity.owner),
            "min_delay_ms": self.cfg.min_delay_ms,
            "max_delay_ms": self.cfg.max_delay_ms,
            "counter": counter.value,
            "counter_observed_at": counter.observed_at,
            "cycle_remaining_s": remaining,
            "stats": asdict(self.stats),
        }
