import asyncio
import logging
from typing import Any

from solders.pubkey import Pubkey

from clicker.builder import RequestBuilder
from clicker.config import IdentityConfig
from clicker.rpc import LedgerClient
from clicker.scheduler import Scheduler

log = logging.getLogger("clicker.manager")


class TaskManager:
    """Owns one Scheduler and one asyncio task per identity.

    Schedulers share the RPC client and the (stateless) request builder but no
    loop state; a task that dies is logged and leaves the others running.
    """

    def __init__(self, client: LedgerClient, *, program: Pubkey | None = None, **scheduler_opts: Any):
        self.client = client
        self.builder = RequestBuilder(client, program=program)
        self.scheduler_opts = scheduler_opts
        self.configs: dict[str, IdentityConfig] = {}
        self.schedulers: dict[str, Scheduler] = {}
        self.tasks: dict[str, asyncio.Task] = {}

    @classmethod
    def from_config(cls, cfg: dict, client: LedgerClient) -> "TaskManager":
        sched = cfg["schedule"]
        return cls(
            client,
            program=Pubkey.from_string(cfg["program"]["id"]),
            active_minutes=tuple(sched["active_minutes"]),
            cooldown_minutes=tuple(sched["cooldown_minutes"]),
            transient_backoff=float(sched["transient_backoff"]),
            counter_refresh=float(sched["counter_refresh"]),
        )

    def __contains__(self, task_id: str) -> bool:
        return task_id in self.schedulers

    def get(self, task_id: str) -> Scheduler:
        return self.schedulers[task_id]

    def is_running(self, task_id: str) -> bool:
        t = self.tasks.get(task_id)
        return t is not None and not t.done()

    def start(self, task_id: str, identity_cfg: IdentityConfig | None = None) -> Scheduler:
        """Launch a scheduler for task_id.

        Without identity_cfg the task is restarted with the identity it was
        last started with. Raises KeyError for an unknown task and ValueError
        if it is already running.
        """
        if self.is_running(task_id):
            raise ValueError(f"{task_id} is already running")
        cfg = identity_cfg or self.configs[task_id]
        self.configs[task_id] = cfg

        sched = Scheduler(task_id, cfg, self.builder, **self.scheduler_opts)
        task = asyncio.create_task(sched.run(), name=task_id)
        task.add_done_callback(self._on_done)
        self.schedulers[task_id] = sched
        self.tasks[task_id] = task
        return sched

    def start_all(self, identities: list[tuple[str, IdentityConfig]]) -> None:
        for task_id, cfg in identities:
            self.start(task_id, cfg)
        log.info("Started %d click task(s): %s", len(identities), ", ".join(t for t, _ in identities))

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            log.warning("%s: task cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            log.error("%s: task died: %s", task.get_name(), exc, exc_info=exc)

    async def stop(self, task_id: str) -> None:
        sched = self.schedulers[task_id]
        sched.stop()
        task = self.tasks.get(task_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def stop_all(self) -> None:
        for sched in self.schedulers.values():
            sched.stop()
        if self.tasks:
            await asyncio.gather(*self.tasks.values(), return_exceptions=True)
        log.info("All click tasks stopped")

    def snapshot(self) -> list[dict]:
        return [s.snapshot() for s in self.schedulers.values()]
