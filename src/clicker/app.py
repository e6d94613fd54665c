import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import APIRouter, FastAPI, HTTPException, Request
from pydantic import BaseModel

from clicker.config import load_config, load_identities
from clicker.logging_config import setup_logging
from clicker.manager import TaskManager
from clicker.rpc import LedgerClient

setup_logging()
log = logging.getLogger("clicker.app")


class TaskStats(BaseModel):
    attempts: int
    submitted: int
    succeeded: int
    failed: int
    exhausted: int
    cycles: int
    started_at: float | None = None
    last_signature: str | None = None
    last_error: str | None = None


class TaskStatus(BaseModel):
    task_id: str
    phase: str
    running: bool
    signer: str
    owner: str
    min_delay_ms: int
    max_delay_ms: int
    counter: int
    counter_observed_at: float | None = None
    cycle_remaining_s: float | None = None
    stats: TaskStats


class ActionResp(BaseModel):
    task_id: str
    status: str


def _manager(request: Request) -> TaskManager:
    return request.app.state.manager


def _known(manager: TaskManager, task_id: str) -> None:
    if task_id not in manager:
        raise HTTPException(status_code=404, detail=f"Unknown task {task_id!r}")


r_tasks = APIRouter(prefix="/tasks", tags=["Tasks"])


@r_tasks.get("", response_model=list[TaskStatus])
async def list_tasks(request: Request):
    return _manager(request).snapshot()


@r_tasks.post("/stop", response_model=list[ActionResp])
async def stop_all_tasks(request: Request):
    manager = _manager(request)
    await manager.stop_all()
    return [ActionResp(task_id=t, status="stopped") for t in manager.schedulers]


@r_tasks.get("/{task_id}", response_model=TaskStatus)
async def get_task(task_id: str, request: Request):
    """Task status. The counter is the last value the task's own loop observed."""
    manager = _manager(request)
    _known(manager, task_id)
    return manager.get(task_id).snapshot()


@r_tasks.post("/{task_id}/start", response_model=ActionResp)
async def start_task(task_id: str, request: Request):
    manager = _manager(request)
    _known(manager, task_id)
    if manager.is_running(task_id):
        raise HTTPException(status_code=400, detail=f"{task_id} already running")
    manager.start(task_id)
    log.info("%s: started via API", task_id)
    return ActionResp(task_id=task_id, status="started")


@r_tasks.post("/{task_id}/stop", response_model=ActionResp)
async def stop_task(task_id: str, request: Request):
    manager = _manager(request)
    _known(manager, task_id)
    if not manager.is_running(task_id):
        raise HTTPException(status_code=400, detail=f"{task_id} not running")
    await manager.stop(task_id)
    return ActionResp(task_id=task_id, status="stopped")


@r_tasks.post("/{task_id}/resume", response_model=ActionResp)
async def resume_task(task_id: str, request: Request):
    """Retry a task parked after an insufficient-funds rejection."""
    manager = _manager(request)
    _known(manager, task_id)
    if not manager.get(task_id).resume():
        raise HTTPException(status_code=400, detail=f"{task_id} is not waiting for funds")
    return ActionResp(task_id=task_id, status="resumed")


def create_app(*, client: LedgerClient | None = None, config_path: str | Path | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = load_config(config_path)
        rpc = cfg["rpc"]
        ledger = client or LedgerClient(
            rpc["url"],
            timeout=float(rpc["timeout"]),
            submit_timeout=float(rpc["submit_timeout"]),
            commitment=rpc["commitment"],
        )
        log.info("Using RPC %s, program %s", ledger.url, cfg["program"]["id"])

        manager = TaskManager.from_config(cfg, ledger)
        identities = load_identities(cfg["identities"])
        if not identities:
            log.warning("No usable identities configured")
        manager.start_all(identities)
        app.state.manager = manager

        try:
            yield
        finally:
            log.info("Shutting down...")
            await manager.stop_all()
            await ledger.aclose()
            log.info("Shutdown complete")

    app = FastAPI(
        title="Clicker",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Tasks", "description": "Per-identity click tasks"},
        ],
    )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(r_tasks)
    return app


app = create_app()
