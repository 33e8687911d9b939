"""REST API routes for task operations."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from vault_tasks.models.results import FailureKind
from vault_tasks.tools.task_tools import (
    handle_cache_status,
    handle_refresh,
    handle_task_add,
    handle_task_delete,
    handle_task_dependencies,
    handle_task_get,
    handle_task_list,
    handle_task_stats,
    handle_task_toggle,
    handle_task_update,
    handle_undo,
    handle_values,
)

STATUS_CODES = {
    FailureKind.VALIDATION.value: 400,
    FailureKind.CONFLICT.value: 409,
    FailureKind.NOT_FOUND.value: 404,
    FailureKind.STORE.value: 502,
}


class TaskAddBody(BaseModel):
    text: str
    file_path: Optional[str] = None
    owner: Optional[str] = None
    due: Optional[str] = None
    project: Optional[str] = None
    stage: Optional[str] = None
    priority: Optional[str] = None
    tags: Optional[str] = None
    recurrence: Optional[str] = None
    estimate: Optional[str] = None
    at_line: Optional[int] = None


class TaskUpdateBody(BaseModel):
    text: Optional[str] = None
    completed: Optional[bool] = None
    owner: Optional[str] = None
    due: Optional[str] = None
    project: Optional[str] = None
    stage: Optional[str] = None
    priority: Optional[str] = None
    tags: Optional[str] = None
    recurrence: Optional[str] = None
    estimate: Optional[str] = None
    logged: Optional[str] = None
    blocked_by: Optional[str] = None
    blocks: Optional[str] = None


class ToggleBody(BaseModel):
    stage: Optional[str] = None


def _check(result):
    if isinstance(result, dict) and "error" in result:
        status = STATUS_CODES.get(result.get("kind"), 400)
        raise HTTPException(status_code=status, detail=result["error"])
    return result


def register_task_routes(app_router: APIRouter, engine) -> None:
    """Attach task REST routes that use the shared engine."""

    @app_router.get("/tasks")
    def list_tasks(
        q: Optional[str] = Query(None),
        completed: Optional[bool] = Query(None),
        owner: Optional[str] = Query(None),
        project: Optional[str] = Query(None),
        stage: Optional[str] = Query(None),
        priority: Optional[str] = Query(None),
        tags: Optional[str] = Query(None),
        file: Optional[str] = Query(None),
        search: Optional[str] = Query(None),
        due: Optional[str] = Query(None),
        due_date: Optional[str] = Query(None),
        due_from: Optional[str] = Query(None),
        due_to: Optional[str] = Query(None),
        blocked: Optional[bool] = Query(None),
        limit: int = Query(200),
    ):
        try:
            return handle_task_list(
                engine,
                q=q,
                completed=completed,
                owner=owner,
                project=project,
                stage=stage,
                priority=priority,
                tags=tags,
                file=file,
                search=search,
                due=due,
                due_date=due_date,
                due_from=due_from,
                due_to=due_to,
                blocked=blocked,
                limit=limit,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.post("/tasks", status_code=201)
    async def add_task(body: TaskAddBody):
        return _check(await handle_task_add(engine, **body.model_dump()))

    # Task ids contain slashes, so the suffixed routes come before the bare ones.
    @app_router.post("/tasks/{task_id:path}/toggle")
    async def toggle_task(task_id: str, body: Optional[ToggleBody] = None):
        stage = body.stage if body else None
        return _check(await handle_task_toggle(engine, task_id=task_id, stage=stage))

    @app_router.get("/tasks/{task_id:path}/dependencies")
    def get_dependencies(task_id: str):
        return _check(handle_task_dependencies(engine, task_id=task_id))

    @app_router.get("/tasks/{task_id:path}")
    def get_task(task_id: str):
        return _check(handle_task_get(engine, task_id=task_id))

    @app_router.patch("/tasks/{task_id:path}")
    async def update_task(task_id: str, body: TaskUpdateBody):
        return _check(await handle_task_update(engine, task_id=task_id, **body.model_dump()))

    @app_router.delete("/tasks/{task_id:path}")
    async def delete_task(task_id: str):
        return _check(await handle_task_delete(engine, task_id=task_id))

    @app_router.get("/stats")
    def get_stats():
        return handle_task_stats(engine)

    @app_router.get("/values/{field}")
    def get_values(field: str):
        return _check(handle_values(engine, field=field))

    @app_router.post("/undo")
    async def undo():
        return _check(await handle_undo(engine))

    @app_router.post("/refresh")
    async def refresh():
        return _check(await handle_refresh(engine))

    @app_router.get("/cache/status")
    def get_cache_status():
        return handle_cache_status(engine)
