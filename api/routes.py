"""REST route handlers for the task-board API.

Routes wrap TaskEngine operations with HTTP semantics. All task mutations
go through the engine (source of truth for business logic).
"""

from typing import Any, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.websockets import WebSocket, WebSocketDisconnect

from api.deps import get_engine
from api.models import (
    AddDependencyRequest,
    CascadeResponse,
    CreateTaskRequest,
    DependencyInfo,
    DependencyResponse,
    ScheduleRequest,
    TaskDetailResponse,
    TaskLogResponse,
    TaskResponse,
    UpdateDependencyRequest,
    UpdateTaskRequest,
    WorkflowCompleteResponse,
    WorkflowResponse,
)
from api.ws import manager
from db.engine import TaskEngine
from db.errors import TaskBoardError
from db.models import Task

router = APIRouter()

_STATUS_CODES = {
    "not_found": 404,
    "conflict": 409,
    "invalid_input": 422,
    "invalid_status": 422,
}


def _raise_http(exc: TaskBoardError) -> NoReturn:
    """Convert an engine error to HTTPException."""
    raise HTTPException(
        status_code=_STATUS_CODES.get(exc.code, 400), detail=str(exc)
    ) from exc


def _brief(task: Task) -> dict[str, Any]:
    return {"id": task.id, "title": task.title, "status": task.status.value}


def _task_detail(engine: TaskEngine, task_id: int) -> dict[str, Any]:
    task = engine.get_task(task_id)
    blockers, blocked_by = engine.get_all_dependencies(task_id)
    result = task.to_dict()
    result["dependencies"] = DependencyInfo(
        blockers=[_brief(t) for t in blockers],
        blocked_by=[_brief(t) for t in blocked_by],
        open_blockers=engine.get_open_blocker_count(task_id),
        is_blocked=engine.is_blocked(task_id),
    )
    result["subtasks"] = [_brief(t) for t in engine.store.get_subtasks(task_id)]
    return result


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# ── Task endpoints ─────────────────────────────────────────


@router.post("/tasks", status_code=201, response_model=TaskResponse)
def create_task_endpoint(
    body: CreateTaskRequest,
    engine: TaskEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Create a task, optionally as a subtask or on a schedule."""
    try:
        task = engine.create_task(
            body.title,
            body=body.body,
            parent_id=body.parent_id,
            status=body.status,
            scheduled_at=body.scheduled_at,
            recurrence=body.recurrence,
        )
    except TaskBoardError as e:
        _raise_http(e)
    return task.to_dict()


@router.get("/tasks", response_model=list[TaskResponse])
def list_tasks_endpoint(
    status: str | None = None,
    parent_id: int | None = None,
    limit: int | None = None,
    engine: TaskEngine = Depends(get_engine),
) -> list[dict[str, Any]]:
    """List tasks, pinned first."""
    try:
        tasks = engine.list_tasks(status=status, parent_id=parent_id, limit=limit)
    except TaskBoardError as e:
        _raise_http(e)
    return [t.to_dict() for t in tasks]


@router.get("/tasks/{task_id}", response_model=TaskDetailResponse)
def get_task_endpoint(
    task_id: int,
    engine: TaskEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Get a task with its dependencies and subtasks."""
    try:
        return _task_detail(engine, task_id)
    except TaskBoardError as e:
        _raise_http(e)


@router.patch("/tasks/{task_id}", response_model=TaskDetailResponse)
def update_task_endpoint(
    task_id: int,
    body: UpdateTaskRequest,
    engine: TaskEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Update a task's status, output, pin, title or body in one transaction."""
    try:
        with engine.store.transaction():
            if body.title is not None or body.body is not None:
                engine.update_task(task_id, title=body.title, body=body.body)
            if body.output is not None:
                engine.set_output(task_id, body.output)
            if body.pinned is not None:
                engine.set_pinned(task_id, body.pinned)
            if body.status is not None:
                engine.transition_status(task_id, body.status)
            # Unknown IDs still 404 when the body is empty
            engine.get_task(task_id)
        return _task_detail(engine, task_id)
    except TaskBoardError as e:
        _raise_http(e)


@router.delete("/tasks/{task_id}", status_code=204)
def delete_task_endpoint(
    task_id: int,
    engine: TaskEngine = Depends(get_engine),
) -> Response:
    """Delete a task. Its edges and logs go with it; subtasks become top-level."""
    try:
        engine.delete_task(task_id)
    except TaskBoardError as e:
        _raise_http(e)
    return Response(status_code=204)


@router.get("/tasks/{task_id}/logs", response_model=list[TaskLogResponse])
def list_task_logs(
    task_id: int,
    limit: int = 1000,
    engine: TaskEngine = Depends(get_engine),
) -> list[dict[str, Any]]:
    """Get a task's log lines, newest first."""
    try:
        return engine.get_task_logs(task_id, limit)
    except TaskBoardError as e:
        _raise_http(e)


# ── Schedule endpoints ─────────────────────────────────────


@router.put("/tasks/{task_id}/schedule", response_model=TaskResponse)
def update_schedule_endpoint(
    task_id: int,
    body: ScheduleRequest,
    engine: TaskEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Set or clear a task's schedule and recurrence."""
    try:
        task = engine.update_schedule(task_id, body.scheduled_at, body.recurrence)
    except TaskBoardError as e:
        _raise_http(e)
    return task.to_dict()


@router.post("/tasks/{task_id}/queue-scheduled", response_model=TaskResponse)
def queue_scheduled_endpoint(
    task_id: int,
    engine: TaskEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Queue a scheduled task now, re-arming it if it recurs."""
    try:
        task = engine.queue_scheduled_task(task_id)
    except TaskBoardError as e:
        _raise_http(e)
    return task.to_dict()


@router.post("/schedules/run", response_model=list[TaskResponse])
def run_schedules_endpoint(
    engine: TaskEngine = Depends(get_engine),
) -> list[dict[str, Any]]:
    """Queue every due scheduled task."""
    return [t.to_dict() for t in engine.run_due_scheduled()]


# ── Dependency endpoints ───────────────────────────────────


@router.get("/tasks/{task_id}/dependencies", response_model=DependencyInfo)
def get_dependencies_endpoint(
    task_id: int,
    engine: TaskEngine = Depends(get_engine),
) -> DependencyInfo:
    """Get blockers and dependents for a task."""
    try:
        blockers, blocked_by = engine.get_all_dependencies(task_id)
    except TaskBoardError as e:
        _raise_http(e)
    return DependencyInfo(
        blockers=[_brief(t) for t in blockers],
        blocked_by=[_brief(t) for t in blocked_by],
        open_blockers=engine.get_open_blocker_count(task_id),
        is_blocked=engine.is_blocked(task_id),
    )


@router.post("/dependencies", status_code=201, response_model=DependencyResponse)
def add_dependency_endpoint(
    body: AddDependencyRequest,
    engine: TaskEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Add an edge: blocked waits until blocker is done or archived."""
    try:
        dep = engine.add_dependency(body.blocker_id, body.blocked_id, body.auto_queue)
    except TaskBoardError as e:
        _raise_http(e)
    return dep.to_dict()


@router.get(
    "/dependencies/{blocker_id}/{blocked_id}", response_model=DependencyResponse
)
def get_dependency_endpoint(
    blocker_id: int,
    blocked_id: int,
    engine: TaskEngine = Depends(get_engine),
) -> dict[str, Any]:
    dep = engine.get_dependency(blocker_id, blocked_id)
    if dep is None:
        raise HTTPException(
            status_code=404, detail=f"No dependency {blocker_id} -> {blocked_id}"
        )
    return dep.to_dict()


@router.patch(
    "/dependencies/{blocker_id}/{blocked_id}", response_model=DependencyResponse
)
def update_dependency_endpoint(
    blocker_id: int,
    blocked_id: int,
    body: UpdateDependencyRequest,
    engine: TaskEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Toggle whether the dependent is queued when this edge releases it."""
    try:
        engine.set_auto_queue(blocker_id, blocked_id, body.auto_queue)
    except TaskBoardError as e:
        _raise_http(e)
    dep = engine.get_dependency(blocker_id, blocked_id)
    assert dep is not None
    return dep.to_dict()


@router.delete("/dependencies/{blocker_id}/{blocked_id}", status_code=204)
def remove_dependency_endpoint(
    blocker_id: int,
    blocked_id: int,
    engine: TaskEngine = Depends(get_engine),
) -> Response:
    """Remove an edge. The formerly blocked task keeps its current status."""
    try:
        engine.remove_dependency(blocker_id, blocked_id)
    except TaskBoardError as e:
        _raise_http(e)
    return Response(status_code=204)


@router.post("/dependencies/{blocker_id}/cascade", response_model=CascadeResponse)
def cascade_endpoint(
    blocker_id: int,
    engine: TaskEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Re-run dependent release for a blocker. Safe to repeat."""
    try:
        engine.get_task(blocker_id)
        unblocked = engine.process_completed_blocker(blocker_id)
    except TaskBoardError as e:
        _raise_http(e)
    return {"unblocked": [_brief(t) for t in unblocked]}


# ── Workflow endpoints ─────────────────────────────────────


@router.get("/tasks/{task_id}/workflow", response_model=WorkflowResponse)
def get_workflow_endpoint(
    task_id: int,
    engine: TaskEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Get subtask progress for a parent task."""
    try:
        status = engine.get_workflow_status(task_id)
    except TaskBoardError as e:
        _raise_http(e)
    result = status.to_dict()
    result["subtasks"] = [_brief(t) for t in engine.store.get_subtasks(task_id)]
    return result


@router.post(
    "/tasks/{task_id}/workflow/complete", response_model=WorkflowCompleteResponse
)
def complete_workflow_endpoint(
    task_id: int,
    engine: TaskEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Complete the parent if all its subtasks are done or archived."""
    try:
        completed = engine.check_and_complete_parent(task_id)
        task = engine.get_task(task_id)
    except TaskBoardError as e:
        _raise_http(e)
    return {"completed": completed, "task": task.to_dict()}


# ── WebSocket endpoint ─────────────────────────────────────


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for live task updates."""
    await manager.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket)
