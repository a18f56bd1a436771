"""Pydantic request/response models for the task-board API."""

from datetime import datetime

from pydantic import BaseModel


# ── Request models ──────────────────────────────────────


class CreateTaskRequest(BaseModel):
    title: str
    body: str = ""
    parent_id: int | None = None
    status: str = "backlog"
    scheduled_at: datetime | None = None
    recurrence: str = ""


class UpdateTaskRequest(BaseModel):
    status: str | None = None
    output: str | None = None
    pinned: bool | None = None
    title: str | None = None
    body: str | None = None


class ScheduleRequest(BaseModel):
    scheduled_at: datetime | None = None
    recurrence: str = ""


class AddDependencyRequest(BaseModel):
    blocker_id: int
    blocked_id: int
    auto_queue: bool = False


class UpdateDependencyRequest(BaseModel):
    auto_queue: bool


# ── Response models ─────────────────────────────────────


class TaskResponse(BaseModel):
    id: int
    title: str
    body: str = ""
    status: str
    parent_id: int | None = None
    output: str = ""
    pinned: bool = False
    scheduled_at: str | None = None
    recurrence: str = ""
    last_run_at: str | None = None
    created_at: str
    updated_at: str
    started_at: str | None = None
    completed_at: str | None = None


class TaskSummary(BaseModel):
    id: int
    title: str
    status: str


class DependencyInfo(BaseModel):
    blockers: list[TaskSummary] = []
    blocked_by: list[TaskSummary] = []
    open_blockers: int = 0
    is_blocked: bool = False


class TaskDetailResponse(TaskResponse):
    dependencies: DependencyInfo
    subtasks: list[TaskSummary] = []


class DependencyResponse(BaseModel):
    id: int
    blocker_id: int
    blocked_id: int
    auto_queue: bool
    created_at: str


class WorkflowResponse(BaseModel):
    parent_id: int
    parent_title: str
    total: int
    pending: int
    processing: int
    blocked: int
    done: int
    archived: int
    is_complete: bool
    subtasks: list[TaskSummary] = []


class WorkflowCompleteResponse(BaseModel):
    completed: bool
    task: TaskResponse


class CascadeResponse(BaseModel):
    unblocked: list[TaskSummary]


class TaskLogResponse(BaseModel):
    id: int
    task_id: int
    line_type: str
    content: str
    created_at: str
