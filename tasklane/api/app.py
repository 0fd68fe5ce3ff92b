"""FastAPI web application for tasklane.

A thin transport over `TaskService` and `UserService`: routes translate
requests into service calls and `PlannerError` kinds into status codes.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import date
from typing import List

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from tasklane import __version__
from tasklane.api.request_models import (
    CreateTaskRequest,
    UpdateAssignedDateRequest,
    UpdatePositionRequest,
    UpdateTextRequest,
    UpdateTimezoneRequest,
)
from tasklane.auth.dependencies import get_current_user_id
from tasklane.database.database import init_db
from tasklane.errors import ErrorKind, PlannerError
from tasklane.models.recurrence import RecurringPattern
from tasklane.models.task import TaskView
from tasklane.models.user import User
from tasklane.services.task_service import TaskService
from tasklane.services.user_service import UserService

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorKind.INVALID: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


# Initialize FastAPI app
app = FastAPI(
    title="tasklane API",
    description="Daily task planner with recurring tasks and automatic rollover",
    version=__version__,
    lifespan=lifespan,
)

_task_service = TaskService()
_user_service = UserService()


def get_task_service() -> TaskService:
    return _task_service


def get_user_service() -> UserService:
    return _user_service


@app.exception_handler(PlannerError)
async def planner_error_handler(request: Request, exc: PlannerError):
    body = exc.to_dict()
    if exc.kind in (ErrorKind.NOT_FOUND, ErrorKind.UNAUTHORIZED):
        # Same answer either way so ownership does not leak.
        body = {"kind": ErrorKind.NOT_FOUND.value, "message": "not found"}
    if exc.kind == ErrorKind.CONFLICT:
        logger.warning(f"{request.method} {request.url.path} conflict: {exc.message}")
    return JSONResponse(status_code=STATUS_BY_KIND.get(exc.kind, 500), content=body)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = [str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path")]
    body = {
        "kind": ErrorKind.INVALID.value,
        "message": first.get("msg", "invalid request"),
    }
    if loc:
        body["field"] = ".".join(loc)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


# Tasks

@app.post("/api/tasks", response_model=TaskView, status_code=status.HTTP_201_CREATED)
def create_task(
    request: CreateTaskRequest,
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    """Create a task; a trailing recurrence phrase creates a recurring pattern instead."""
    return service.create(user_id, request.text, request.assigned_date, request.position)


@app.get("/api/tasks", response_model=List[TaskView])
def get_tasks_for_date(
    date: date = Query(..., description="YYYY-MM-DD"),
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    return service.get_for_date(user_id, date)


@app.get("/api/tasks/range", response_model=List[TaskView])
def get_tasks_for_range(
    start: date = Query(...),
    end: date = Query(...),
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    return service.get_for_range(user_id, start, end)


@app.put("/api/tasks/{task_id}/text", response_model=TaskView)
def update_task_text(
    task_id: int,
    request: UpdateTextRequest,
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    return service.update_text(user_id, task_id, request.text)


@app.put("/api/tasks/{task_id}/position", response_model=TaskView)
def update_task_position(
    task_id: int,
    request: UpdatePositionRequest,
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    return service.update_position(user_id, task_id, request.position)


@app.put("/api/tasks/{task_id}/assigned-date", response_model=TaskView)
def update_task_assigned_date(
    task_id: int,
    request: UpdateAssignedDateRequest,
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    return service.update_assigned_date(user_id, task_id, request.assigned_date)


@app.post("/api/tasks/{task_id}/complete", response_model=TaskView)
def complete_task(
    task_id: int,
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    return service.complete(user_id, task_id)


@app.post("/api/tasks/{task_id}/uncomplete", response_model=TaskView)
def uncomplete_task(
    task_id: int,
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    return service.uncomplete(user_id, task_id)


@app.delete("/api/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: int,
    all_future: bool = Query(False),
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    service.delete(user_id, task_id, all_future=all_future)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Virtual instances, addressed by (pattern id, instance date)

@app.post("/api/tasks/virtual/{pattern_id}/{instance_date}/materialize", response_model=TaskView)
def materialize_virtual(
    pattern_id: int,
    instance_date: date,
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    return service.materialize_virtual(user_id, pattern_id, instance_date)


@app.post("/api/tasks/virtual/{pattern_id}/{instance_date}/complete", response_model=TaskView)
def complete_virtual(
    pattern_id: int,
    instance_date: date,
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    return service.complete_virtual(user_id, pattern_id, instance_date)


@app.put("/api/tasks/virtual/{pattern_id}/{instance_date}/text", response_model=TaskView)
def update_virtual_text(
    pattern_id: int,
    instance_date: date,
    request: UpdateTextRequest,
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    return service.update_virtual_text(user_id, pattern_id, instance_date, request.text)


@app.put("/api/tasks/virtual/{pattern_id}/{instance_date}/position", response_model=TaskView)
def update_virtual_position(
    pattern_id: int,
    instance_date: date,
    request: UpdatePositionRequest,
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    return service.update_virtual_position(user_id, pattern_id, instance_date, request.position)


@app.put("/api/tasks/virtual/{pattern_id}/{instance_date}/assigned-date", response_model=TaskView)
def update_virtual_assigned_date(
    pattern_id: int,
    instance_date: date,
    request: UpdateAssignedDateRequest,
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    return service.update_virtual_assigned_date(user_id, pattern_id, instance_date, request.assigned_date)


@app.delete("/api/tasks/virtual/{pattern_id}/{instance_date}", status_code=status.HTTP_204_NO_CONTENT)
def delete_virtual(
    pattern_id: int,
    instance_date: date,
    all_future: bool = Query(False),
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    service.delete_virtual(user_id, pattern_id, instance_date, all_future=all_future)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Patterns

@app.get("/api/patterns", response_model=List[RecurringPattern])
def list_patterns(
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    return service.list_patterns(user_id)


@app.delete("/api/patterns/{pattern_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_pattern(
    pattern_id: int,
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    service.delete_pattern(user_id, pattern_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/api/rollover", response_model=List[TaskView])
def force_rollover(
    user_id: int = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
):
    """Run today's rollover now (idempotent) and return today's list."""
    return service.rollover(user_id)


# Users

@app.get("/api/users/me", response_model=User)
def get_me(
    user_id: int = Depends(get_current_user_id),
    service: UserService = Depends(get_user_service),
):
    return service.get(user_id)


@app.put("/api/users/me/timezone", response_model=User)
def update_timezone(
    request: UpdateTimezoneRequest,
    user_id: int = Depends(get_current_user_id),
    service: UserService = Depends(get_user_service),
):
    return service.update_timezone(user_id, request.timezone)
