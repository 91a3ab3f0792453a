"""任务启动与查询路由

POST /api/tasks/start: 校验参数、创建任务并异步启动。
GET /api/tasks: 任务列表，支持 ownerId / status 筛选。
GET /api/tasks/{task_id}: 任务快照。
"""

from typing import Any

from fastapi import APIRouter, Depends, Query
from nutritask.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..deps import get_task_service
from ..services.task_service import TaskService, stream_url

router = APIRouter()


class StartTaskRequest(BaseModel):
    """任务启动请求体"""

    taskType: str = Field(description="工作流类型")
    ownerId: str = Field(description="任务作用的实体 ID")
    input: dict[str, Any] = Field(default_factory=dict, description="工作流参数")


@router.post("/api/tasks/start")
async def start_task(
    body: StartTaskRequest,
    service: TaskService = Depends(get_task_service),
):
    """启动任务

    - 成功返回 200 + PENDING 任务 + streamUrl
    - 参数不合法返回 400
    - 已有活跃任务返回 409，附带已有任务 ID
    - 创建后、启动前任务已被取消返回 409，附带该任务的当前状态
    """
    try:
        task = await service.start_task(body.ownerId, body.taskType, body.input)
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})
    except ConflictError as e:
        return JSONResponse(
            status_code=409,
            content={
                "success": False,
                "error": str(e),
                "taskId": e.existing.task_id,
                "status": e.existing.status.value,
                "streamUrl": stream_url(e.existing.task_id),
            },
        )
    except InvalidTransitionError as e:
        return JSONResponse(
            status_code=409,
            content={
                "success": False,
                "error": str(e),
                "taskId": e.task_id,
                "status": e.status.value,
            },
        )

    return {
        "success": True,
        "taskId": task.task_id,
        "status": task.status.value,
        "streamUrl": stream_url(task.task_id),
    }


@router.get("/api/tasks")
async def list_tasks(
    ownerId: str | None = Query(default=None, description="按 owner 筛选"),
    status: str | None = Query(default=None, description="按状态筛选"),
    service: TaskService = Depends(get_task_service),
):
    """查询任务列表，按 created_at 倒序"""
    tasks = await service.list_tasks(owner_id=ownerId, status=status)
    return {"success": True, "tasks": [t.to_api_dict() for t in tasks]}


@router.get("/api/tasks/{task_id}")
async def get_task(
    task_id: str,
    service: TaskService = Depends(get_task_service),
):
    """查询任务快照"""
    try:
        task = await service.get_task(task_id)
    except NotFoundError as e:
        return JSONResponse(status_code=404, content={"success": False, "error": str(e)})

    return {"success": True, "task": task.to_api_dict()}
