"""任务控制路由

POST /api/tasks/{task_id}/pause: 暂停 RUNNING 任务（步骤边界生效）。
POST /api/tasks/{task_id}/resume: 恢复 PAUSED 任务。
DELETE /api/tasks/{task_id}/cancel: 取消非终态任务。
- 200: 操作成功
- 400: 当前状态不允许该操作（消息包含当前状态）
- 404: 任务不存在
"""

from fastapi import APIRouter, Depends, Query
from nutritask.core.exceptions import InvalidTransitionError, NotFoundError
from starlette.responses import JSONResponse

from ..deps import get_task_service
from ..services.task_service import TaskService

router = APIRouter()


def _not_found(e: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"success": False, "error": str(e)})


@router.post("/api/tasks/{task_id}/pause")
async def pause_task(
    task_id: str,
    service: TaskService = Depends(get_task_service),
):
    """暂停任务：立即返回 canResume，循环在当前步骤结束后退出"""
    try:
        task = await service.pause_task(task_id)
    except NotFoundError as e:
        return _not_found(e)
    except InvalidTransitionError as e:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": str(e), "canResume": False},
        )

    return {
        "success": True,
        "message": "task paused, it will stop after the current step",
        "canResume": True,
        "task": task.to_api_dict(),
    }


@router.post("/api/tasks/{task_id}/resume")
async def resume_task(
    task_id: str,
    service: TaskService = Depends(get_task_service),
):
    """恢复任务：从最后完成的步骤之后继续"""
    try:
        task = await service.resume_task(task_id)
    except NotFoundError as e:
        return _not_found(e)
    except InvalidTransitionError as e:
        return JSONResponse(status_code=400, content={"success": False, "message": str(e)})

    return {
        "success": True,
        "message": f"task resumed from step {task.current_step}",
        "task": task.to_api_dict(),
    }


@router.delete("/api/tasks/{task_id}/cancel")
async def cancel_task(
    task_id: str,
    reason: str | None = Query(default=None, description="取消原因"),
    service: TaskService = Depends(get_task_service),
):
    """取消任务；已处于终态时返回 400"""
    try:
        task = await service.cancel_task(task_id, reason=reason)
    except NotFoundError as e:
        return _not_found(e)
    except InvalidTransitionError as e:
        return JSONResponse(status_code=400, content={"success": False, "message": str(e)})

    return {
        "success": True,
        "message": "task cancelled",
        "task": task.to_api_dict(),
    }
