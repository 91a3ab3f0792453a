"""SSE 进度流路由

GET /api/tasks/{task_id}/stream: 先推送当前快照，再推送每次状态流转，
任务到达终态后关闭连接；空闲时心跳保活。
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from nutritask.core.exceptions import NotFoundError
from nutritask.core.manager import TaskManager
from sse_starlette.sse import EventSourceResponse

from ..deps import get_sse_hub, get_task_manager
from ..services.progress_stream import stream_task_updates
from ..services.sse_hub import SSEHub

router = APIRouter()


@router.get("/api/tasks/{task_id}/stream")
async def stream_task(
    task_id: str,
    manager: TaskManager = Depends(get_task_manager),
    sse_hub: SSEHub = Depends(get_sse_hub),
):
    """SSE 事件流端点"""
    try:
        await manager.get_task(task_id)
    except NotFoundError as e:
        return JSONResponse(status_code=404, content={"success": False, "error": str(e)})

    return EventSourceResponse(stream_task_updates(manager, sse_hub, task_id))
