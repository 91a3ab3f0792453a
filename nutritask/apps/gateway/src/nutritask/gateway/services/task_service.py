"""TaskService -- HTTP 控制面与编排核心之间的薄层

1. start_task: 校验并创建 PENDING 任务，随后交给 ExecutionController 异步运行
2. pause / resume / cancel: 直接委托 ExecutionController
3. 查询委托 TaskManager
异常原样向上抛出，由路由映射为结构化响应。
"""

from collections.abc import Mapping
from typing import Any

import structlog
from nutritask.core.controller import ExecutionController
from nutritask.core.manager import TaskManager
from nutritask.core.models import Task, TaskStatus, TaskType

log = structlog.get_logger()


def stream_url(task_id: str) -> str:
    """任务进度流地址"""
    return f"/api/tasks/{task_id}/stream"


class TaskService:
    """任务控制服务"""

    def __init__(self, manager: TaskManager, controller: ExecutionController) -> None:
        self._manager = manager
        self._controller = controller

    async def start_task(
        self,
        owner_id: str,
        task_type: TaskType | str,
        input: Mapping[str, Any] | None,
    ) -> Task:
        """创建任务并启动运行循环

        Returns:
            创建时的任务快照（status=PENDING）

        Raises:
            ValidationError: 参数不合法
            ConflictError: 已有活跃任务
            InvalidTransitionError: 创建后、启动前任务已被取消
        """
        task = await self._manager.create_task(owner_id, task_type, input)
        await self._controller.start(task.task_id)
        return task

    async def get_task(self, task_id: str) -> Task:
        return await self._manager.get_task(task_id)

    async def list_tasks(
        self,
        owner_id: str | None = None,
        status: TaskStatus | str | None = None,
    ) -> list[Task]:
        return await self._manager.list_tasks(owner_id=owner_id, status=status)

    async def pause_task(self, task_id: str) -> Task:
        task = await self._controller.request_pause(task_id)
        log.info("task_pause_requested", task_id=task_id)
        return task

    async def resume_task(self, task_id: str) -> Task:
        task = await self._controller.resume(task_id)
        log.info("task_resume_requested", task_id=task_id)
        return task

    async def cancel_task(self, task_id: str, reason: str | None = None) -> Task:
        task = await self._controller.cancel(task_id, reason=reason)
        log.info("task_cancel_requested", task_id=task_id)
        return task
