"""Store Protocol 接口定义

TaskManager 仅依赖此接口，使用 Python Protocol 实现结构化子类型（duck typing）。
"""

import asyncio
from datetime import datetime
from typing import Protocol

from ..models.enums import TaskStatus
from ..models.task import Task


class TaskStore(Protocol):
    """Task 存储接口"""

    write_lock: asyncio.Lock

    async def create_task(self, task: Task) -> None:
        """插入任务记录"""
        ...

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        ...

    async def get_active_task(self, owner_id: str, task_type: str) -> Task | None:
        """查询未结束任务"""
        ...

    async def list_tasks(
        self,
        owner_id: str | None = None,
        status: str | None = None,
    ) -> list[Task]:
        """查询任务列表"""
        ...

    async def update_task(self, task: Task, expected_status: TaskStatus) -> bool:
        """compare-and-set 写回"""
        ...

    async def delete_terminal_before(self, cutoff: datetime) -> int:
        """清理过期终态任务"""
        ...
