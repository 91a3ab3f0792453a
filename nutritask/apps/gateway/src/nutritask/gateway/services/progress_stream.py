"""进度流 -- 快照 + 增量

订阅时在任务写锁内读取快照并注册队列，因此快照之后的每一次
已提交流转都会进入队列，既不遗漏也不重复；到达终态后流结束。
"""

import asyncio
import json
from collections.abc import AsyncIterator

import structlog
from nutritask.core.config import SSE_HEARTBEAT_INTERVAL
from nutritask.core.exceptions import NotFoundError
from nutritask.core.manager import TaskManager
from nutritask.core.models import TaskUpdate

from .sse_hub import SSEHub

log = structlog.get_logger()


def update_to_sse(update: TaskUpdate) -> dict:
    """将 TaskUpdate 转换为 sse-starlette 事件 dict"""
    return {
        "id": update.update_id,
        "event": update.type.value,
        "data": json.dumps(update.to_sse_data(), ensure_ascii=False),
    }


async def stream_task_updates(
    manager: TaskManager,
    hub: SSEHub,
    task_id: str,
    heartbeat_interval: float = SSE_HEARTBEAT_INTERVAL,
) -> AsyncIterator[dict]:
    """按提交顺序产出一个任务的 SSE 事件

    1. 当前快照（订阅晚到也能看到已完成的步骤）
    2. 之后每次状态流转一条
    3. 终态事件后结束；空闲时产出心跳注释
    """
    queue: asyncio.Queue | None = None
    try:
        async with manager.task_lock(task_id):
            task = await manager.get_task(task_id)
            if not task.is_terminal:
                queue = await hub.subscribe(task_id)
    except NotFoundError:
        log.info("sse_task_gone", task_id=task_id)
        return

    try:
        yield update_to_sse(TaskUpdate.snapshot(task))
        if queue is None:
            return

        while True:
            try:
                update = await asyncio.wait_for(queue.get(), timeout=heartbeat_interval)
            except TimeoutError:
                # 心跳保活
                yield {"comment": "heartbeat"}
                continue

            if update is None:
                # 订阅者消费过慢已被摘除，客户端重连后会拿到新快照
                return
            yield update_to_sse(update)
            if update.final:
                return
    finally:
        if queue is not None:
            await hub.unsubscribe(task_id, queue)
