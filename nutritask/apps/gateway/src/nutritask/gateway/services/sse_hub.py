"""SSEHub -- 内存中任务更新广播器

每个订阅者持有一个有界 asyncio.Queue，支持 subscribe/unsubscribe/publish。
队列写满的订阅者会被摘除，并收到一个 None 哨兵以结束其事件流。
"""

import asyncio
from collections import defaultdict

import structlog
from nutritask.core.config import SSE_QUEUE_MAXSIZE
from nutritask.core.models import TaskUpdate

log = structlog.get_logger()


class SSEHub:
    """SSE 广播器 -- 基于 asyncio.Queue 的发布/订阅模式"""

    def __init__(self, queue_maxsize: int = SSE_QUEUE_MAXSIZE) -> None:
        # task_id -> set of asyncio.Queue
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)
        self._queue_maxsize = queue_maxsize

    async def subscribe(self, task_id: str) -> asyncio.Queue:
        """订阅指定任务的更新

        Args:
            task_id: 要订阅的任务 ID

        Returns:
            asyncio.Queue 实例，新的 TaskUpdate 会被推送到此队列
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._subscribers[task_id].add(queue)
        return queue

    async def unsubscribe(self, task_id: str, queue: asyncio.Queue) -> None:
        """取消订阅

        Args:
            task_id: 任务 ID
            queue: 之前订阅时返回的队列
        """
        subscribers = self._subscribers.get(task_id)
        if subscribers is None:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._subscribers[task_id]

    def subscriber_count(self, task_id: str) -> int:
        return len(self._subscribers.get(task_id, ()))

    async def publish(self, update: TaskUpdate) -> None:
        """向该任务的所有订阅者推送一次更新"""
        await self.broadcast(update.task_id, update)

    async def broadcast(self, task_id: str, update: TaskUpdate) -> None:
        """向指定任务的所有订阅者广播

        Args:
            task_id: 任务 ID
            update: 要广播的更新
        """
        dead_queues = []
        for queue in self._subscribers.get(task_id, set()):
            try:
                queue.put_nowait(update)
            except asyncio.QueueFull:
                dead_queues.append(queue)

        # 清理已满的队列：腾出一个位置放入结束哨兵
        for q in dead_queues:
            self._subscribers[task_id].discard(q)
            q.get_nowait()
            q.put_nowait(None)
            log.warning("sse_subscriber_dropped", task_id=task_id)
        if task_id in self._subscribers and not self._subscribers[task_id]:
            del self._subscribers[task_id]
