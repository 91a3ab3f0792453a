"""TaskManager -- 任务创建与状态流转的唯一入口

其他组件只能通过 TaskManager 修改任务状态：
1. create_task 校验启动参数，原子地保证单一活跃任务
2. transition 按状态机表应用事件，持久化后推送给订阅者
3. 同一任务的写入由 task 级 asyncio.Lock 串行化，
   SQL 层再以 expected_status 做 compare-and-set
"""

import asyncio
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

import aiosqlite
import structlog
from ulid import ULID

from .config import get_retention_days
from .exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from .models.enums import TaskEvent, TaskStatus, TaskType, next_status
from .models.task import Task
from .models.update import TaskUpdate
from .pipeline import WorkflowDefinition, WorkflowRegistry
from .store import StoreGroup
from .store.transaction import (
    create_task_atomic,
    delete_expired_tasks,
    save_task_transition,
)

log = structlog.get_logger()

# 事件对应的动作描述（用于 InvalidTransitionError 消息）
_ACTIONS: dict[TaskEvent, str] = {
    TaskEvent.START_EXECUTION: "start",
    TaskEvent.STEP_COMPLETED: "record step for",
    TaskEvent.PAUSE_REQUESTED: "pause",
    TaskEvent.RESUME_REQUESTED: "resume",
    TaskEvent.ALL_STEPS_DONE: "complete",
    TaskEvent.CANCEL_REQUESTED: "cancel",
    TaskEvent.STEP_FAILED: "fail",
}

DEFAULT_CANCEL_REASON = "cancelled by user"


class TaskUpdatePublisher(Protocol):
    """已提交流转的推送目标（SSEHub 实现此接口）"""

    async def publish(self, update: TaskUpdate) -> None: ...


class TaskManager:
    """任务生命周期管理"""

    def __init__(
        self,
        store_group: StoreGroup,
        registry: WorkflowRegistry,
        publisher: TaskUpdatePublisher | None = None,
    ) -> None:
        self._stores = store_group
        self._registry = registry
        self._publisher = publisher
        self._task_locks: dict[str, asyncio.Lock] = {}

    @property
    def registry(self) -> WorkflowRegistry:
        return self._registry

    async def create_task(
        self,
        owner_id: str,
        task_type: TaskType | str,
        input: Mapping[str, Any] | None,
    ) -> Task:
        """创建 PENDING 任务

        Args:
            owner_id: 任务作用的实体 ID
            task_type: 工作流类型
            input: 启动参数（按工作流模型校验）

        Returns:
            新建的 Task

        Raises:
            ValidationError: 参数不合法，不创建任务
            ConflictError: 已存在同 owner/type 的活跃任务
        """
        if not owner_id or not str(owner_id).strip():
            raise ValidationError("ownerId is required")
        workflow = self._registry.get(task_type)
        normalized = workflow.validate_input(input)

        existing = await self._stores.task_store.get_active_task(
            owner_id, workflow.task_type.value
        )
        if existing is not None:
            raise ConflictError(existing)

        now = datetime.now(UTC)
        task = Task(
            task_id=str(ULID()),
            owner_id=owner_id,
            task_type=workflow.task_type,
            status=TaskStatus.PENDING,
            current_step=None,
            input=normalized,
            created_at=now,
            updated_at=now,
        )

        try:
            await create_task_atomic(self._stores.conn, self._stores.task_store, task)
        except aiosqlite.IntegrityError:
            # 并发 start：唯一索引拒绝了第二个活跃任务
            existing = await self._stores.task_store.get_active_task(
                owner_id, workflow.task_type.value
            )
            if existing is None:
                raise
            raise ConflictError(existing) from None

        log.info(
            "task_created",
            task_id=task.task_id,
            owner_id=owner_id,
            task_type=task.task_type.value,
        )
        return task

    async def get_task(self, task_id: str) -> Task:
        """查询任务

        Raises:
            NotFoundError: task_id 不存在
        """
        task = await self._stores.task_store.get_task(task_id)
        if task is None:
            raise NotFoundError(task_id)
        return task

    async def get_active_task(self, owner_id: str, task_type: TaskType | str) -> Task | None:
        return await self._stores.task_store.get_active_task(owner_id, str(task_type))

    async def list_tasks(
        self,
        owner_id: str | None = None,
        status: TaskStatus | str | None = None,
    ) -> list[Task]:
        return await self._stores.task_store.list_tasks(
            owner_id=owner_id,
            status=str(status) if status else None,
        )

    async def transition(
        self,
        task_id: str,
        event: TaskEvent,
        *,
        step: str | None = None,
        payload: Mapping[str, Any] | None = None,
        reason: str | None = None,
    ) -> Task:
        """应用一次状态机事件

        Args:
            task_id: 任务 ID
            event: 事件
            step: STEP_COMPLETED 时完成的步骤名
            payload: STEP_COMPLETED 时合并进 checkpoint 的部分结果
            reason: STEP_FAILED / CANCEL_REQUESTED 的原因

        Returns:
            流转后的 Task

        Raises:
            NotFoundError: 任务不存在
            InvalidTransitionError: 事件在当前状态下不合法
        """
        async with self.task_lock(task_id):
            task = await self.get_task(task_id)
            target = next_status(task.status, event)
            if target is None:
                raise InvalidTransitionError(task_id, task.status, _ACTIONS[event])

            workflow = self._registry.get(task.task_type)
            updated = self._apply(task, workflow, event, target, step, payload, reason)
            await save_task_transition(
                self._stores.conn,
                self._stores.task_store,
                updated,
                expected_status=task.status,
            )

            log.info(
                "task_transition",
                task_id=task_id,
                task_event=event.value,
                from_status=task.status.value,
                to_status=updated.status.value,
                step=step,
                progress=updated.progress,
            )

            if self._publisher is not None:
                await self._publisher.publish(TaskUpdate.from_event(event, updated))

        if updated.is_terminal:
            self._task_locks.pop(task_id, None)
        return updated

    @staticmethod
    def _apply(
        task: Task,
        workflow: WorkflowDefinition,
        event: TaskEvent,
        target: TaskStatus,
        step: str | None,
        payload: Mapping[str, Any] | None,
        reason: str | None,
    ) -> Task:
        """计算流转后的任务（不落盘）"""
        now = datetime.now(UTC)
        changes: dict[str, Any] = {"status": target, "updated_at": now}

        if event == TaskEvent.START_EXECUTION:
            changes["started_at"] = now
            changes["current_step"] = workflow.next_step_name(task.completed_steps)

        elif event == TaskEvent.STEP_COMPLETED:
            if step not in workflow.step_names:
                raise ValueError(f"unknown step for {workflow.task_type}: {step}")
            if step in task.completed_steps:
                raise ValueError(f"step already completed: {step}")
            completed = [*task.completed_steps, step]
            progress = len(completed) * 100 // workflow.total_steps
            changes["completed_steps"] = completed
            changes["progress"] = max(task.progress, progress)
            changes["checkpoint"] = {**task.checkpoint, **(payload or {})}
            changes["current_step"] = workflow.next_step_name(completed)

        elif event == TaskEvent.PAUSE_REQUESTED:
            changes["paused_at"] = now

        elif event == TaskEvent.RESUME_REQUESTED:
            changes["paused_at"] = None
            changes["current_step"] = workflow.next_step_name(task.completed_steps)

        elif event == TaskEvent.ALL_STEPS_DONE:
            remaining = workflow.remaining_steps(task.completed_steps)
            if remaining:
                raise ValueError(
                    f"cannot complete with pending steps: {[s.name for s in remaining]}"
                )
            changes["completed_at"] = now
            changes["current_step"] = None
            changes["progress"] = 100
            changes["result"] = dict(task.checkpoint)

        elif event == TaskEvent.CANCEL_REQUESTED:
            changes["cancelled_at"] = now
            changes["completed_at"] = now
            changes["error"] = reason or DEFAULT_CANCEL_REASON

        elif event == TaskEvent.STEP_FAILED:
            changes["completed_at"] = now
            changes["error"] = reason or "step failed"

        return task.model_copy(update=changes)

    @asynccontextmanager
    async def task_lock(self, task_id: str) -> AsyncIterator[None]:
        """持有 task 级写锁；持锁期间读到的快照与推送顺序一致"""
        lock = self._task_locks.get(task_id)
        if lock is None:
            lock = asyncio.Lock()
            self._task_locks[task_id] = lock
        async with lock:
            yield

    async def cleanup_expired(self, days: int | None = None) -> int:
        """删除保留期外的终态任务

        Args:
            days: 保留天数，默认取 NUTRITASK_TASK_RETENTION_DAYS

        Returns:
            删除的任务数
        """
        retention = get_retention_days() if days is None else days
        cutoff = datetime.now(UTC) - timedelta(days=retention)
        deleted = await delete_expired_tasks(
            self._stores.conn, self._stores.task_store, cutoff
        )
        log.info("expired_tasks_deleted", deleted=deleted, retention_days=retention)
        return deleted
