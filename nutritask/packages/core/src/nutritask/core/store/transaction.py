"""Task 写入事务封装

每次写入在持有 write_lock 的前提下原子提交，失败自动回滚。
"""

from datetime import datetime

import aiosqlite

from ..exceptions import TaskStatusConflictError
from ..models.enums import TaskStatus
from ..models.task import Task
from .protocols import TaskStore


async def create_task_atomic(
    conn: aiosqlite.Connection,
    task_store: TaskStore,
    task: Task,
) -> None:
    """原子插入新任务

    Args:
        conn: 数据库连接（需与 task_store 共用以保证事务性）
        task_store: TaskStore 实例
        task: 待插入的任务

    Raises:
        aiosqlite.IntegrityError: 同一 (owner_id, task_type) 已有活跃任务
    """
    async with task_store.write_lock:
        try:
            await task_store.create_task(task)
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise


async def save_task_transition(
    conn: aiosqlite.Connection,
    task_store: TaskStore,
    task: Task,
    expected_status: TaskStatus,
) -> None:
    """原子写回一次状态流转

    Args:
        conn: 数据库连接
        task_store: TaskStore 实例
        task: 流转后的任务
        expected_status: 流转前读取到的状态

    Raises:
        TaskStatusConflictError: 持久化状态已不是 expected_status
    """
    async with task_store.write_lock:
        try:
            updated = await task_store.update_task(task, expected_status)
            if not updated:
                await conn.rollback()
                current = await task_store.get_task(task.task_id)
                raise TaskStatusConflictError(
                    task.task_id,
                    expected_status,
                    current.status if current else None,
                )
            await conn.commit()
        except TaskStatusConflictError:
            raise
        except Exception:
            await conn.rollback()
            raise


async def delete_expired_tasks(
    conn: aiosqlite.Connection,
    task_store: TaskStore,
    cutoff: datetime,
) -> int:
    """删除过期终态任务，返回删除条数"""
    async with task_store.write_lock:
        try:
            deleted = await task_store.delete_terminal_before(cutoff)
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise
    return deleted
