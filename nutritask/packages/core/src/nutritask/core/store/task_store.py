"""TaskStore SQLite 实现

仅提供数据库操作；提交/回滚由 transaction 模块负责。
"""

import asyncio
import json
from datetime import datetime

import aiosqlite

from ..models.enums import TaskStatus, TaskType
from ..models.task import Task

_COLUMNS = (
    "task_id, owner_id, task_type, status, current_step, completed_steps, "
    "progress, input, checkpoint, result, error, started_at, paused_at, "
    "completed_at, cancelled_at, created_at, updated_at"
)

_ACTIVE_SQL = "('PENDING', 'RUNNING', 'PAUSED')"
_TERMINAL_SQL = "('COMPLETED', 'FAILED', 'CANCELLED')"


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现

    所有写事务经由 write_lock 串行化：共享连接上交错的事务
    会互相提交或回滚对方的写入。
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        self.write_lock = asyncio.Lock()

    async def create_task(self, task: Task) -> None:
        """插入任务记录（活跃任务唯一索引冲突时抛 IntegrityError）"""
        await self._conn.execute(
            f"INSERT INTO tasks ({_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                task.task_id,
                task.owner_id,
                task.task_type.value,
                task.status.value,
                *self._mutable_values(task),
                task.created_at.isoformat(),
                task.updated_at.isoformat(),
            ),
        )

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def get_active_task(self, owner_id: str, task_type: str) -> Task | None:
        """查询 (owner_id, task_type) 唯一的未结束任务"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM tasks "
            f"WHERE owner_id = ? AND task_type = ? AND status IN {_ACTIVE_SQL}",
            (owner_id, task_type),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def list_tasks(
        self,
        owner_id: str | None = None,
        status: str | None = None,
    ) -> list[Task]:
        """查询任务列表，支持按 owner / 状态筛选，按 created_at 倒序"""
        clauses: list[str] = []
        params: list[str] = []
        if owner_id:
            clauses.append("owner_id = ?")
            params.append(owner_id)
        if status:
            clauses.append("status = ?")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM tasks {where}ORDER BY created_at DESC",
            params,
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def update_task(self, task: Task, expected_status: TaskStatus) -> bool:
        """以 compare-and-set 方式写回任务

        Returns:
            True 如果持久化状态仍为 expected_status 且写入成功
        """
        cursor = await self._conn.execute(
            """
            UPDATE tasks
            SET status = ?, current_step = ?, completed_steps = ?, progress = ?,
                input = ?, checkpoint = ?, result = ?, error = ?,
                started_at = ?, paused_at = ?, completed_at = ?, cancelled_at = ?,
                updated_at = ?
            WHERE task_id = ? AND status = ?
            """,
            (
                task.status.value,
                *self._mutable_values(task),
                task.updated_at.isoformat(),
                task.task_id,
                expected_status.value,
            ),
        )
        return cursor.rowcount == 1

    async def delete_terminal_before(self, cutoff: datetime) -> int:
        """删除 updated_at 早于 cutoff 的终态任务，返回删除条数"""
        cursor = await self._conn.execute(
            f"DELETE FROM tasks WHERE status IN {_TERMINAL_SQL} AND updated_at < ?",
            (cutoff.isoformat(),),
        )
        return cursor.rowcount

    @staticmethod
    def _mutable_values(task: Task) -> tuple:
        return (
            task.current_step,
            json.dumps(task.completed_steps),
            task.progress,
            json.dumps(task.input, ensure_ascii=False),
            json.dumps(task.checkpoint, ensure_ascii=False),
            json.dumps(task.result, ensure_ascii=False) if task.result is not None else None,
            task.error,
            _iso(task.started_at),
            _iso(task.paused_at),
            _iso(task.completed_at),
            _iso(task.cancelled_at),
        )

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        return Task(
            task_id=row["task_id"],
            owner_id=row["owner_id"],
            task_type=TaskType(row["task_type"]),
            status=TaskStatus(row["status"]),
            current_step=row["current_step"],
            completed_steps=json.loads(row["completed_steps"]),
            progress=row["progress"],
            input=json.loads(row["input"]),
            checkpoint=json.loads(row["checkpoint"]),
            result=json.loads(row["result"]) if row["result"] is not None else None,
            error=row["error"],
            started_at=_parse(row["started_at"]),
            paused_at=_parse(row["paused_at"]),
            completed_at=_parse(row["completed_at"]),
            cancelled_at=_parse(row["cancelled_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value is not None else None
