"""SQLite 数据库初始化

PRAGMA 配置 + tasks 表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL（JSON 列以 TEXT 存储）
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id          TEXT PRIMARY KEY,
    owner_id         TEXT NOT NULL,
    task_type        TEXT NOT NULL,
    status           TEXT NOT NULL DEFAULT 'PENDING',
    current_step     TEXT,
    completed_steps  TEXT NOT NULL DEFAULT '[]',
    progress         INTEGER NOT NULL DEFAULT 0,
    input            TEXT NOT NULL DEFAULT '{}',
    checkpoint       TEXT NOT NULL DEFAULT '{}',
    result           TEXT,
    error            TEXT,
    started_at       TEXT,
    paused_at        TEXT,
    completed_at     TEXT,
    cancelled_at     TEXT,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks(owner_id, created_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_updated_at ON tasks(updated_at);",
    # 每个 (owner_id, task_type) 至多一个未结束任务
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_tasks_active_owner "
        "ON tasks(owner_id, task_type) "
        "WHERE status IN ('PENDING', 'RUNNING', 'PAUSED');"
    ),
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    await conn.execute(_TASKS_DDL)
    for idx_sql in _TASKS_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
