"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、SSE 参数、任务保留期等可配置常量。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("NUTRITASK_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "NUTRITASK_DB_PATH",
        str(_get_base_dir() / "sqlite" / "nutritask.db"),
    )


def get_retention_days() -> int:
    """终态任务保留天数（过期后可被清理）"""
    return int(os.environ.get("NUTRITASK_TASK_RETENTION_DAYS", "7"))


def get_data_source_spec() -> str | None:
    """业务数据源工厂的导入路径，形如 "package.module:factory"；未设置返回 None"""
    return os.environ.get("NUTRITASK_DATA_SOURCE") or None


def recover_on_startup() -> bool:
    """进程启动时是否恢复遗留的 RUNNING / PENDING 任务"""
    return os.environ.get("NUTRITASK_RECOVER_ON_STARTUP", "true").lower() in (
        "1",
        "true",
        "yes",
    )


# SSE 心跳间隔（秒）
SSE_HEARTBEAT_INTERVAL: int = int(
    os.environ.get("NUTRITASK_SSE_HEARTBEAT_INTERVAL", "15")
)

# 单个订阅者队列上限（写满即断开该订阅者）
SSE_QUEUE_MAXSIZE: int = int(os.environ.get("NUTRITASK_SSE_QUEUE_MAXSIZE", "100"))

# 周报日期跨度上限（含首尾）
MAX_SUMMARY_RANGE_DAYS: int = 7
