"""CLI 入口模块 -- python -m nutritask.core <command>

支持的命令：
  cleanup-tasks [days]  删除超过保留期的终态任务
  list-active           列出所有未结束的任务
"""

import asyncio
import sys

from .config import get_db_path, get_retention_days
from .models.enums import ACTIVE_STATES


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("用法: python -m nutritask.core <command>")
        print("命令:")
        print("  cleanup-tasks [days]  删除超过保留期的终态任务")
        print("  list-active           列出所有未结束的任务")
        sys.exit(1)

    command = sys.argv[1]

    if command == "cleanup-tasks":
        days = get_retention_days()
        if len(sys.argv) > 2:
            try:
                days = int(sys.argv[2])
            except ValueError:
                print(f"无效的天数: {sys.argv[2]}")
                sys.exit(1)
        asyncio.run(cleanup_tasks(days))
    elif command == "list-active":
        asyncio.run(list_active())
    else:
        print(f"未知命令: {command}")
        print("可用命令: cleanup-tasks, list-active")
        sys.exit(1)


async def cleanup_tasks(days: int) -> int:
    """执行过期任务清理"""
    from .manager import TaskManager
    from .store import create_store_group
    from .workflows import build_default_registry

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")
    print(f"清理 {days} 天前结束的任务...")

    store_group = await create_store_group(db_path)
    try:
        manager = TaskManager(store_group, build_default_registry())
        deleted = await manager.cleanup_expired(days)
        print(f"清理完成，删除 {deleted} 个任务")
        return deleted
    finally:
        await store_group.conn.close()


async def list_active() -> None:
    """打印未结束任务"""
    from .store import create_store_group

    store_group = await create_store_group(get_db_path())
    try:
        tasks = await store_group.task_store.list_tasks()
        for task in tasks:
            if task.status in ACTIVE_STATES:
                print(
                    f"{task.task_id}  {task.status.value:<8} {task.progress:>3}%  "
                    f"{task.task_type.value}  owner={task.owner_id}"
                )
    finally:
        await store_group.conn.close()


if __name__ == "__main__":
    main()
