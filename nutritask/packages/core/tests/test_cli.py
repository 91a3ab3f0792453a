"""CLI 命令测试 -- cleanup-tasks / list-active"""

import sys
from datetime import UTC, datetime, timedelta

import pytest
from nutritask.core.__main__ import cleanup_tasks, list_active, main
from nutritask.core.models import TaskStatus
from nutritask.core.store import create_store_group
from nutritask.core.store.transaction import create_task_atomic


@pytest.fixture
def db_env(tmp_db_path, monkeypatch):
    monkeypatch.setenv("NUTRITASK_DB_PATH", str(tmp_db_path))
    return tmp_db_path


async def _seed(db_path, tasks):
    group = await create_store_group(str(db_path))
    try:
        for task in tasks:
            await create_task_atomic(group.conn, group.task_store, task)
    finally:
        await group.conn.close()


class TestCleanupCommand:
    async def test_cleanup_tasks(self, db_env, make_task, capsys):
        old = datetime.now(UTC) - timedelta(days=20)
        await _seed(
            db_env,
            [
                make_task(owner_id="c1", status=TaskStatus.COMPLETED, now=old),
                make_task(owner_id="c2", status=TaskStatus.CANCELLED, now=old),
                make_task(owner_id="c3", status=TaskStatus.COMPLETED),
            ],
        )

        deleted = await cleanup_tasks(7)

        assert deleted == 2
        assert "删除 2 个任务" in capsys.readouterr().out

    async def test_list_active(self, db_env, make_task, capsys):
        active = make_task(owner_id="c1", status=TaskStatus.PAUSED, progress=40)
        done = make_task(owner_id="c2", status=TaskStatus.COMPLETED)
        await _seed(db_env, [active, done])

        await list_active()

        out = capsys.readouterr().out
        assert active.task_id in out
        assert "40%" in out
        assert done.task_id not in out


class TestMainArgs:
    def test_no_command(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["nutritask-admin"])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1
        assert "cleanup-tasks" in capsys.readouterr().out

    def test_invalid_days(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["nutritask-admin", "cleanup-tasks", "abc"])
        with pytest.raises(SystemExit):
            main()
        assert "无效的天数" in capsys.readouterr().out

    def test_unknown_command(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["nutritask-admin", "vacuum"])
        with pytest.raises(SystemExit):
            main()
        assert "未知命令" in capsys.readouterr().out
