"""集成测试共享 fixture"""

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from nutritask.core.controller import ExecutionController
from nutritask.core.manager import TaskManager
from nutritask.core.pipeline import WorkflowRegistry
from nutritask.core.store import create_store_group
from nutritask.gateway.services.sse_hub import SSEHub


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    from sse_starlette.sse import AppStatus

    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield


@pytest_asyncio.fixture
async def boot_app(
    tmp_path: Path,
) -> AsyncGenerator[Callable[[WorkflowRegistry], Awaitable[FastAPI]], None]:
    """模拟一次进程启动：同一数据库文件上装配新的 app"""
    db_path = str(tmp_path / "sqlite" / "integration.db")
    os.environ["NUTRITASK_DB_PATH"] = db_path
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from nutritask.gateway.main import create_app

    started: list[FastAPI] = []

    async def _boot(registry: WorkflowRegistry) -> FastAPI:
        app = create_app()
        store_group = await create_store_group(db_path)
        hub = SSEHub()
        manager = TaskManager(store_group, registry, publisher=hub)
        app.state.store_group = store_group
        app.state.sse_hub = hub
        app.state.task_manager = manager
        app.state.controller = ExecutionController(manager)
        started.append(app)
        return app

    yield _boot

    for app in started:
        await _stop_app(app)
    os.environ.pop("NUTRITASK_DB_PATH", None)
    os.environ.pop("LOGFIRE_SEND_TO_LOGFIRE", None)


async def _stop_app(app: FastAPI) -> None:
    """停止运行循环并关闭连接（可重复调用）"""
    await app.state.controller.shutdown()
    await app.state.store_group.conn.close()


@pytest.fixture
def stop_app() -> Callable[[FastAPI], Awaitable[None]]:
    return _stop_app


@pytest_asyncio.fixture
async def integration_app(boot_app, registry) -> FastAPI:
    """使用可控步骤脚本的集成测试 app"""
    return await boot_app(registry)


@pytest_asyncio.fixture
async def client(integration_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=integration_app),
        base_url="http://test",
    ) as ac:
        yield ac
