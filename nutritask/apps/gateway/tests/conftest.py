"""apps/gateway 测试配置 -- FastAPI app + httpx AsyncClient fixture"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from nutritask.core.controller import ExecutionController
from nutritask.core.manager import TaskManager
from nutritask.core.store import StoreGroup
from nutritask.gateway.services.sse_hub import SSEHub


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse-starlette 的退出事件绑定在首次使用的事件循环上，每个用例重置"""
    from sse_starlette.sse import AppStatus

    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield


@pytest_asyncio.fixture
async def app(tmp_path: Path, store_group: StoreGroup, registry):
    """创建测试用 FastAPI app 实例（手动装配组件，绕过 lifespan）"""
    os.environ["NUTRITASK_DB_PATH"] = str(tmp_path / "sqlite" / "test.db")
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from nutritask.gateway.main import create_app

    application = create_app()

    hub = SSEHub()
    manager = TaskManager(store_group, registry, publisher=hub)
    controller = ExecutionController(manager)
    application.state.store_group = store_group
    application.state.sse_hub = hub
    application.state.task_manager = manager
    application.state.controller = controller

    yield application

    await controller.shutdown()
    for key in ["NUTRITASK_DB_PATH", "LOGFIRE_SEND_TO_LOGFIRE"]:
        os.environ.pop(key, None)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def task_manager(app) -> TaskManager:
    return app.state.task_manager


@pytest.fixture
def sse_hub(app) -> SSEHub:
    return app.state.sse_hub
