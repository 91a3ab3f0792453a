"""FastAPI lifespan 测试

测试内容：
1. 启动时 DB 初始化与组件装配
2. 启动时恢复遗留的 RUNNING / PENDING 任务
3. 关闭时停止运行循环并关闭连接
4. 业务数据源注入（app.state / NUTRITASK_DATA_SOURCE）
"""

import pytest
from fastapi import FastAPI
from nutritask.core.manager import TaskManager
from nutritask.core.models import TaskEvent, TaskStatus
from nutritask.core.store import create_store_group
from nutritask.core.workflows import InMemoryNutritionDataSource
from nutritask.gateway.main import create_app, lifespan
from nutritask.provider import LiteLLMClient

WEEK_INPUT = {"startDate": "2026-02-01", "endDate": "2026-02-07"}


@pytest.fixture
def lifespan_env(tmp_db_path, monkeypatch):
    monkeypatch.setenv("NUTRITASK_DB_PATH", str(tmp_db_path))
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")
    return tmp_db_path


class TestLifespan:
    async def test_components_initialized(self, lifespan_env):
        app = FastAPI()
        async with lifespan(app):
            assert app.state.store_group.conn is not None
            assert app.state.sse_hub is not None
            assert app.state.task_manager.registry.task_types
            assert app.state.controller is not None
            conn = app.state.store_group.conn

        with pytest.raises(ValueError):
            await conn.execute("SELECT 1")

    async def test_custom_registry_used(self, lifespan_env, registry):
        app = FastAPI()
        app.state.workflow_registry = registry
        async with lifespan(app):
            assert app.state.task_manager.registry is registry

    async def test_interrupted_task_recovered_on_startup(
        self, lifespan_env, registry, script, wait_status
    ):
        # 上一个进程：auth 完成后退出，状态仍为 RUNNING
        group = await create_store_group(str(lifespan_env))
        previous = TaskManager(group, registry)
        task = await previous.create_task("c1", "weekly-summary", WEEK_INPUT)
        await previous.transition(task.task_id, TaskEvent.START_EXECUTION)
        await previous.transition(task.task_id, TaskEvent.STEP_COMPLETED, step="auth")
        await group.conn.close()

        app = FastAPI()
        app.state.workflow_registry = registry
        async with lifespan(app):
            done = await wait_status(app.state.task_manager, task.task_id, TaskStatus.COMPLETED)

        assert done.completed_steps == script.names
        assert "auth" not in script.calls

    async def test_stale_pending_task_started_on_startup(
        self, lifespan_env, registry, script, wait_status
    ):
        # 上一个进程：create_task 之后、start 之前退出
        group = await create_store_group(str(lifespan_env))
        previous = TaskManager(group, registry)
        task = await previous.create_task("c1", "weekly-summary", WEEK_INPUT)
        await group.conn.close()

        app = FastAPI()
        app.state.workflow_registry = registry
        async with lifespan(app):
            done = await wait_status(app.state.task_manager, task.task_id, TaskStatus.COMPLETED)

        assert done.completed_steps == script.names
        assert script.calls == script.names

    async def test_recovery_can_be_disabled(
        self, lifespan_env, registry, script, monkeypatch
    ):
        monkeypatch.setenv("NUTRITASK_RECOVER_ON_STARTUP", "false")
        group = await create_store_group(str(lifespan_env))
        previous = TaskManager(group, registry)
        task = await previous.create_task("c1", "weekly-summary", WEEK_INPUT)
        await previous.transition(task.task_id, TaskEvent.START_EXECUTION)
        await group.conn.close()

        app = FastAPI()
        app.state.workflow_registry = registry
        async with lifespan(app):
            assert not app.state.controller.is_running(task.task_id)
            stored = await app.state.task_manager.get_task(task.task_id)

        assert stored.status == TaskStatus.RUNNING
        assert script.calls == []


class TestSummaryGeneratorWiring:
    async def test_echo_mode_by_default(self, lifespan_env, monkeypatch):
        monkeypatch.delenv("NUTRITASK_LLM_MODE", raising=False)
        app = FastAPI()
        async with lifespan(app):
            assert app.state.provider_config.llm_mode == "echo"
            assert app.state.litellm_client is None

    async def test_litellm_mode_builds_client(self, lifespan_env, monkeypatch):
        monkeypatch.setenv("NUTRITASK_LLM_MODE", "litellm")
        monkeypatch.setenv("LITELLM_PROXY_URL", "http://proxy.internal:4000/")
        app = FastAPI()
        async with lifespan(app):
            client = app.state.litellm_client
            assert isinstance(client, LiteLLMClient)
            assert client.proxy_base_url == "http://proxy.internal:4000"


class TestDataSourceWiring:
    @pytest.fixture
    def data_source(self) -> InMemoryNutritionDataSource:
        source = InMemoryNutritionDataSource()
        source.add_client("c1", name="张三")
        source.add_meal_group("c1", "2026-02-02", text_description="米饭 青菜", total_score=80)
        source.add_meal_group("c1", "2026-02-04", text_description="面条", total_score=60)
        source.set_recommendation("c1", {"protein": "120g"})
        return source

    async def test_injected_source_used_by_workflows(
        self, lifespan_env, data_source, wait_status, monkeypatch
    ):
        monkeypatch.delenv("NUTRITASK_LLM_MODE", raising=False)
        app = create_app(data_source=data_source)
        async with lifespan(app):
            assert app.state.nutrition_data_source is data_source
            manager = app.state.task_manager
            task = await manager.create_task("c1", "weekly-summary", WEEK_INPUT)
            await app.state.controller.start(task.task_id)
            done = await wait_status(manager, task.task_id, TaskStatus.COMPLETED)

        assert done.result["summaryId"] in data_source.summaries

    async def test_source_from_env_factory(self, lifespan_env, monkeypatch):
        monkeypatch.setenv(
            "NUTRITASK_DATA_SOURCE", "nutritask.core.workflows:InMemoryNutritionDataSource"
        )
        app = FastAPI()
        async with lifespan(app):
            assert isinstance(app.state.nutrition_data_source, InMemoryNutritionDataSource)

    async def test_malformed_env_rejected(self, lifespan_env, monkeypatch):
        monkeypatch.setenv("NUTRITASK_DATA_SOURCE", "nutritask.core.workflows")
        app = FastAPI()
        with pytest.raises(ValueError, match="package.module:factory"):
            async with lifespan(app):
                pass
        await app.state.store_group.conn.close()

    async def test_unconfigured_falls_back_to_empty_source(self, lifespan_env, monkeypatch):
        monkeypatch.delenv("NUTRITASK_DATA_SOURCE", raising=False)
        app = FastAPI()
        async with lifespan(app):
            source = app.state.nutrition_data_source
            assert isinstance(source, InMemoryNutritionDataSource)
            assert await source.get_client("c1") is None
