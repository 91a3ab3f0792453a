"""全局 pytest 配置 -- 临时 SQLite、可控步骤脚本、编排组件 fixture"""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest
import pytest_asyncio
from nutritask.core.controller import ExecutionController
from nutritask.core.manager import TaskManager
from nutritask.core.models import Task, TaskStatus, TaskType, TaskUpdate
from nutritask.core.pipeline import (
    Step,
    StepContext,
    StepResult,
    WorkflowDefinition,
    WorkflowRegistry,
)
from nutritask.core.store import StoreGroup, create_store_group
from nutritask.core.workflows import WeeklySummaryInput
from ulid import ULID

SCRIPT_STEPS = ["auth", "fetch", "validate", "analyze", "save"]

WEEK_INPUT = {"startDate": "2026-02-01", "endDate": "2026-02-07"}


class StepScript:
    """可控步骤集合：记录调用顺序，可让指定步骤阻塞或失败"""

    def __init__(self, names: list[str]) -> None:
        self.names = list(names)
        self.calls: list[str] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.entered: dict[str, asyncio.Event] = {n: asyncio.Event() for n in names}
        self.failures: dict[str, str] = {}
        self.errors: dict[str, Exception] = {}

    def block(self, name: str) -> asyncio.Event:
        """让步骤 name 在返回前等待，返回用于放行的 Event"""
        gate = asyncio.Event()
        self.gates[name] = gate
        return gate

    def fail(self, name: str, message: str) -> None:
        self.failures[name] = message

    def raise_in(self, name: str, error: Exception) -> None:
        self.errors[name] = error

    def _make(self, name: str) -> Step:
        async def run(ctx: StepContext) -> StepResult:
            self.calls.append(name)
            self.entered[name].set()
            gate = self.gates.get(name)
            if gate is not None:
                await gate.wait()
            if name in self.errors:
                raise self.errors[name]
            if name in self.failures:
                return StepResult.failure(self.failures[name])
            return StepResult.success({f"{name}Done": True})

        return Step(name=name, run=run)

    def workflow(self, task_type: TaskType = TaskType.WEEKLY_SUMMARY) -> WorkflowDefinition:
        return WorkflowDefinition(
            task_type,
            [self._make(name) for name in self.names],
            WeeklySummaryInput,
        )


class RecordingPublisher:
    """记录 TaskManager 推送的所有更新"""

    def __init__(self) -> None:
        self.updates: list[TaskUpdate] = []

    async def publish(self, update: TaskUpdate) -> None:
        self.updates.append(update)

    def types(self, task_id: str) -> list[str]:
        return [u.type.value for u in self.updates if u.task_id == task_id]


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "sqlite" / "test.db"


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """提供已初始化的临时 StoreGroup"""
    group = await create_store_group(str(tmp_db_path))
    yield group
    await group.conn.close()


@pytest.fixture
def make_task() -> Callable[..., Task]:
    """构造未落盘的 Task（now 参数控制 created_at/updated_at）"""

    def _make(
        owner_id: str = "client-1",
        status: TaskStatus = TaskStatus.PENDING,
        task_type: TaskType = TaskType.WEEKLY_SUMMARY,
        **fields,
    ) -> Task:
        now = fields.pop("now", datetime.now(UTC))
        return Task(
            task_id=str(ULID()),
            owner_id=owner_id,
            task_type=task_type,
            status=status,
            input=dict(WEEK_INPUT),
            created_at=now,
            updated_at=now,
            **fields,
        )

    return _make


@pytest.fixture
def script() -> StepScript:
    return StepScript(SCRIPT_STEPS)


@pytest.fixture
def registry(script: StepScript) -> WorkflowRegistry:
    return WorkflowRegistry([script.workflow()])


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest_asyncio.fixture
async def manager(
    store_group: StoreGroup,
    registry: WorkflowRegistry,
    publisher: RecordingPublisher,
) -> TaskManager:
    return TaskManager(store_group, registry, publisher=publisher)


@pytest_asyncio.fixture
async def controller(manager: TaskManager) -> AsyncGenerator[ExecutionController, None]:
    ctrl = ExecutionController(manager)
    yield ctrl
    await ctrl.shutdown()


@pytest.fixture
def wait_status() -> Callable[..., Awaitable[Task]]:
    """轮询直到任务到达指定状态"""

    async def _wait(
        manager: TaskManager,
        task_id: str,
        status: TaskStatus,
        timeout: float = 3.0,
    ) -> Task:
        async with asyncio.timeout(timeout):
            while True:
                task = await manager.get_task(task_id)
                if task.status == status:
                    return task
                await asyncio.sleep(0.01)

    return _wait
