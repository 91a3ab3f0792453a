"""Step Executor Pipeline -- 按 task_type 注册的有序步骤流水线

步骤是具名、幂等的工作单元。每次运行（首次或恢复）都从持久化的
completed_steps 计算剩余步骤，按声明顺序串行执行；暂停/取消只在
步骤边界通过 RunToken 生效，不会打断正在执行的步骤。
"""

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Any

import pydantic
import structlog

from .exceptions import StepExecutionError, ValidationError
from .models.enums import TaskType
from .models.task import Task

log = structlog.get_logger()


@dataclass(frozen=True)
class StepResult:
    """步骤执行结果：成功（可带部分 payload）或失败（带消息）"""

    ok: bool
    payload: dict[str, Any] | None = None
    message: str | None = None

    @classmethod
    def success(cls, payload: dict[str, Any] | None = None) -> "StepResult":
        return cls(ok=True, payload=payload)

    @classmethod
    def failure(cls, message: str) -> "StepResult":
        return cls(ok=False, message=message)


class RunToken:
    """单次运行循环的暂停/取消信号，只在步骤入口检查"""

    def __init__(self) -> None:
        self._pause_requested = False
        self._cancel_requested = False

    def request_pause(self) -> None:
        self._pause_requested = True

    def request_cancel(self) -> None:
        self._cancel_requested = True

    @property
    def pause_requested(self) -> bool:
        return self._pause_requested

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    @property
    def stop_requested(self) -> bool:
        return self._pause_requested or self._cancel_requested


@dataclass
class StepContext:
    """传给步骤的上下文：任务快照 + 只读 checkpoint + 运行信号"""

    task: Task
    token: RunToken

    @property
    def input(self) -> Mapping[str, Any]:
        return MappingProxyType(self.task.input)

    @property
    def checkpoint(self) -> Mapping[str, Any]:
        return MappingProxyType(self.task.checkpoint)


StepFn = Callable[[StepContext], Awaitable[StepResult]]


@dataclass(frozen=True)
class Step:
    name: str
    run: StepFn


class WorkflowDefinition:
    """一种 task_type 的步骤清单与启动参数模型"""

    def __init__(
        self,
        task_type: TaskType,
        steps: Iterable[Step],
        input_model: type[pydantic.BaseModel],
    ) -> None:
        self.task_type = task_type
        self.steps: tuple[Step, ...] = tuple(steps)
        self.input_model = input_model

        names = [step.name for step in self.steps]
        if not names:
            raise ValueError(f"workflow {task_type} has no steps")
        if len(set(names)) != len(names):
            raise ValueError(f"workflow {task_type} has duplicate step names")
        self.step_names: tuple[str, ...] = tuple(names)

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    def remaining_steps(self, completed: Iterable[str]) -> list[Step]:
        """全部步骤减去已完成步骤，保持声明顺序"""
        done = set(completed)
        return [step for step in self.steps if step.name not in done]

    def next_step_name(self, completed: Iterable[str]) -> str | None:
        remaining = self.remaining_steps(completed)
        return remaining[0].name if remaining else None

    def validate_input(self, raw: Mapping[str, Any] | None) -> dict[str, Any]:
        """校验启动参数并返回规范化后的 dict

        Raises:
            ValidationError: 参数缺失或不符合业务约束
        """
        try:
            model = self.input_model.model_validate(dict(raw or {}))
        except pydantic.ValidationError as e:
            raise ValidationError(format_validation_error(e)) from None
        return model.model_dump(mode="json", by_alias=True)


def format_validation_error(error: pydantic.ValidationError) -> str:
    """将 pydantic 校验错误压缩为一行可读消息"""
    messages = []
    for item in error.errors():
        msg = str(item.get("msg", ""))
        msg = msg.removeprefix("Value error, ")
        loc = ".".join(str(part) for part in item.get("loc", ()))
        if item.get("type") == "value_error" or not loc:
            messages.append(msg)
        else:
            messages.append(f"{loc}: {msg}")
    return "; ".join(messages)


class WorkflowRegistry:
    """task_type -> WorkflowDefinition 映射，在构造时确定"""

    def __init__(self, workflows: Iterable[WorkflowDefinition] = ()) -> None:
        self._workflows: dict[TaskType, WorkflowDefinition] = {}
        for workflow in workflows:
            self.register(workflow)

    def register(self, workflow: WorkflowDefinition) -> None:
        if workflow.task_type in self._workflows:
            raise ValueError(f"workflow already registered: {workflow.task_type}")
        self._workflows[workflow.task_type] = workflow

    def get(self, task_type: TaskType | str) -> WorkflowDefinition:
        """按类型查找工作流

        Raises:
            ValidationError: 类型未知或未注册
        """
        try:
            workflow = self._workflows.get(TaskType(task_type))
        except ValueError:
            workflow = None
        if workflow is None:
            raise ValidationError(f"unsupported task type: {task_type}")
        return workflow

    @property
    def task_types(self) -> list[TaskType]:
        return list(self._workflows)

    def __contains__(self, task_type: object) -> bool:
        return task_type in self._workflows


class PipelineOutcome(StrEnum):
    COMPLETED = "completed"
    STOPPED = "stopped"


StepCompletedCallback = Callable[[str, dict[str, Any] | None], Awaitable[Task]]


class Pipeline:
    """执行一个工作流的剩余步骤"""

    def __init__(self, workflow: WorkflowDefinition) -> None:
        self._workflow = workflow

    async def run(
        self,
        task: Task,
        token: RunToken,
        on_step_completed: StepCompletedCallback,
    ) -> PipelineOutcome:
        """按声明顺序执行剩余步骤

        Args:
            task: 运行开始时的任务快照
            token: 本次运行的暂停/取消信号
            on_step_completed: 持久化一个完成步骤并返回更新后的任务

        Returns:
            COMPLETED 全部步骤完成；STOPPED 在步骤边界观察到暂停/取消

        Raises:
            StepExecutionError: 某个步骤失败或抛出异常
        """
        for step in self._workflow.remaining_steps(task.completed_steps):
            if token.stop_requested:
                return PipelineOutcome.STOPPED

            log.debug("step_started", task_id=task.task_id, step=step.name)
            try:
                result = await step.run(StepContext(task=task, token=token))
            except StepExecutionError:
                raise
            except Exception as e:
                log.error(
                    "step_raised",
                    task_id=task.task_id,
                    step=step.name,
                    error_type=type(e).__name__,
                )
                raise StepExecutionError(step.name, str(e) or type(e).__name__) from e

            if not result.ok:
                raise StepExecutionError(step.name, result.message or "step failed")

            # 执行期间被取消：丢弃本步结果；暂停则先记录，在下一个边界退出
            if token.cancel_requested:
                return PipelineOutcome.STOPPED

            task = await on_step_completed(step.name, result.payload)

        if token.stop_requested:
            return PipelineOutcome.STOPPED
        return PipelineOutcome.COMPLETED

