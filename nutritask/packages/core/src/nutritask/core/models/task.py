"""Task Domain Model

tasks 表的唯一持久化实体。步骤的中间结果只能写入 checkpoint，
完成时 checkpoint 整体成为 result。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import ACTIVE_STATES, TERMINAL_STATES, TaskStatus, TaskType


class Task(BaseModel):
    """Task 数据模型"""

    task_id: str = Field(description="唯一标识，ULID 格式")
    owner_id: str = Field(description="任务作用的实体（客户 ID）")
    task_type: TaskType = Field(description="工作流类型")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="当前状态")
    current_step: str | None = Field(default=None, description="正在执行或将要恢复的步骤")
    completed_steps: list[str] = Field(default_factory=list, description="已完成步骤（有序）")
    progress: int = Field(default=0, ge=0, le=100, description="进度百分比")
    input: dict[str, Any] = Field(default_factory=dict, description="启动参数")
    checkpoint: dict[str, Any] = Field(default_factory=dict, description="步骤中间结果")
    result: dict[str, Any] | None = Field(default=None, description="完成时的结果")
    error: str | None = Field(default=None, description="失败原因或取消原因")
    started_at: datetime | None = None
    paused_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATES

    def to_api_dict(self) -> dict[str, Any]:
        """对外响应格式（camelCase 键）"""
        return {
            "id": self.task_id,
            "ownerId": self.owner_id,
            "taskType": self.task_type.value,
            "status": self.status.value,
            "currentStep": self.current_step,
            "completedSteps": list(self.completed_steps),
            "progress": self.progress,
            "input": self.input,
            "checkpoint": self.checkpoint,
            "result": self.result,
            "error": self.error,
            "startedAt": _iso(self.started_at),
            "pausedAt": _iso(self.paused_at),
            "completedAt": _iso(self.completed_at),
            "cancelledAt": _iso(self.cancelled_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
