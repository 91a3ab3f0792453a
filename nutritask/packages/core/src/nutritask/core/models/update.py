"""TaskUpdate -- 推送给进度流订阅者的状态变更通知"""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field
from ulid import ULID

from .enums import TaskEvent
from .task import Task


class TaskUpdateType(StrEnum):
    """推送事件类型"""

    SNAPSHOT = "snapshot"
    STARTED = "started"
    STEP_COMPLETED = "step-completed"
    PAUSED = "paused"
    RESUMED = "resumed"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


UPDATE_TYPE_BY_EVENT: dict[TaskEvent, TaskUpdateType] = {
    TaskEvent.START_EXECUTION: TaskUpdateType.STARTED,
    TaskEvent.STEP_COMPLETED: TaskUpdateType.STEP_COMPLETED,
    TaskEvent.PAUSE_REQUESTED: TaskUpdateType.PAUSED,
    TaskEvent.RESUME_REQUESTED: TaskUpdateType.RESUMED,
    TaskEvent.ALL_STEPS_DONE: TaskUpdateType.COMPLETED,
    TaskEvent.STEP_FAILED: TaskUpdateType.FAILED,
    TaskEvent.CANCEL_REQUESTED: TaskUpdateType.CANCELLED,
}


class TaskUpdate(BaseModel):
    """一次已提交的状态流转（或订阅时的快照）"""

    update_id: str = Field(default_factory=lambda: str(ULID()))
    task_id: str
    type: TaskUpdateType
    ts: datetime = Field(default_factory=lambda: datetime.now(UTC))
    task: Task

    @property
    def final(self) -> bool:
        """是否为该任务的最后一条推送"""
        return self.task.is_terminal

    def to_sse_data(self) -> dict:
        return {
            "type": self.type.value,
            "task": self.task.to_api_dict(),
            "final": self.final,
        }

    @classmethod
    def snapshot(cls, task: Task) -> "TaskUpdate":
        return cls(task_id=task.task_id, type=TaskUpdateType.SNAPSHOT, task=task)

    @classmethod
    def from_event(cls, event: TaskEvent, task: Task) -> "TaskUpdate":
        return cls(task_id=task.task_id, type=UPDATE_TYPE_BY_EVENT[event], task=task)
