"""NutriTask Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    ACTIVE_STATES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    TaskEvent,
    TaskStatus,
    TaskType,
    next_status,
    validate_transition,
)
from .task import Task
from .update import TaskUpdate, TaskUpdateType

__all__ = [
    # 枚举
    "TaskStatus",
    "TaskEvent",
    "TaskType",
    # 状态机
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "ACTIVE_STATES",
    "next_status",
    "validate_transition",
    # Task
    "Task",
    # 推送
    "TaskUpdate",
    "TaskUpdateType",
]
