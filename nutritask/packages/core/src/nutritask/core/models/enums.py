"""枚举定义 -- 任务状态机

包含 TaskStatus、TaskEvent、TaskType 枚举，
以及 VALID_TRANSITIONS 合法流转表和 TERMINAL_STATES / ACTIVE_STATES 集合。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """Task 状态"""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"

    # 终态
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class TaskEvent(StrEnum):
    """驱动状态流转的事件"""

    START_EXECUTION = "start-execution"
    STEP_COMPLETED = "step-completed"
    PAUSE_REQUESTED = "pause-requested"
    RESUME_REQUESTED = "resume-requested"
    ALL_STEPS_DONE = "all-steps-done"
    CANCEL_REQUESTED = "cancel-requested"
    STEP_FAILED = "step-failed"


class TaskType(StrEnum):
    """工作流类型（决定运行哪条步骤流水线）"""

    WEEKLY_SUMMARY = "weekly-summary"
    INCREMENTAL_SUMMARY_UPDATE = "incremental-summary-update"


# (当前状态, 事件) -> 目标状态
VALID_TRANSITIONS: dict[tuple[TaskStatus, TaskEvent], TaskStatus] = {
    (TaskStatus.PENDING, TaskEvent.START_EXECUTION): TaskStatus.RUNNING,
    (TaskStatus.PENDING, TaskEvent.CANCEL_REQUESTED): TaskStatus.CANCELLED,
    (TaskStatus.RUNNING, TaskEvent.STEP_COMPLETED): TaskStatus.RUNNING,
    (TaskStatus.RUNNING, TaskEvent.PAUSE_REQUESTED): TaskStatus.PAUSED,
    (TaskStatus.RUNNING, TaskEvent.ALL_STEPS_DONE): TaskStatus.COMPLETED,
    (TaskStatus.RUNNING, TaskEvent.CANCEL_REQUESTED): TaskStatus.CANCELLED,
    (TaskStatus.RUNNING, TaskEvent.STEP_FAILED): TaskStatus.FAILED,
    # 暂停前已在执行的步骤返回后照常记录
    (TaskStatus.PAUSED, TaskEvent.STEP_COMPLETED): TaskStatus.PAUSED,
    (TaskStatus.PAUSED, TaskEvent.RESUME_REQUESTED): TaskStatus.RUNNING,
    (TaskStatus.PAUSED, TaskEvent.CANCEL_REQUESTED): TaskStatus.CANCELLED,
}

TERMINAL_STATES: frozenset[TaskStatus] = frozenset(
    {
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.CANCELLED,
    }
)

ACTIVE_STATES: frozenset[TaskStatus] = frozenset(
    {
        TaskStatus.PENDING,
        TaskStatus.RUNNING,
        TaskStatus.PAUSED,
    }
)


def next_status(status: TaskStatus, event: TaskEvent) -> TaskStatus | None:
    """查询流转目标状态

    Args:
        status: 当前状态
        event: 触发事件

    Returns:
        目标状态；流转不合法时返回 None
    """
    return VALID_TRANSITIONS.get((status, event))


def validate_transition(status: TaskStatus, event: TaskEvent) -> bool:
    """验证事件在当前状态下是否合法"""
    return next_status(status, event) is not None
