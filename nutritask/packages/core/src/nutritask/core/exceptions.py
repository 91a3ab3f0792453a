"""任务编排异常体系

路由层按类型映射为 400 / 404 / 409 响应。
"""

from .models.enums import TaskStatus
from .models.task import Task


class TaskError(Exception):
    """所有任务编排错误的基类"""


class ValidationError(TaskError):
    """启动参数不合法（不创建任务）"""


class ConflictError(TaskError):
    """同一 (owner_id, task_type) 已存在未结束的任务"""

    def __init__(self, existing: Task) -> None:
        self.existing = existing
        super().__init__(
            f"an active {existing.task_type.value} task already exists "
            f"for owner {existing.owner_id}: {existing.task_id}"
        )


class NotFoundError(TaskError):
    """task_id 不存在"""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__("task not found")


_TERMINAL_WORDING = {
    TaskStatus.COMPLETED: "completed",
    TaskStatus.FAILED: "failed",
    TaskStatus.CANCELLED: "cancelled",
}


class InvalidTransitionError(TaskError):
    """当前状态不允许该操作；消息中包含当前状态"""

    def __init__(self, task_id: str, status: TaskStatus, action: str) -> None:
        self.task_id = task_id
        self.status = status
        self.action = action
        wording = _TERMINAL_WORDING.get(status)
        if wording is not None:
            message = f"task already {wording}, cannot {action}"
        else:
            message = f"cannot {action} task in status {status.value}"
        super().__init__(message)


class StepExecutionError(TaskError):
    """步骤执行失败"""

    def __init__(self, step: str, message: str) -> None:
        self.step = step
        self.message = message
        super().__init__(f"step '{step}' failed: {message}")


class TaskStatusConflictError(TaskError):
    """compare-and-set 更新时持久化状态已被其他写入方改变"""

    def __init__(self, task_id: str, expected: TaskStatus, actual: TaskStatus | None) -> None:
        self.task_id = task_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"task {task_id} status changed: expected {expected.value}, "
            f"found {actual.value if actual else 'missing'}"
        )
