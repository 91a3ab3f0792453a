"""ExecutionController -- 任务运行循环的并发控制

每个活跃任务在本进程内至多有一个运行循环（asyncio.Task）。
pause / cancel 立即持久化并置位 RunToken，循环在下一个步骤边界退出；
resume 重新启动循环，从持久化的 completed_steps 计算剩余步骤，
因此进程重启后同样可以正确恢复。
"""

import asyncio

import structlog

from .exceptions import (
    InvalidTransitionError,
    StepExecutionError,
    TaskStatusConflictError,
)
from .manager import TaskManager
from .models.enums import TaskEvent, TaskStatus
from .models.task import Task
from .pipeline import Pipeline, PipelineOutcome, RunToken

log = structlog.get_logger()


class _RunHandle:
    def __init__(self, token: RunToken, task: asyncio.Task) -> None:
        self.token = token
        self.task = task


class ExecutionController:
    """启动 / 暂停 / 恢复 / 取消任务的运行循环"""

    def __init__(self, manager: TaskManager) -> None:
        self._manager = manager
        self._runs: dict[str, _RunHandle] = {}

    async def start(self, task_id: str) -> Task:
        """PENDING -> RUNNING，并在后台启动运行循环（不阻塞调用方）"""
        task = await self._manager.transition(task_id, TaskEvent.START_EXECUTION)
        self._launch(task_id)
        return task

    async def request_pause(self, task_id: str) -> Task:
        """RUNNING -> PAUSED；当前步骤的结果照常记录，之后循环退出

        Raises:
            InvalidTransitionError: 任务不在 RUNNING
        """
        task = await self._manager.transition(task_id, TaskEvent.PAUSE_REQUESTED)
        handle = self._runs.get(task_id)
        if handle is not None:
            handle.token.request_pause()
        return task

    async def resume(self, task_id: str) -> Task:
        """PAUSED -> RUNNING，重新启动运行循环

        Raises:
            InvalidTransitionError: 任务不在 PAUSED
        """
        task = await self._manager.transition(task_id, TaskEvent.RESUME_REQUESTED)
        self._launch(task_id)
        return task

    async def cancel(self, task_id: str, reason: str | None = None) -> Task:
        """非终态 -> CANCELLED，循环在下一个步骤边界前停止

        Raises:
            InvalidTransitionError: 任务已处于终态
        """
        task = await self._manager.transition(
            task_id, TaskEvent.CANCEL_REQUESTED, reason=reason
        )
        handle = self._runs.get(task_id)
        if handle is not None:
            handle.token.request_cancel()
        return task

    async def recover_interrupted(self) -> list[str]:
        """接管上一个进程遗留的活跃任务

        RUNNING 但本进程没有运行循环的任务重新启动循环；
        创建后未来得及 start 的 PENDING 任务补做 start。

        Returns:
            被恢复的 task_id 列表
        """
        recovered: list[str] = []
        for task in await self._manager.list_tasks(status=TaskStatus.PENDING):
            try:
                await self.start(task.task_id)
            except (InvalidTransitionError, TaskStatusConflictError) as e:
                log.info(
                    "pending_task_recovery_skipped",
                    task_id=task.task_id,
                    error_type=type(e).__name__,
                )
                continue
            recovered.append(task.task_id)

        for task in await self._manager.list_tasks(status=TaskStatus.RUNNING):
            if task.task_id in self._runs:
                continue
            self._launch(task.task_id)
            recovered.append(task.task_id)
        if recovered:
            log.info("interrupted_tasks_recovered", task_ids=recovered)
        return recovered

    def is_running(self, task_id: str) -> bool:
        handle = self._runs.get(task_id)
        return handle is not None and not handle.task.done()

    async def wait_idle(self, task_id: str) -> None:
        """等待任务当前的运行循环退出"""
        handle = self._runs.get(task_id)
        if handle is not None:
            await asyncio.wait([handle.task])

    async def shutdown(self) -> None:
        """停止所有运行循环（不改变持久化状态，下次启动时恢复）"""
        handles = list(self._runs.values())
        for handle in handles:
            handle.task.cancel()
        if handles:
            await asyncio.gather(*(h.task for h in handles), return_exceptions=True)
        self._runs.clear()

    def _launch(self, task_id: str) -> None:
        previous = self._runs.get(task_id)
        token = RunToken()
        run = asyncio.create_task(
            self._run(task_id, token, previous.task if previous else None),
            name=f"task-run-{task_id}",
        )
        handle = _RunHandle(token, run)
        self._runs[task_id] = handle
        run.add_done_callback(lambda _: self._forget(task_id, handle))

    def _forget(self, task_id: str, handle: _RunHandle) -> None:
        if self._runs.get(task_id) is handle:
            del self._runs[task_id]

    async def _run(
        self,
        task_id: str,
        token: RunToken,
        previous: asyncio.Task | None,
    ) -> None:
        """运行循环：执行剩余步骤并驱动终态流转"""
        if previous is not None and not previous.done():
            # 上一个循环仍在等待在途步骤返回
            await asyncio.wait([previous])

        try:
            task = await self._manager.get_task(task_id)
            if task.status != TaskStatus.RUNNING or token.stop_requested:
                log.info("run_loop_skipped", task_id=task_id, status=task.status.value)
                return

            workflow = self._manager.registry.get(task.task_type)

            async def on_step_completed(step: str, payload: dict | None) -> Task:
                return await self._manager.transition(
                    task_id,
                    TaskEvent.STEP_COMPLETED,
                    step=step,
                    payload=payload,
                )

            outcome = await Pipeline(workflow).run(task, token, on_step_completed)
            if outcome == PipelineOutcome.COMPLETED:
                await self._manager.transition(task_id, TaskEvent.ALL_STEPS_DONE)
                log.info("task_completed", task_id=task_id)
            else:
                log.info(
                    "run_loop_stopped",
                    task_id=task_id,
                    paused=token.pause_requested,
                    cancelled=token.cancel_requested,
                )

        except StepExecutionError as e:
            if token.stop_requested:
                log.info("step_failure_ignored_after_stop", task_id=task_id, step=e.step)
                return
            await self._fail(task_id, e)
        except (InvalidTransitionError, TaskStatusConflictError) as e:
            # 在途步骤返回前任务已被暂停或取消
            log.info(
                "run_loop_superseded",
                task_id=task_id,
                error_type=type(e).__name__,
            )
        except asyncio.CancelledError:
            log.info("run_loop_cancelled", task_id=task_id)
            raise
        except Exception as e:
            log.exception(
                "run_loop_crashed",
                task_id=task_id,
                error_type=type(e).__name__,
            )
            await self._fail(task_id, StepExecutionError("internal", str(e) or type(e).__name__))

    async def _fail(self, task_id: str, error: StepExecutionError) -> None:
        log.warning("step_failed", task_id=task_id, step=error.step, error=error.message)
        try:
            await self._manager.transition(
                task_id,
                TaskEvent.STEP_FAILED,
                reason=f"{error.step}: {error.message}",
            )
        except (InvalidTransitionError, TaskStatusConflictError):
            log.warning("skip_failure_transition_due_state_conflict", task_id=task_id)
        except Exception as e:
            log.error(
                "failed_to_record_failure",
                task_id=task_id,
                error_type=type(e).__name__,
            )
