"""状态机流转单元测试

测试内容：
1. 表中每条边都合法且目标状态正确
2. 其余 (状态, 事件) 组合一律非法
3. 终态没有任何出边
"""

import pytest
from nutritask.core.models.enums import (
    ACTIVE_STATES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    TaskEvent,
    TaskStatus,
    next_status,
    validate_transition,
)

EXPECTED_EDGES = [
    (TaskStatus.PENDING, TaskEvent.START_EXECUTION, TaskStatus.RUNNING),
    (TaskStatus.PENDING, TaskEvent.CANCEL_REQUESTED, TaskStatus.CANCELLED),
    (TaskStatus.RUNNING, TaskEvent.STEP_COMPLETED, TaskStatus.RUNNING),
    (TaskStatus.RUNNING, TaskEvent.PAUSE_REQUESTED, TaskStatus.PAUSED),
    (TaskStatus.RUNNING, TaskEvent.ALL_STEPS_DONE, TaskStatus.COMPLETED),
    (TaskStatus.RUNNING, TaskEvent.CANCEL_REQUESTED, TaskStatus.CANCELLED),
    (TaskStatus.RUNNING, TaskEvent.STEP_FAILED, TaskStatus.FAILED),
    (TaskStatus.PAUSED, TaskEvent.STEP_COMPLETED, TaskStatus.PAUSED),
    (TaskStatus.PAUSED, TaskEvent.RESUME_REQUESTED, TaskStatus.RUNNING),
    (TaskStatus.PAUSED, TaskEvent.CANCEL_REQUESTED, TaskStatus.CANCELLED),
]


class TestStateMachineTransitions:
    """状态机流转验证"""

    @pytest.mark.parametrize("from_status,event,to_status", EXPECTED_EDGES)
    def test_valid_transition(
        self, from_status: TaskStatus, event: TaskEvent, to_status: TaskStatus
    ):
        assert validate_transition(from_status, event) is True
        assert next_status(from_status, event) == to_status

    def test_table_has_no_extra_edges(self):
        expected = {(f, e) for f, e, _ in EXPECTED_EDGES}
        assert set(VALID_TRANSITIONS) == expected

    @pytest.mark.parametrize(
        "from_status,event",
        [
            (TaskStatus.PENDING, TaskEvent.PAUSE_REQUESTED),
            (TaskStatus.PENDING, TaskEvent.STEP_COMPLETED),
            (TaskStatus.RUNNING, TaskEvent.RESUME_REQUESTED),
            (TaskStatus.RUNNING, TaskEvent.START_EXECUTION),
            (TaskStatus.PAUSED, TaskEvent.PAUSE_REQUESTED),
            (TaskStatus.PAUSED, TaskEvent.STEP_FAILED),
            (TaskStatus.PAUSED, TaskEvent.ALL_STEPS_DONE),
        ],
    )
    def test_invalid_transition(self, from_status: TaskStatus, event: TaskEvent):
        assert validate_transition(from_status, event) is False
        assert next_status(from_status, event) is None

    def test_terminal_states_have_no_outgoing_edges(self):
        for terminal in TERMINAL_STATES:
            for event in TaskEvent:
                assert validate_transition(terminal, event) is False, (
                    f"终态 {terminal} 不应响应 {event}"
                )

    def test_active_and_terminal_partition_all_states(self):
        assert ACTIVE_STATES | TERMINAL_STATES == set(TaskStatus)
        assert not ACTIVE_STATES & TERMINAL_STATES
