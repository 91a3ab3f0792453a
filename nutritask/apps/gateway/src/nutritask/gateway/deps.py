"""依赖注入模块 -- 通过 FastAPI Depends 注入编排组件

组件实例通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from fastapi import Request
from nutritask.core.manager import TaskManager

from .services.sse_hub import SSEHub
from .services.task_service import TaskService


def get_sse_hub(request: Request) -> SSEHub:
    """从 app.state 获取 SSEHub 实例"""
    return request.app.state.sse_hub


def get_task_manager(request: Request) -> TaskManager:
    return request.app.state.task_manager


def get_task_service(request: Request) -> TaskService:
    """按请求构造 TaskService（无状态，持有共享组件引用）"""
    return TaskService(request.app.state.task_manager, request.app.state.controller)
