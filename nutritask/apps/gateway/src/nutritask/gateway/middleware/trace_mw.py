"""TraceMiddleware -- 任务操作日志关联

从 /api/tasks/{task_id}[/...] 路径中提取 task_id 并绑定到 structlog
contextvars，使同一任务的请求日志可以按 task_id / trace_id 检索。
"""

import re

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ULID: 26 位 Crockford Base32
_TASK_PATH = re.compile(r"^/api/tasks/([0-9A-HJKMNP-TV-Z]{26})(?:/|$)")


def extract_task_id(path: str) -> str | None:
    """从请求路径中提取 task_id；非任务路由（如 /api/tasks/start）返回 None"""
    match = _TASK_PATH.match(path)
    return match.group(1) if match else None


class TraceMiddleware(BaseHTTPMiddleware):
    """任务级追踪中间件 -- 为任务操作绑定 task_id / trace_id"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        task_id = extract_task_id(request.url.path)
        if task_id:
            structlog.contextvars.bind_contextvars(
                task_id=task_id,
                trace_id=f"trace-{task_id}",
            )

        return await call_next(request)
