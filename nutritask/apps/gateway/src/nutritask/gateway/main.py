"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭、汇总生成器与编排组件装配、
遗留 RUNNING / PENDING 任务恢复、路由注册。

业务数据源（客户档案、食谱组、汇总存储）由部署方提供，二选一：
- 嵌入时调用 create_app(data_source=...)
- 设置 NUTRITASK_DATA_SOURCE="package.module:factory"，启动时无参调用 factory
都未配置时退回空的 InMemoryNutritionDataSource，只适合本地演示，
此时任务都会在 auth 步骤失败。
"""

import importlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from nutritask.core.config import get_data_source_spec, get_db_path, recover_on_startup
from nutritask.core.controller import ExecutionController
from nutritask.core.manager import TaskManager
from nutritask.core.store import create_store_group
from nutritask.core.workflows import (
    InMemoryNutritionDataSource,
    NutritionDataSource,
    build_default_registry,
)
from nutritask.provider import (
    EchoMessageAdapter,
    FallbackManager,
    LiteLLMClient,
    LLMSummaryGenerator,
    load_provider_config,
)
from starlette.responses import JSONResponse

from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import control, health, stream, tasks
from .services.sse_hub import SSEHub

log = structlog.get_logger()


def _build_summary_generator(app: FastAPI) -> LLMSummaryGenerator:
    """按 NUTRITASK_LLM_MODE 装配汇总生成器

    litellm 模式：LiteLLMClient 为主、Echo 为降级后备；
    echo 模式：只用 EchoMessageAdapter，不访问 Proxy。
    """
    provider_config = load_provider_config()
    app.state.provider_config = provider_config
    echo_adapter = EchoMessageAdapter()

    if provider_config.llm_mode == "litellm":
        litellm_client = LiteLLMClient(
            proxy_base_url=provider_config.proxy_base_url,
            proxy_api_key=provider_config.proxy_api_key.get_secret_value(),
            timeout_s=provider_config.timeout_s,
        )
        fallback_manager = FallbackManager(primary=litellm_client, fallback=echo_adapter)
        # 保存 litellm_client 引用供健康检查使用
        app.state.litellm_client = litellm_client
        log.info(
            "summary_generator_initialized",
            mode="litellm",
            proxy_url=provider_config.proxy_base_url,
            model=provider_config.model_alias,
        )
    else:
        fallback_manager = FallbackManager(primary=echo_adapter, fallback=None)
        app.state.litellm_client = None
        log.info("summary_generator_initialized", mode="echo")

    return LLMSummaryGenerator(
        fallback_manager,
        model_alias=provider_config.model_alias,
        temperature=provider_config.temperature,
    )


def _load_data_source(app: FastAPI) -> NutritionDataSource:
    """解析业务数据源：app.state 注入 > NUTRITASK_DATA_SOURCE > 空内存实现

    Raises:
        ValueError: NUTRITASK_DATA_SOURCE 不是 "package.module:factory" 格式
    """
    source = getattr(app.state, "nutrition_data_source", None)
    if source is not None:
        return source

    spec = get_data_source_spec()
    if spec:
        module_name, _, attr = spec.partition(":")
        if not module_name or not attr:
            raise ValueError(
                f"NUTRITASK_DATA_SOURCE must be 'package.module:factory', got {spec!r}"
            )
        factory = getattr(importlib.import_module(module_name), attr)
        source = factory()
        log.info("nutrition_data_source_loaded", source=spec)
    else:
        source = InMemoryNutritionDataSource()
        log.warning(
            "nutrition_data_source_not_configured",
            hint="set NUTRITASK_DATA_SOURCE or pass create_app(data_source=...)",
        )

    app.state.nutrition_data_source = source
    return source


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时装配组件并恢复任务，关闭时停止循环并关闭连接"""
    # 启动：初始化 Store
    store_group = await create_store_group(get_db_path())
    app.state.store_group = store_group

    # 初始化汇总生成器（provider 配置）
    generator = _build_summary_generator(app)

    # 初始化 SSEHub + 编排组件
    sse_hub = SSEHub()
    registry = getattr(app.state, "workflow_registry", None) or build_default_registry(
        data_source=_load_data_source(app), generator=generator
    )
    manager = TaskManager(store_group, registry, publisher=sse_hub)
    controller = ExecutionController(manager)
    app.state.sse_hub = sse_hub
    app.state.task_manager = manager
    app.state.controller = controller

    if recover_on_startup():
        await controller.recover_interrupted()
    log.info("orchestrator_started", workflows=[t.value for t in registry.task_types])

    yield

    # 关闭：停止运行循环（持久化状态保持 RUNNING，下次启动恢复）
    await controller.shutdown()
    if hasattr(app.state, "store_group") and app.state.store_group:
        await app.state.store_group.conn.close()


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """请求体校验失败统一为 400 {success: false, error}"""
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(p) for p in e.get('loc', ()) if p != 'body')}: {e.get('msg', '')}"
        for e in errors
    )
    return JSONResponse(status_code=400, content={"success": False, "error": message})


def create_app(data_source: NutritionDataSource | None = None) -> FastAPI:
    """创建 FastAPI 应用实例

    Args:
        data_source: 业务数据源；为 None 时在 lifespan 中按 NUTRITASK_DATA_SOURCE 解析
    """
    app = FastAPI(
        title="NutriTask Gateway",
        version="0.1.0",
        description="长时 AI 任务编排 API",
        lifespan=lifespan,
    )
    if data_source is not None:
        app.state.nutrition_data_source = data_source

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    # 初始化日志
    setup_logging()
    setup_logfire(app)

    app.add_exception_handler(RequestValidationError, _request_validation_handler)

    # 注册路由
    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(control.router, tags=["control"])
    app.include_router(stream.router, tags=["stream"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
