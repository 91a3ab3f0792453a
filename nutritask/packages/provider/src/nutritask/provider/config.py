"""ProviderConfig -- 汇总生成模型配置

从环境变量加载，不硬编码 provider / 模型名。
"""

import os
from typing import Literal

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()


class ProviderConfig(BaseModel):
    """Provider 配置

    环境变量:
        NUTRITASK_LLM_MODE: 运行模式（echo / litellm，默认 echo）
        NUTRITASK_LLM_MODEL: Proxy 上的 model_name（默认 summarizer）
        NUTRITASK_LLM_TIMEOUT_S: 调用超时（秒，默认 60）
        NUTRITASK_LLM_TEMPERATURE: 采样温度（默认 0.4）
        LITELLM_PROXY_URL: Proxy 地址（默认 http://localhost:4000）
        LITELLM_PROXY_KEY: Proxy 访问密钥
    """

    llm_mode: Literal["litellm", "echo"] = Field(default="echo")
    model_alias: str = Field(default="summarizer", min_length=1)
    proxy_base_url: str = Field(default="http://localhost:4000")
    proxy_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Proxy 访问密钥（不是 LLM provider API key）",
    )
    timeout_s: int = Field(default=60, ge=1)
    temperature: float = Field(default=0.4, ge=0.0, le=2.0)


def _parse_env(name: str, cast, default):
    """读取数值型环境变量，非法值记录 warning 并使用默认值"""
    val = os.environ.get(name)
    if not val:
        return default
    try:
        return cast(val)
    except ValueError:
        log.warning("invalid_provider_config", env_var=name, value=val, fallback=default)
        return default


def load_provider_config() -> ProviderConfig:
    """从环境变量加载 Provider 配置"""
    kwargs: dict = {
        "timeout_s": _parse_env("NUTRITASK_LLM_TIMEOUT_S", int, 60),
        "temperature": _parse_env("NUTRITASK_LLM_TEMPERATURE", float, 0.4),
    }

    if val := os.environ.get("NUTRITASK_LLM_MODE"):
        kwargs["llm_mode"] = val.lower()

    if val := os.environ.get("NUTRITASK_LLM_MODEL"):
        kwargs["model_alias"] = val

    if val := os.environ.get("LITELLM_PROXY_URL"):
        kwargs["proxy_base_url"] = val

    if val := os.environ.get("LITELLM_PROXY_KEY"):
        kwargs["proxy_api_key"] = SecretStr(val)

    return ProviderConfig(**kwargs)
