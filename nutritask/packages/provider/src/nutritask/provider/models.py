"""数据模型 -- TokenUsage + ModelCallResult

所有调用方（LiteLLM、Echo）统一返回 ModelCallResult，
汇总生成器从中取出文本内容与计费信息。
"""

from typing import Any

from pydantic import BaseModel, Field


class TokenUsage(BaseModel):
    """Token 使用统计（key 与 LiteLLM usage 对齐）"""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)


class ModelCallResult(BaseModel):
    """一次模型调用的结果"""

    content: str = Field(description="模型输出文本")
    model_alias: str = Field(description="请求时使用的 Proxy model_name")
    model_name: str = Field(default="", description="实际模型名称")
    provider: str = Field(default="", description="实际 provider（openai / anthropic / echo）")
    duration_ms: int = Field(ge=0, description="端到端耗时（毫秒）")
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    cost_usd: float = Field(default=0.0, ge=0.0)
    cost_unavailable: bool = Field(default=False)

    # 降级信息
    is_fallback: bool = Field(default=False)
    fallback_reason: str = Field(default="")

    def generation_meta(self) -> dict[str, Any]:
        """写入汇总的生成元数据（camelCase，与任务 API 一致）"""
        return {
            "model": self.model_name or self.model_alias,
            "provider": self.provider,
            "durationMs": self.duration_ms,
            "totalTokens": self.token_usage.total_tokens,
            "costUsd": None if self.cost_unavailable else self.cost_usd,
            "isFallback": self.is_fallback,
        }
