"""LiteLLMClient -- LiteLLM Proxy 调用封装

通过 litellm.acompletion() 调用 Proxy，并从响应中提取 token 与成本。
"""

import time

import httpx
import structlog
from litellm import acompletion, completion_cost

from .exceptions import ProviderError, ProxyUnreachableError
from .models import ModelCallResult, TokenUsage

log = structlog.get_logger()

# 健康检查超时（秒）
HEALTH_CHECK_TIMEOUT_S = 5

_CONNECTION_ERROR_TYPES = (
    ConnectionError,
    TimeoutError,
    httpx.ConnectError,
    httpx.TimeoutException,
)


def _is_connection_error(e: Exception) -> bool:
    """判断异常是否为连接类错误（Proxy 不可达）"""
    if isinstance(e, _CONNECTION_ERROR_TYPES):
        return True
    # LiteLLM 包装后的连接错误
    return type(e).__name__ in ("APIConnectionError", "APITimeoutError", "Timeout")


def _response_cost(response) -> tuple[float, bool]:
    """计算 USD 成本：completion_cost() 优先，其次 _hidden_params，均失败标记不可用"""
    try:
        cost = completion_cost(completion_response=response)
        if cost is not None and cost >= 0:
            return float(cost), False
    except Exception as e:
        log.debug("completion_cost_failed", error=str(e))

    hidden = getattr(response, "_hidden_params", None)
    if isinstance(hidden, dict):
        cost = hidden.get("response_cost")
        if isinstance(cost, (int, float)) and cost >= 0:
            return float(cost), False

    log.warning("cost_unavailable")
    return 0.0, True


def _response_usage(response) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
        total_tokens=getattr(usage, "total_tokens", 0) or 0,
    )


def _response_provider(response) -> str:
    hidden = getattr(response, "_hidden_params", None)
    if isinstance(hidden, dict):
        return hidden.get("custom_llm_provider", "") or ""
    return ""


class LiteLLMClient:
    """LiteLLM Proxy 客户端"""

    def __init__(
        self,
        proxy_base_url: str = "http://localhost:4000",
        proxy_api_key: str = "",
        timeout_s: int = 60,
    ) -> None:
        """
        Args:
            proxy_base_url: Proxy 基础 URL
            proxy_api_key: Proxy 访问密钥（LLM provider 的 key 只存在于 Proxy 侧）
            timeout_s: 请求超时（秒）
        """
        self._proxy_base_url = proxy_base_url.rstrip("/")
        self._proxy_api_key = proxy_api_key
        self._timeout_s = timeout_s

    @property
    def proxy_base_url(self) -> str:
        return self._proxy_base_url

    async def complete(
        self,
        messages: list[dict[str, str]],
        model_alias: str = "summarizer",
        temperature: float = 0.4,
        max_tokens: int | None = None,
        **kwargs,
    ) -> ModelCallResult:
        """发送 chat completion 请求

        Raises:
            ProxyUnreachableError: Proxy 连接失败或超时
            ProviderError: Proxy 返回业务错误（模型不可用、配额耗尽等）
        """
        start_time = time.monotonic()
        call_kwargs = {
            "model": model_alias,
            "messages": messages,
            "api_base": self._proxy_base_url,
            "api_key": self._proxy_api_key or "no-key",
            "temperature": temperature,
            "timeout": self._timeout_s,
            **kwargs,
        }
        if max_tokens is not None:
            call_kwargs["max_tokens"] = max_tokens

        log.debug("litellm_call_start", model_alias=model_alias, message_count=len(messages))
        try:
            response = await acompletion(**call_kwargs)
        except Exception as e:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            log.error(
                "litellm_call_failed",
                model_alias=model_alias,
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=duration_ms,
            )
            if _is_connection_error(e):
                raise ProxyUnreachableError(self._proxy_base_url, e) from e
            raise ProviderError(f"LLM 调用失败: {e}") from e

        duration_ms = int((time.monotonic() - start_time) * 1000)
        cost_usd, cost_unavailable = _response_cost(response)
        result = ModelCallResult(
            content=response.choices[0].message.content or "",
            model_alias=model_alias,
            model_name=getattr(response, "model", "") or "",
            provider=_response_provider(response),
            duration_ms=duration_ms,
            token_usage=_response_usage(response),
            cost_usd=cost_usd,
            cost_unavailable=cost_unavailable,
        )
        log.info(
            "litellm_call_completed",
            model_alias=model_alias,
            model_name=result.model_name,
            duration_ms=duration_ms,
            cost_usd=cost_usd,
        )
        return result

    async def health_check(self) -> bool:
        """GET {proxy}/health/liveliness，不抛异常"""
        url = f"{self._proxy_base_url}/health/liveliness"
        try:
            async with httpx.AsyncClient() as http_client:
                resp = await http_client.get(url, timeout=HEALTH_CHECK_TIMEOUT_S)
                return resp.status_code == 200
        except httpx.HTTPError as e:
            log.debug("health_check_failed", url=url, error=str(e))
            return False
