"""FallbackManager -- 降级管理器

每次调用先尝试 primary，失败再切换到 fallback，不维护降级状态。
"""

import structlog

from .exceptions import ProviderError
from .models import ModelCallResult

log = structlog.get_logger()


class FallbackManager:
    """降级链: LiteLLMClient -> EchoMessageAdapter

    Proxy 内部的 model fallback 对本组件透明。
    """

    def __init__(self, primary, fallback=None) -> None:
        self._primary = primary
        self._fallback = fallback

    @property
    def primary(self):
        return self._primary

    async def call_with_fallback(
        self,
        messages: list[dict[str, str]],
        model_alias: str = "summarizer",
        **kwargs,
    ) -> ModelCallResult:
        """带降级的调用

        Returns:
            primary 成功时 is_fallback=False；
            fallback 成功时 is_fallback=True 且带 fallback_reason

        Raises:
            ProviderError: primary 失败且没有 fallback，或两者均失败
        """
        try:
            return await self._primary.complete(
                messages=messages,
                model_alias=model_alias,
                **kwargs,
            )
        except Exception as e:
            primary_error = e
            log.warning(
                "primary_failed_attempting_fallback",
                error=str(e),
                model_alias=model_alias,
            )

        if self._fallback is None:
            raise ProviderError(str(primary_error), recoverable=False) from primary_error

        try:
            result = await self._fallback.complete(messages=messages, model_alias=model_alias)
        except Exception as fallback_error:
            log.error(
                "both_primary_and_fallback_failed",
                primary_error=str(primary_error),
                fallback_error=str(fallback_error),
            )
            raise ProviderError(
                f"primary: {primary_error}; fallback: {fallback_error}",
                recoverable=False,
            ) from fallback_error

        log.info("fallback_activated", fallback_reason=str(primary_error), model_alias=model_alias)
        return result.model_copy(
            update={"is_fallback": True, "fallback_reason": str(primary_error)}
        )
