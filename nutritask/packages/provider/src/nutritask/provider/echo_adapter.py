"""EchoMessageAdapter -- 不调用模型的回声实现

与 LiteLLMClient 同接口（complete(messages) -> ModelCallResult）。
输出为汇总 JSON：overview 回显用户消息里的客户与周范围，
便于在没有 Proxy 的环境下跑通完整流程。FallbackManager 的降级后备也使用它。
"""

import asyncio
import json
import time
from collections import Counter

from .models import ModelCallResult, TokenUsage


class EchoMessageAdapter:
    def __init__(self, delay: float = 0.01) -> None:
        self._delay = delay

    async def complete(
        self,
        messages: list[dict[str, str]],
        model_alias: str = "echo",
        **kwargs,
    ) -> ModelCallResult:
        start_time = time.monotonic()
        user_content = self._extract_last_user_content(messages)

        # 模拟少量延迟
        await asyncio.sleep(self._delay)

        response_text = json.dumps(self._echo_summary(user_content), ensure_ascii=False)
        prompt_tokens = len(user_content.split())
        completion_tokens = len(response_text.split())

        return ModelCallResult(
            content=response_text,
            model_alias=model_alias,
            model_name="echo",
            provider="echo",
            duration_ms=int((time.monotonic() - start_time) * 1000),
            token_usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
        )

    @staticmethod
    def _echo_summary(user_content: str) -> dict:
        try:
            payload = json.loads(user_content)
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            return {"overview": f"Echo: {user_content}", "highlights": [], "suggestions": []}

        client = payload.get("client") or {}
        week = payload.get("weekData") or {}
        meals_per_day = Counter(g.get("date") for g in week.get("mealGroups", []))
        highlights = [f"{day}: {count} meals" for day, count in sorted(meals_per_day.items())]
        return {
            "overview": f"Echo: {client.get('name', '')} {week.get('weekRange', '')}".strip(),
            "highlights": highlights,
            "suggestions": [],
        }

    @staticmethod
    def _extract_last_user_content(messages: list[dict[str, str]]) -> str:
        """最后一条 user 消息；没有 user 消息时取最后一条，空列表返回 "(empty)" """
        for msg in reversed(messages):
            if msg.get("role") == "user":
                return msg.get("content", "")
        if messages:
            return messages[-1].get("content", "(empty)")
        return "(empty)"
