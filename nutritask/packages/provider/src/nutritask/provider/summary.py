"""LLMSummaryGenerator -- 通过模型生成周饮食汇总

实现 core 工作流的 SummaryGenerator 接口：组装 prompt，
经 FallbackManager 调用模型，解析 JSON 输出并补充确定性统计。
"""

import json
import re
from typing import Any

import structlog

from .exceptions import SummaryFormatError
from .fallback import FallbackManager

log = structlog.get_logger()

SYSTEM_PROMPT = """你是一名注册营养师，负责为客户撰写周饮食汇总。
根据用户消息中的 JSON 数据（客户档案、本周食谱组、营养干预方案、体检分析）输出一个 JSON 对象，
不要输出 JSON 以外的任何内容。字段：
- overview: 本周整体饮食评价（3-5 句）
- complianceEvaluation: {"overallRating": "优秀|良好|一般|需改善", "comments": "..."}
- highlights: 做得好的地方（字符串数组）
- issues: 需要改善的地方（字符串数组）
- improvementRecommendations: 下周具体建议（字符串数组）
weekData.isPartial 为 true 时说明本周尚未结束，只评价已记录的天数。"""

_CLIENT_FIELDS = ("name", "gender", "age", "healthConcerns", "userRequirements", "preferences")
_FENCE_RE = re.compile(r"```(?:json)?\s*")


def build_summary_messages(
    client: dict[str, Any],
    week_data: dict[str, Any],
    recommendation: dict[str, Any] | None,
    health_analysis: dict[str, Any] | None,
) -> list[dict[str, str]]:
    """组装 chat messages；食谱组只保留汇总需要的字段"""
    payload = {
        "client": {k: client[k] for k in _CLIENT_FIELDS if client.get(k) is not None},
        "weekData": {
            **{k: v for k, v in week_data.items() if k != "mealGroups"},
            "mealGroups": [
                {k: v for k, v in group.items() if v is not None}
                for group in week_data.get("mealGroups", [])
            ],
        },
        "recommendation": recommendation,
        "healthAnalysis": health_analysis,
    }
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": json.dumps(payload, ensure_ascii=False, default=str)},
    ]


def parse_summary_content(text: str) -> dict[str, Any]:
    """解析模型输出，去掉 markdown 代码块标记

    Raises:
        SummaryFormatError: 不是合法 JSON 或顶层不是对象
    """
    cleaned = _FENCE_RE.sub("", text).strip()
    if not cleaned:
        raise SummaryFormatError("empty response")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise SummaryFormatError(f"{e.msg} at position {e.pos}") from e
    if not isinstance(data, dict):
        raise SummaryFormatError(f"expected a JSON object, got {type(data).__name__}")
    return data


def meal_statistics(week_data: dict[str, Any]) -> dict[str, Any]:
    scores = [g.get("totalScore") or 0 for g in week_data.get("mealGroups", [])]
    return {
        "averageScore": round(sum(scores) / len(scores), 1) if scores else 0,
        "scoredMeals": len(scores),
    }


class LLMSummaryGenerator:
    """基于 LiteLLM（或 Echo）的汇总生成器"""

    def __init__(
        self,
        caller: FallbackManager,
        model_alias: str = "summarizer",
        temperature: float = 0.4,
    ) -> None:
        self._caller = caller
        self._model_alias = model_alias
        self._temperature = temperature

    async def generate(
        self,
        client: dict[str, Any],
        week_data: dict[str, Any],
        recommendation: dict[str, Any] | None,
        health_analysis: dict[str, Any] | None,
    ) -> dict[str, Any]:
        messages = build_summary_messages(client, week_data, recommendation, health_analysis)
        result = await self._caller.call_with_fallback(
            messages,
            model_alias=self._model_alias,
            temperature=self._temperature,
        )
        summary = parse_summary_content(result.content)

        statistics = summary.get("statistics")
        summary["statistics"] = {
            **(statistics if isinstance(statistics, dict) else {}),
            **meal_statistics(week_data),
        }
        summary["usedHealthAnalysis"] = health_analysis is not None
        summary["generation"] = result.generation_meta()

        log.info(
            "summary_generated",
            model=result.model_name,
            is_fallback=result.is_fallback,
            meal_groups=len(week_data.get("mealGroups", [])),
        )
        return summary
