"""进程内默认协作方

InMemoryNutritionDataSource：以 dict 保存业务数据，供本地运行与测试使用。
EchoSummaryGenerator：不调用模型，按输入回显统计结果。
"""

import asyncio
import copy
from datetime import UTC, datetime
from typing import Any

from ulid import ULID


class InMemoryNutritionDataSource:
    """NutritionDataSource 的内存实现"""

    def __init__(self) -> None:
        self.clients: dict[str, dict[str, Any]] = {}
        self.meal_groups: dict[str, dict[str, Any]] = {}
        self.recommendations: dict[str, dict[str, Any]] = {}
        self.health_analyses: dict[str, dict[str, Any]] = {}
        self.summaries: dict[str, dict[str, Any]] = {}
        self.analyze_calls: list[str] = []

    # 数据准备

    def add_client(self, client_id: str, **profile: Any) -> dict[str, Any]:
        client = {"id": client_id, "name": "", "gender": "FEMALE", **profile}
        self.clients[client_id] = client
        return client

    def add_meal_group(
        self,
        client_id: str,
        date: str,
        *,
        group_id: str | None = None,
        name: str = "",
        meal_type: str | None = None,
        photos: list[dict[str, Any]] | None = None,
        text_description: str | None = None,
        combined_analysis: dict[str, Any] | None = None,
        total_score: int | None = None,
    ) -> dict[str, Any]:
        group = {
            "id": group_id or str(ULID()),
            "clientId": client_id,
            "date": date,
            "name": name or date,
            "mealType": meal_type,
            "photos": photos or [],
            "textDescription": text_description,
            "combinedAnalysis": combined_analysis,
            "totalScore": total_score,
            "updatedAt": datetime.now(UTC).isoformat(),
        }
        self.meal_groups[group["id"]] = group
        return group

    def set_recommendation(self, client_id: str, content: dict[str, Any]) -> dict[str, Any]:
        rec = {"id": str(ULID()), "clientId": client_id, "content": content}
        self.recommendations[client_id] = rec
        return rec

    def set_health_analysis(self, client_id: str, analysis: dict[str, Any]) -> None:
        self.health_analyses[client_id] = analysis

    # NutritionDataSource

    async def get_client(self, client_id: str) -> dict[str, Any] | None:
        client = self.clients.get(client_id)
        return copy.deepcopy(client) if client else None

    async def list_meal_groups(
        self, client_id: str, start_date: str, end_date: str
    ) -> list[dict[str, Any]]:
        groups = [
            g
            for g in self.meal_groups.values()
            if g["clientId"] == client_id and start_date <= g["date"] <= end_date
        ]
        return copy.deepcopy(sorted(groups, key=lambda g: g["date"]))

    async def get_meal_groups(
        self, client_id: str, group_ids: list[str]
    ) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(self.meal_groups[gid])
            for gid in group_ids
            if gid in self.meal_groups and self.meal_groups[gid]["clientId"] == client_id
        ]

    async def latest_recommendation(self, client_id: str) -> dict[str, Any] | None:
        rec = self.recommendations.get(client_id)
        return copy.deepcopy(rec) if rec else None

    async def latest_health_analysis(self, client_id: str) -> dict[str, Any] | None:
        analysis = self.health_analyses.get(client_id)
        return copy.deepcopy(analysis) if analysis else None

    async def analyze_meal_group(
        self,
        client_id: str,
        group_id: str,
        recommendation: dict[str, Any] | None,
    ) -> dict[str, Any]:
        group = self.meal_groups[group_id]
        self.analyze_calls.append(group_id)
        analysis = {
            "totalPhotos": len(group["photos"]),
            "hasText": bool(group["textDescription"]),
            "basedOnRecommendation": recommendation is not None,
        }
        group["combinedAnalysis"] = analysis
        group["totalScore"] = group["totalScore"] or 0
        group["updatedAt"] = datetime.now(UTC).isoformat()
        return copy.deepcopy(analysis)

    async def get_summary(self, client_id: str, summary_id: str) -> dict[str, Any] | None:
        summary = self.summaries.get(summary_id)
        if summary is None or summary["clientId"] != client_id:
            return None
        return copy.deepcopy(summary)

    async def save_summary(self, client_id: str, summary: dict[str, Any]) -> str:
        for sid, existing in list(self.summaries.items()):
            if (
                existing["clientId"] == client_id
                and existing.get("startDate") == summary.get("startDate")
                and existing.get("endDate") == summary.get("endDate")
            ):
                del self.summaries[sid]
        summary_id = str(ULID())
        self.summaries[summary_id] = {
            **copy.deepcopy(summary),
            "id": summary_id,
            "clientId": client_id,
            "updatedAt": datetime.now(UTC).isoformat(),
        }
        return summary_id

    async def update_summary(
        self, client_id: str, summary_id: str, summary: dict[str, Any]
    ) -> None:
        existing = self.summaries.get(summary_id)
        if existing is None or existing["clientId"] != client_id:
            raise KeyError(f"summary not found: {summary_id}")
        existing.update(copy.deepcopy(summary))
        existing["updatedAt"] = datetime.now(UTC).isoformat()


class EchoSummaryGenerator:
    """回显模式的汇总生成器"""

    def __init__(self, delay: float = 0.01) -> None:
        self._delay = delay

    async def generate(
        self,
        client: dict[str, Any],
        week_data: dict[str, Any],
        recommendation: dict[str, Any] | None,
        health_analysis: dict[str, Any] | None,
    ) -> dict[str, Any]:
        # 模拟少量延迟
        await asyncio.sleep(self._delay)
        meal_groups = week_data.get("mealGroups", [])
        scores = [g.get("totalScore") or 0 for g in meal_groups]
        return {
            "overview": f"Echo: {client.get('name', '')} {week_data.get('weekRange', '')}",
            "statistics": {
                "averageScore": round(sum(scores) / len(scores), 1) if scores else 0,
                "scoredMeals": len(scores),
            },
            "usedHealthAnalysis": health_analysis is not None,
        }
