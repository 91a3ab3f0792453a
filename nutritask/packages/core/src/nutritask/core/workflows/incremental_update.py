"""增量更新饮食汇总工作流

沿用周汇总的步骤序列，区别：
- auth 额外加载被更新的汇总，日期范围取自该汇总
- fetch 使用调用方给出的 skipGroupIds + analyzeGroupIds
- analyze 只重新分析 analyzeGroupIds（有变化的食谱组）
- save 覆盖原汇总而不是新建
"""

from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.enums import TaskType
from ..pipeline import StepContext, StepResult, WorkflowDefinition
from .ports import NutritionDataSource, SummaryGenerator
from .weekly_summary import WeeklySummarySteps


class IncrementalUpdateInput(BaseModel):
    """增量更新启动参数"""

    model_config = ConfigDict(populate_by_name=True)

    summary_id: str = Field(alias="summaryId")
    skip_group_ids: list[str] = Field(default_factory=list, alias="skipGroupIds")
    analyze_group_ids: list[str] = Field(default_factory=list, alias="analyzeGroupIds")

    @field_validator("summary_id")
    @classmethod
    def _require_summary_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("summaryId is required")
        return value


class IncrementalUpdateSteps(WeeklySummarySteps):
    """增量更新各步骤实现"""

    async def auth(self, ctx: StepContext) -> StepResult:
        client = await self._data.get_client(ctx.task.owner_id)
        if client is None:
            return StepResult.failure("client not found or access denied")
        summary = await self._data.get_summary(ctx.task.owner_id, ctx.input["summaryId"])
        if summary is None:
            return StepResult.failure("summary not found")
        return StepResult.success(
            {
                "client": client,
                "summaryRange": {
                    "startDate": summary["startDate"],
                    "endDate": summary["endDate"],
                },
            }
        )

    async def fetch(self, ctx: StepContext) -> StepResult:
        ids = list(dict.fromkeys([*ctx.input["skipGroupIds"], *ctx.input["analyzeGroupIds"]]))
        if not ids:
            return StepResult.failure("summary has no meal groups to update")
        groups = await self._data.get_meal_groups(ctx.task.owner_id, ids)
        if not groups:
            return StepResult.failure("none of the meal groups exist anymore")
        groups.sort(key=lambda g: g["date"])
        return StepResult.success({"mealGroupIds": [g["id"] for g in groups]})

    async def analyze(self, ctx: StepContext) -> StepResult:
        existing = set(ctx.checkpoint["mealGroupIds"])
        targets = [gid for gid in ctx.input["analyzeGroupIds"] if gid in existing]
        analyzed = await self._analyze_groups(ctx, targets)
        return StepResult.success(
            {
                "analyzedGroupIds": analyzed,
                "skippedGroupIds": [
                    gid for gid in ctx.input["skipGroupIds"] if gid in existing
                ],
            }
        )

    async def save(self, ctx: StepContext) -> StepResult:
        summary_data = self._summary_data(ctx)
        summary_id = ctx.input["summaryId"]
        await self._data.update_summary(
            ctx.task.owner_id,
            summary_id,
            {
                "mealGroupIds": list(ctx.checkpoint["mealGroupIds"]),
                "recommendationId": ctx.checkpoint.get("recommendationId"),
                "summary": summary_data,
            },
        )
        return StepResult.success({"summaryId": summary_id, "summary": summary_data})

    def _date_range(self, ctx: StepContext) -> tuple[date, date]:
        summary_range: dict[str, Any] = ctx.checkpoint["summaryRange"]
        return (
            date.fromisoformat(summary_range["startDate"]),
            date.fromisoformat(summary_range["endDate"]),
        )


def build_incremental_update_workflow(
    data_source: NutritionDataSource,
    generator: SummaryGenerator,
) -> WorkflowDefinition:
    return WorkflowDefinition(
        TaskType.INCREMENTAL_SUMMARY_UPDATE,
        IncrementalUpdateSteps(data_source, generator).steps(),
        IncrementalUpdateInput,
    )
