"""周饮食汇总工作流

auth -> fetch -> validate -> recommendation -> analyze -> health
-> prepare -> generate -> save

每个步骤只读取 task.input 与之前步骤写入 checkpoint 的数据，
并把自己的结果作为 payload 返回，因此可以在任意步骤边界恢复。
"""

from datetime import UTC, date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..config import MAX_SUMMARY_RANGE_DAYS
from ..models.enums import TaskType
from ..pipeline import Step, StepContext, StepResult, WorkflowDefinition
from .ports import NutritionDataSource, SummaryGenerator

STEP_NAMES: tuple[str, ...] = (
    "auth",
    "fetch",
    "validate",
    "recommendation",
    "analyze",
    "health",
    "prepare",
    "generate",
    "save",
)


class WeeklySummaryInput(BaseModel):
    """周汇总启动参数"""

    model_config = ConfigDict(populate_by_name=True)

    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")
    summary_name: str | None = Field(default=None, alias="summaryName")
    summary_type: Literal["week", "custom"] = Field(default="custom", alias="summaryType")
    force_regenerate: bool = Field(default=False, alias="forceRegenerate")

    @model_validator(mode="after")
    def _check_range(self) -> "WeeklySummaryInput":
        if self.start_date > self.end_date:
            raise ValueError("start date must not be after end date")
        days = (self.end_date - self.start_date).days + 1
        if days > MAX_SUMMARY_RANGE_DAYS:
            raise ValueError(f"date range must not exceed {MAX_SUMMARY_RANGE_DAYS} days")
        return self


class WeeklySummarySteps:
    """周汇总各步骤实现"""

    def __init__(
        self,
        data_source: NutritionDataSource,
        generator: SummaryGenerator,
    ) -> None:
        self._data = data_source
        self._generator = generator

    def steps(self) -> list[Step]:
        return [Step(name=name, run=getattr(self, name)) for name in STEP_NAMES]

    # 步骤

    async def auth(self, ctx: StepContext) -> StepResult:
        client = await self._data.get_client(ctx.task.owner_id)
        if client is None:
            return StepResult.failure("client not found or access denied")
        return StepResult.success({"client": client})

    async def fetch(self, ctx: StepContext) -> StepResult:
        start, end = ctx.input["startDate"], ctx.input["endDate"]
        groups = await self._data.list_meal_groups(ctx.task.owner_id, start, end)
        if not groups:
            return StepResult.failure(f"no meal records between {start} and {end}")
        return StepResult.success({"mealGroupIds": [g["id"] for g in groups]})

    async def validate(self, ctx: StepContext) -> StepResult:
        groups = await self._load_groups(ctx)
        empty = [g for g in groups if not g.get("photos") and not _has_text(g)]
        if empty:
            return StepResult.failure(
                f"{len(empty)} meal groups have neither photos nor a text description"
            )
        return StepResult.success({"mealCount": len(groups)})

    async def recommendation(self, ctx: StepContext) -> StepResult:
        rec = await self._data.latest_recommendation(ctx.task.owner_id)
        if rec is None:
            return StepResult.failure(
                "generate a nutrition recommendation before the weekly summary"
            )
        return StepResult.success({"recommendationId": rec["id"], "recommendation": rec})

    async def analyze(self, ctx: StepContext) -> StepResult:
        groups = await self._load_groups(ctx)
        force = bool(ctx.input.get("forceRegenerate"))
        pending = [g for g in groups if force or not g.get("combinedAnalysis")]
        analyzed = await self._analyze_groups(ctx, [g["id"] for g in pending])
        return StepResult.success({"analyzedGroupIds": analyzed})

    async def health(self, ctx: StepContext) -> StepResult:
        analysis = await self._data.latest_health_analysis(ctx.task.owner_id)
        return StepResult.success({"healthAnalysis": analysis})

    async def prepare(self, ctx: StepContext) -> StepResult:
        groups = await self._load_groups(ctx)
        start, end = self._date_range(ctx)
        week_data = build_week_data(start, end, groups, today=datetime.now(UTC).date())
        total_photos = sum(
            (g.get("combinedAnalysis") or {}).get("totalPhotos", 0) for g in groups
        )
        return StepResult.success({"weekData": week_data, "totalPhotos": total_photos})

    async def generate(self, ctx: StepContext) -> StepResult:
        checkpoint = ctx.checkpoint
        try:
            summary = await self._generator.generate(
                checkpoint["client"],
                checkpoint["weekData"],
                checkpoint.get("recommendation"),
                checkpoint.get("healthAnalysis"),
            )
        except Exception as e:
            return StepResult.failure(f"AI generation failed: {e}")
        return StepResult.success({"summary": summary})

    async def save(self, ctx: StepContext) -> StepResult:
        summary_data = self._summary_data(ctx)
        start, end = self._date_range(ctx)
        summary_id = await self._data.save_summary(
            ctx.task.owner_id,
            {
                "startDate": start.isoformat(),
                "endDate": end.isoformat(),
                "summaryType": ctx.input.get("summaryType", "custom"),
                "summaryName": ctx.input.get("summaryName"),
                "mealGroupIds": list(ctx.checkpoint["mealGroupIds"]),
                "recommendationId": ctx.checkpoint.get("recommendationId"),
                "summary": summary_data,
            },
        )
        return StepResult.success({"summaryId": summary_id, "summary": summary_data})

    # 辅助

    async def _load_groups(self, ctx: StepContext) -> list[dict[str, Any]]:
        return await self._data.get_meal_groups(
            ctx.task.owner_id, list(ctx.checkpoint["mealGroupIds"])
        )

    async def _analyze_groups(self, ctx: StepContext, group_ids: list[str]) -> list[str]:
        recommendation = ctx.checkpoint.get("recommendation")
        analyzed: list[str] = []
        for group_id in group_ids:
            await self._data.analyze_meal_group(ctx.task.owner_id, group_id, recommendation)
            analyzed.append(group_id)
        return analyzed

    def _date_range(self, ctx: StepContext) -> tuple[date, date]:
        return (
            date.fromisoformat(ctx.input["startDate"]),
            date.fromisoformat(ctx.input["endDate"]),
        )

    def _summary_data(self, ctx: StepContext) -> dict[str, Any]:
        checkpoint = ctx.checkpoint
        summary = checkpoint["summary"]
        week_data = checkpoint["weekData"]
        return {
            **summary,
            "weekRange": week_data["weekRange"],
            "isPartialWeek": week_data["isPartial"],
            "recordedDays": week_data["recordedDays"],
            "totalDaysExpected": week_data["totalDaysInWeek"],
            "statistics": {
                **summary.get("statistics", {}),
                "totalMeals": len(week_data["mealGroups"]),
                "totalPhotos": checkpoint.get("totalPhotos", 0),
                "recordedDays": week_data["recordedDays"],
                "totalDaysInWeek": week_data["totalDaysInWeek"],
            },
        }


def build_week_data(
    start: date,
    end: date,
    groups: list[dict[str, Any]],
    today: date,
) -> dict[str, Any]:
    """汇总生成所需的周数据；范围未结束时按已过天数计算"""
    total_days = (end - start).days + 1
    is_complete = today > end
    days_so_far = total_days if is_complete else min((today - start).days + 1, total_days)
    return {
        "weekRange": f"{start.isoformat()} ~ {end.isoformat()}",
        "isPartial": not is_complete,
        "recordedDays": len({g["date"] for g in groups}),
        "totalDaysInWeek": total_days if is_complete else max(days_so_far, 0),
        "today": today.isoformat(),
        "mealGroups": [
            {
                "date": g["date"],
                "mealType": g.get("mealType") or "uncategorized",
                "totalScore": g.get("totalScore") or 0,
                "combinedAnalysis": g.get("combinedAnalysis"),
            }
            for g in groups
        ],
    }


def _has_text(group: dict[str, Any]) -> bool:
    text = group.get("textDescription")
    return bool(text and text.strip())


def build_weekly_summary_workflow(
    data_source: NutritionDataSource,
    generator: SummaryGenerator,
) -> WorkflowDefinition:
    return WorkflowDefinition(
        TaskType.WEEKLY_SUMMARY,
        WeeklySummarySteps(data_source, generator).steps(),
        WeeklySummaryInput,
    )
