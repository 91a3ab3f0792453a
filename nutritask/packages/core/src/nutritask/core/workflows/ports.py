"""工作流依赖的外部协作方接口

客户档案、食谱组、营养方案、体检报告、汇总存储都在编排器之外；
步骤只通过以下 Protocol 访问它们。记录以 JSON 兼容的 dict 传递，
以便直接写入任务 checkpoint。
"""

from typing import Any, Protocol


class NutritionDataSource(Protocol):
    """营养业务数据访问接口"""

    async def get_client(self, client_id: str) -> dict[str, Any] | None:
        """客户档案（name / gender / age / healthConcerns ...）"""
        ...

    async def list_meal_groups(
        self, client_id: str, start_date: str, end_date: str
    ) -> list[dict[str, Any]]:
        """日期范围内的食谱组，按日期升序"""
        ...

    async def get_meal_groups(
        self, client_id: str, group_ids: list[str]
    ) -> list[dict[str, Any]]:
        """按 ID 取食谱组（保持传入顺序，忽略不存在的 ID）"""
        ...

    async def latest_recommendation(self, client_id: str) -> dict[str, Any] | None:
        """最新的综合营养干预方案"""
        ...

    async def latest_health_analysis(self, client_id: str) -> dict[str, Any] | None:
        """最新体检报告的分析结果"""
        ...

    async def analyze_meal_group(
        self,
        client_id: str,
        group_id: str,
        recommendation: dict[str, Any] | None,
    ) -> dict[str, Any]:
        """分析食谱组并保存 combinedAnalysis，返回分析结果"""
        ...

    async def get_summary(self, client_id: str, summary_id: str) -> dict[str, Any] | None:
        ...

    async def save_summary(self, client_id: str, summary: dict[str, Any]) -> str:
        """保存汇总（同一客户同一日期范围的旧汇总被替换），返回汇总 ID"""
        ...

    async def update_summary(
        self, client_id: str, summary_id: str, summary: dict[str, Any]
    ) -> None:
        ...


class SummaryGenerator(Protocol):
    """AI 周汇总生成接口"""

    async def generate(
        self,
        client: dict[str, Any],
        week_data: dict[str, Any],
        recommendation: dict[str, Any] | None,
        health_analysis: dict[str, Any] | None,
    ) -> dict[str, Any]:
        """生成汇总内容（至少包含 statistics 字典）"""
        ...
