"""内置工作流与默认协作方"""

from ..pipeline import WorkflowRegistry
from .incremental_update import IncrementalUpdateInput, build_incremental_update_workflow
from .memory import EchoSummaryGenerator, InMemoryNutritionDataSource
from .ports import NutritionDataSource, SummaryGenerator
from .weekly_summary import STEP_NAMES, WeeklySummaryInput, build_weekly_summary_workflow


def build_default_registry(
    data_source: NutritionDataSource | None = None,
    generator: SummaryGenerator | None = None,
) -> WorkflowRegistry:
    """注册 weekly-summary 与 incremental-summary-update 两种工作流"""
    data_source = data_source or InMemoryNutritionDataSource()
    generator = generator or EchoSummaryGenerator()
    return WorkflowRegistry(
        [
            build_weekly_summary_workflow(data_source, generator),
            build_incremental_update_workflow(data_source, generator),
        ]
    )


__all__ = [
    "STEP_NAMES",
    "WeeklySummaryInput",
    "IncrementalUpdateInput",
    "NutritionDataSource",
    "SummaryGenerator",
    "InMemoryNutritionDataSource",
    "EchoSummaryGenerator",
    "build_default_registry",
    "build_weekly_summary_workflow",
    "build_incremental_update_workflow",
]
