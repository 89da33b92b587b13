"""
Pattern Evaluation Service

Evaluates every open pattern goal of a local for the week containing a
reference date. Resolves the group, taxonomies, patterns and goals of the
local, computes the week's totals over all patterns, then builds one report
per goal concurrently.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

import structlog

from consumption_patterns.config import PatternSettings, get_settings
from consumption_patterns.exceptions import LookupNotFoundError, NoReportDataError
from consumption_patterns.interfaces import (
    AggregateQuery,
    ChartRenderer,
    GoalStore,
    GroupDirectory,
    LocalDirectory,
    LocalInfo,
    PatternStore,
    SalesAggregationService,
    TaxonomyDirectory,
)
from consumption_patterns.scoring.builder import EvaluationContext, PatternReportBuilder, week_bounds
from consumption_patterns.scoring.report import PatternReport, PatternsGeneralInfo
from consumption_patterns.scoring.schemas import Goal, Pattern

logger = structlog.get_logger(__name__)

TREND_CHART_TYPE = "line"


@dataclass
class LocalEvaluation:
    """Reports of one local for one week, with the locale used to render them"""
    local_id: str
    local_name: str
    locale: Optional[str]
    begin_date: date
    end_date: date
    reports: List[PatternReport] = field(default_factory=list)
    charts: List[Any] = field(default_factory=list)


class PatternEvaluationService:
    """
    Batch evaluation of the pattern goals of a local.

    Example:
        service = PatternEvaluationService(
            aggregation, taxonomies, locals_directory, groups, goals, patterns
        )
        evaluation = await service.evaluate_local("local-1", date(2024, 3, 6))
    """

    def __init__(
        self,
        aggregation: SalesAggregationService,
        taxonomies: TaxonomyDirectory,
        locals_directory: LocalDirectory,
        groups: GroupDirectory,
        goals: GoalStore,
        patterns: PatternStore,
        chart_renderer: Optional[ChartRenderer] = None,
        settings: Optional[PatternSettings] = None,
    ):
        self.aggregation = aggregation
        self.taxonomies = taxonomies
        self.locals_directory = locals_directory
        self.groups = groups
        self.goals = goals
        self.patterns = patterns
        self.chart_renderer = chart_renderer
        self.settings = settings or get_settings().patterns
        self.builder = PatternReportBuilder(aggregation, self.settings)

    async def _require_taxonomy(self, group_id: str, name: str) -> str:
        taxonomy_id = await self.taxonomies.resolve(group_id, name)
        if taxonomy_id is None:
            raise LookupNotFoundError(f"Taxonomy '{name}' does not exist for group {group_id}")
        return taxonomy_id

    async def _not_workable_filters(self, group_id: str, exclusion_tags: Sequence[str]) -> List[str]:
        """Exclusion tags of the local that mark invoices as not workable"""
        taxonomy_id = await self.taxonomies.resolve(group_id, self.settings.not_workable_taxonomy_name)
        if taxonomy_id is None:
            # Every invoice is workable
            return []
        members = await self.taxonomies.members(taxonomy_id)
        return [tag for tag in exclusion_tags if tag in members]

    async def _general_info(
        self,
        context: EvaluationContext,
        not_workable_filters: List[str],
    ) -> PatternsGeneralInfo:
        """Week totals over every pattern of the local"""
        base = dict(
            locations=context.locals,
            begin_date=context.begin_date,
            end_date=context.end_date,
            taxonomy_id=context.pattern_taxonomy_id,
            exclude_taxes=context.exclude_taxes,
        )
        workable = await self.aggregation.query(
            AggregateQuery(exclusion_tag_ids=tuple(not_workable_filters), **base)
        )
        totals = await self.aggregation.query(
            AggregateQuery(exclusion_tag_ids=context.exclusion_tag_ids, **base)
        )

        return PatternsGeneralInfo(
            total=sum(row.total for row in totals.sales),
            invoices=sum(row.invoices for row in totals.sales),
            client_count=sum(row.client_count for row in totals.sales),
            workable_invoices={row.tag_name: row.invoices for row in workable.sales},
            not_workable_filters=not_workable_filters,
        )

    async def _local_info(self, local_id: str) -> LocalInfo:
        infos = await self.locals_directory.info([local_id])
        return next((info for info in infos if info.local_id == local_id), LocalInfo(local_id, local_id))

    def _render_chart(self, report: PatternReport, locale: Optional[str]) -> Any:
        trend = report.trend
        return self.chart_renderer.render(
            trend.dates,
            trend.historical_vpc,
            trend.base_vpc,
            trend.optimum_vpc,
            locale,
            trend.reference_week_index,
            TREND_CHART_TYPE,
        )

    async def evaluate_local(self, local_id: str, reference_date: date) -> LocalEvaluation:
        """
        Build the reports of every pattern goal of a local.

        Args:
            local_id: Local being evaluated
            reference_date: Any day of the evaluated week

        Returns:
            LocalEvaluation with one report per pattern that had sales

        Raises:
            LookupNotFoundError: If the group, a mandatory taxonomy, the
                patterns or the open goals cannot be found
            NoReportDataError: If no pattern had sales in the week
            PatternValidationError: If a goal targets a tag its pattern has
                no baseline for; the other builds are cancelled
        """
        settings = self.settings
        log = logger.bind(local=local_id, reference_date=reference_date.isoformat())

        group = await self.groups.for_local(local_id)
        if group is None:
            raise LookupNotFoundError(f"No group found for local {local_id}")

        pattern_taxonomy_id = await self._require_taxonomy(group.group_id, settings.pattern_taxonomy_name)
        waiter_taxonomy_id = await self._require_taxonomy(group.group_id, settings.waiter_taxonomy_name)

        patterns = await self.patterns.find_by_local(group.group_id, local_id)
        if not patterns:
            raise LookupNotFoundError(f"No patterns defined for local {local_id}")

        goals = await self.goals.open_goals(group.group_id, local_id, settings.goal_type, reference_date)
        if not goals:
            raise LookupNotFoundError(
                f"No open {settings.goal_type} goals for local {local_id} on {reference_date.isoformat()}"
            )

        begin_date, end_date = week_bounds(reference_date)
        exclusion_tags = await self.locals_directory.exclusion_tags(local_id)
        context = EvaluationContext(
            locals=(local_id,),
            begin_date=begin_date,
            end_date=end_date,
            group_id=group.group_id,
            pattern_taxonomy_id=pattern_taxonomy_id,
            waiter_taxonomy_id=waiter_taxonomy_id,
            exclusion_tag_ids=tuple(exclusion_tags),
            exclude_taxes=group.exclude_taxes,
        )

        not_workable_filters = await self._not_workable_filters(group.group_id, exclusion_tags)
        general = await self._general_info(context, not_workable_filters)

        # One goal per pattern name, the last one listed wins
        goals_by_pattern: Dict[str, Goal] = {goal.tag_name: goal for goal in goals}
        patterns_by_name: Dict[str, Pattern] = {pattern.name: pattern for pattern in patterns}

        semaphore = asyncio.Semaphore(settings.max_concurrent_reports)

        async def build_report(pattern: Pattern, goal: Goal) -> PatternReport:
            async with semaphore:
                inclusion_tag_ids = await self.taxonomies.grouped_tags([goal.tag])
                return await self.builder.build(context, pattern, goal, general, inclusion_tag_ids)

        jobs = []
        for pattern_name, goal in goals_by_pattern.items():
            pattern = patterns_by_name.get(pattern_name)
            if pattern is None:
                log.warning("Goal targets an unknown pattern, skipping", pattern=pattern_name)
                continue
            jobs.append((pattern, goal))

        log.info("Evaluating patterns", patterns=len(jobs), begin_date=begin_date.isoformat())

        # A failed build cancels the builds still running
        try:
            async with asyncio.TaskGroup() as task_group:
                tasks = [task_group.create_task(build_report(pattern, goal)) for pattern, goal in jobs]
        except ExceptionGroup as errors:
            log.error("Pattern evaluation failed", errors=len(errors.exceptions))
            raise errors.exceptions[0] from None
        results = [task.result() for task in tasks]

        reports = [report for report in results if not report.is_empty]
        skipped = len(results) - len(reports)
        if skipped:
            log.info("Patterns without sales skipped", skipped=skipped)
        if not reports:
            raise NoReportDataError(
                f"No pattern information for local {local_id} in the week of {reference_date.isoformat()}"
            )

        local_info = await self._local_info(local_id)
        charts = []
        if self.chart_renderer is not None:
            charts = [self._render_chart(report, local_info.locale) for report in reports]

        log.info("Local evaluated", reports=len(reports))

        return LocalEvaluation(
            local_id=local_id,
            local_name=local_info.name,
            locale=local_info.locale,
            begin_date=begin_date,
            end_date=end_date,
            reports=reports,
            charts=charts,
        )
