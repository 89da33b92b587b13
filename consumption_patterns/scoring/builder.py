"""
Pattern Report Builder

Scores one pattern against its goal for one week. The computation is an
ordered pipeline over the aggregate fetches:

1. Fetch the pattern's sales and category aggregates
2. Synthesize the goal category when it had no sales
3. Score product tags and the pattern's scalar indicators
4. Rank waiters on VPC and on the goal metric
5. Split the remaining product tags into display columns
6. Classify the performance level and compute VPC increments
7. Accumulate the increase since the reference week and build the trend

A pattern without any sales or category rows ends in the NO_DATA state and
yields an empty report, which callers skip.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional, Sequence, Tuple

import structlog

from consumption_patterns.config import PatternSettings, get_settings
from consumption_patterns.exceptions import PatternValidationError
from consumption_patterns.interfaces import (
    CATEGORIES_FACET,
    SALES_FACET,
    AggregateQuery,
    SalesAggregationService,
)
from .indicators import evaluate, round_half_up, safe_divide
from .product_tags import ProductTagMetric, aggregate_product_tags
from .rankings import select_leaderboards
from .report import (
    BuildState,
    PatternReport,
    PatternsGeneralInfo,
    PerformanceLevel,
    ProductTagColumn,
    TrendSeries,
)
from .schemas import (
    AggregateScope,
    CategoryAggregate,
    Goal,
    Pattern,
    ProductTagBaseline,
    SalesAggregate,
)
from .waiters import score_waiters

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EvaluationContext:
    """Scope shared by every pattern of a local for the evaluated week"""
    locals: Tuple[str, ...]
    begin_date: date
    end_date: date
    group_id: str
    pattern_taxonomy_id: str
    waiter_taxonomy_id: str
    exclusion_tag_ids: Tuple[str, ...] = ()
    exclude_taxes: bool = False


def week_start(day: date) -> date:
    """Monday of the ISO week containing ``day``"""
    return day - timedelta(days=day.weekday())


def week_bounds(day: date) -> Tuple[date, date]:
    """Monday and Sunday of the ISO week containing ``day``"""
    monday = week_start(day)
    return monday, monday + timedelta(days=6)


def classify_performance(vpc: float, base_vpc: float, standard_deviation: float) -> PerformanceLevel:
    """Place an observed VPC in the baseline band; each bucket is upper-inclusive"""
    if vpc <= base_vpc - standard_deviation:
        return PerformanceLevel.DEFICIENT
    if vpc <= base_vpc:
        return PerformanceLevel.BAD
    if vpc <= base_vpc + standard_deviation:
        return PerformanceLevel.GOOD
    return PerformanceLevel.OUTSTANDING


def goal_value(metric: ProductTagMetric, goal: Goal) -> float:
    """Presence in percent for PP goals, ratio with one decimal for PR goals"""
    if goal.is_presence:
        return round_half_up(metric.presence * 100)
    return round_half_up(metric.ratio, 1)


def split_columns(
    metrics: Sequence[ProductTagMetric],
    baseline_tags: Sequence[ProductTagBaseline],
) -> Tuple[List[ProductTagColumn], List[ProductTagColumn]]:
    """Annotate product tag metrics against their baseline and split them in two halves"""
    baselines = {tag.name: tag for tag in baseline_tags}
    columns = [
        ProductTagColumn(
            name=metric.name,
            image=metric.image,
            presence=metric.presence,
            presence_variation=evaluate(metric.presence, baselines[metric.name].base_presence),
            ratio=metric.ratio,
            ratio_variation=evaluate(metric.ratio, baselines[metric.name].base_ratio),
            incremental_vpc=metric.incremental_vpc,
        )
        for metric in metrics
    ]
    middle = (len(columns) + 1) // 2
    return columns[:middle], columns[middle:]


class PatternReportBuilder:
    """
    Computes the scorecard of a pattern for one week.

    The builder keeps no state between calls; every computation owns its
    report and intermediate values, so builds for different patterns can
    run concurrently.

    Example:
        builder = PatternReportBuilder(aggregation_service)
        report = await builder.build(context, pattern, goal, general_info)
        if not report.is_empty:
            ...
    """

    def __init__(
        self,
        aggregation: SalesAggregationService,
        settings: Optional[PatternSettings] = None,
    ):
        self.aggregation = aggregation
        self.settings = settings or get_settings().patterns

    def _query(
        self,
        context: EvaluationContext,
        goal: Goal,
        inclusion_tag_ids: Tuple[str, ...],
        taxonomy_id: str,
        begin_date: date,
        scope: AggregateScope = AggregateScope.FULL,
        facets: Tuple[str, ...] = (SALES_FACET,),
        exclusion_tag_ids: Optional[Sequence[str]] = None,
    ) -> AggregateQuery:
        return AggregateQuery(
            locations=context.locals,
            begin_date=begin_date,
            end_date=context.end_date,
            taxonomy_id=taxonomy_id,
            merge_locations=False,
            exclusion_tag_ids=tuple(
                context.exclusion_tag_ids if exclusion_tag_ids is None else exclusion_tag_ids
            ),
            inclusion_tag_ids=inclusion_tag_ids,
            scope=scope,
            exclude_taxes=context.exclude_taxes,
            grouping_tag_id=goal.tag,
            grouping_kind=self.settings.grouping_kind,
            group_id=context.group_id,
            facets=frozenset(facets),
        )

    @staticmethod
    def _advance(report: PatternReport, state: BuildState, log) -> None:
        report.state = state
        log.debug("Pattern report state", state=state.value)

    @staticmethod
    def _with_goal_category(
        categories: Sequence[CategoryAggregate],
        sales: SalesAggregate,
        goal: Goal,
    ) -> List[CategoryAggregate]:
        """Category rows, plus a zero row for the goal category when it sold nothing"""
        if any(row.category_name == goal.primary_tag for row in categories):
            return list(categories)

        reference = categories[0] if categories else sales
        placeholder = CategoryAggregate(
            tag_id=reference.tag_id,
            tag_name=reference.tag_name,
            category_name=goal.primary_tag,
            category_branch=list(goal.goal_products_tags),
        )
        return [*categories, placeholder]

    async def build(
        self,
        context: EvaluationContext,
        pattern: Pattern,
        goal: Goal,
        general: PatternsGeneralInfo,
        inclusion_tag_ids: Sequence[str] = (),
    ) -> PatternReport:
        """
        Score a pattern against its goal for the context's week.

        Args:
            context: Local, week and taxonomies of the evaluation
            pattern: Baseline profile being scored
            goal: Open goal defined on the pattern
            general: Week totals over every pattern of the local
            inclusion_tag_ids: Tags whose sales are aggregated, the goal's tag by default

        Returns:
            PatternReport, empty (``is_empty``) when the pattern had no sales

        Raises:
            PatternValidationError: If the goal targets a tag the pattern has no baseline for
        """
        log = logger.bind(
            pattern=pattern.name,
            goal=goal.tag_name,
            begin_date=context.begin_date.isoformat(),
            end_date=context.end_date.isoformat(),
        )
        report = PatternReport(
            pattern_name=pattern.name,
            goal_tag_name=goal.tag_name,
            goal_indicator=goal.indicator,
        )
        inclusion = tuple(inclusion_tag_ids) or (goal.tag,)

        baseline_goal_tag = pattern.product_tag(goal.primary_tag)
        if baseline_goal_tag is None:
            raise PatternValidationError(
                f"Pattern '{pattern.name}' has no baseline for goal tag '{goal.primary_tag}'"
            )

        # Step 1: Fetch
        fetched = await self.aggregation.query(
            self._query(
                context, goal, inclusion, context.pattern_taxonomy_id, context.begin_date,
                facets=(SALES_FACET, CATEGORIES_FACET),
            )
        )
        self._advance(report, BuildState.FETCHED, log)

        sales = fetched.sales[0] if fetched.sales else None
        if sales is None and not fetched.categories:
            self._advance(report, BuildState.NO_DATA, log)
            log.info("Pattern has no sales in the window")
            return report
        if sales is None:
            sales = SalesAggregate(tag_name=pattern.name)

        # Step 2: Goal category
        categories = self._with_goal_category(fetched.categories, sales, goal)

        # Step 3: Score
        metrics = aggregate_product_tags(pattern.products_tags, categories, goal, sales.client_count)
        projected, achieved = metrics[goal.primary_tag]
        other_metrics = [entries[0] for name, entries in metrics.items() if name != goal.primary_tag]
        self._score(report, sales, general, pattern, goal, baseline_goal_tag, projected, achieved)
        self._advance(report, BuildState.SCORED, log)

        # Step 4: Rank
        await self._rank(report, context, goal, inclusion, general)
        self._advance(report, BuildState.RANKED, log)

        # Step 5: Display columns
        report.products_tags_left, report.products_tags_right = split_columns(
            other_metrics, pattern.products_tags
        )

        # Step 6: Performance and increments
        vpc = sales.total_per_client
        report.weekly_vpc = round_half_up(vpc, 2)
        report.performance_level = classify_performance(
            vpc, pattern.base_vpc, pattern.base_standard_deviation
        )
        report.incremental_vpc = round_half_up(vpc - pattern.base_vpc, 2)
        report.incremental_vpc_per = evaluate(report.incremental_vpc, pattern.base_vpc)
        report.weekly_increase = round_half_up(report.incremental_vpc * sales.client_count, 2)

        # Step 7: Cumulative increase and trend
        report.cumulative_increase = await self._cumulative_increase(context, pattern, goal, inclusion)
        report.trend = await self._trend(context, pattern, goal, inclusion)
        self._advance(report, BuildState.TRENDED, log)

        self._advance(report, BuildState.DONE, log)
        log.info(
            "Pattern report built",
            performance_level=report.performance_level.value,
            weekly_vpc=report.weekly_vpc,
            waiters=len(report.waiters_info),
        )
        return report

    def _score(
        self,
        report: PatternReport,
        sales: SalesAggregate,
        general: PatternsGeneralInfo,
        pattern: Pattern,
        goal: Goal,
        baseline_goal_tag: ProductTagBaseline,
        projected: ProductTagMetric,
        achieved: ProductTagMetric,
    ) -> None:
        report.total = round_half_up(sales.total, 2)
        report.general_total = round_half_up(general.total, 2)
        report.total_per = round_half_up(safe_divide(report.total * 100, report.general_total))
        report.invoices = sales.invoices
        report.general_invoices = general.invoices
        report.invoices_per = round_half_up(safe_divide(report.invoices * 100, report.general_invoices))
        report.client_count = sales.client_count
        report.general_client_count = general.client_count

        workable_denominator = general.workable_invoices.get(pattern.name) or 1
        report.workable_invoices_ratio = sales.invoices / workable_denominator
        report.workable_invoices = round_half_up(report.workable_invoices_ratio * 100)
        report.workable_invoices_per = evaluate(report.workable_invoices_ratio, pattern.base_data_quality)

        report.performance_goal = [projected, achieved]
        report.goal = goal_value(projected, goal)
        report.achieved_goal = goal_value(achieved, goal)
        if goal.is_presence:
            report.achieved_goal_per = evaluate(achieved.presence, baseline_goal_tag.base_presence)
        else:
            report.achieved_goal_per = evaluate(achieved.ratio, baseline_goal_tag.base_ratio)
        report.achieved_goal_vpc = achieved.incremental_vpc
        report.achieved_goal_info = evaluate(report.goal, report.achieved_goal, goal_mode=True)

    async def _rank(
        self,
        report: PatternReport,
        context: EvaluationContext,
        goal: Goal,
        inclusion: Tuple[str, ...],
        general: PatternsGeneralInfo,
    ) -> None:
        workable = await self.aggregation.query(
            self._query(
                context, goal, inclusion, context.waiter_taxonomy_id, context.begin_date,
                exclusion_tag_ids=general.not_workable_filters,
            )
        )
        waiters = await self.aggregation.query(
            self._query(
                context, goal, inclusion, context.waiter_taxonomy_id, context.begin_date,
                facets=(SALES_FACET, CATEGORIES_FACET),
            )
        )

        scores = score_waiters(waiters.sales, workable.sales, waiters.categories, goal)
        size = self.settings.leaderboard_size
        vpc_board = select_leaderboards(scores.vpc_ranking, size)
        goal_board = select_leaderboards(scores.goal_ranking, size)

        report.waiters_info = scores.waiters_info
        report.achieved_goal_waiters = scores.achieved_goal_count
        report.goal_waiters_total = len(scores.goal_ranking)
        report.best_waiters_vpc = vpc_board.best
        report.worst_waiters_vpc = vpc_board.worst
        report.best_waiters_goal = goal_board.best
        report.worst_waiters_goal = goal_board.worst

    async def _cumulative_increase(
        self,
        context: EvaluationContext,
        pattern: Pattern,
        goal: Goal,
        inclusion: Tuple[str, ...],
    ) -> float:
        """Increase over the baseline, week by week, since the pattern's reference week"""
        begin_date = week_start(pattern.reference_date or context.begin_date)
        weekly = await self.aggregation.query(
            self._query(
                context, goal, inclusion, context.pattern_taxonomy_id, begin_date,
                scope=AggregateScope.WEEKLY,
            )
        )
        increase = sum(
            (week.total_per_client - pattern.base_vpc) * week.client_count for week in weekly.sales
        )
        return round_half_up(increase, 2)

    async def _trend(
        self,
        context: EvaluationContext,
        pattern: Pattern,
        goal: Goal,
        inclusion: Tuple[str, ...],
    ) -> TrendSeries:
        weeks = self.settings.trend_weeks
        weekly = await self.aggregation.query(
            self._query(
                context, goal, inclusion, context.pattern_taxonomy_id,
                context.end_date - timedelta(weeks=weeks - 1),
                scope=AggregateScope.WEEKLY,
            )
        )
        newest_first = sorted(
            (row for row in weekly.sales if row.year is not None and row.week is not None),
            key=lambda row: (row.year, row.week),
            reverse=True,
        )[:weeks]

        trend = TrendSeries(
            base_vpc=round_half_up(pattern.base_vpc, 2),
            optimum_vpc=round_half_up(pattern.optimum_vpc, 2),
            current_vpc=round_half_up(newest_first[0].total_per_client, 2) if newest_first else None,
        )
        for row in reversed(newest_first):
            trend.dates.append(date.fromisocalendar(row.year, row.week, 1))
            trend.historical_vpc.append(round_half_up(row.total_per_client, 2))

        if pattern.reference_date is not None:
            reference_week = week_start(pattern.reference_date)
            if reference_week in trend.dates:
                trend.reference_week_index = trend.dates.index(reference_week)

        return trend
