"""
Product Tag Aggregation

Derives presence, ratio and incremental VPC per product tag of a pattern
from the period's category aggregates, and projects the goal tag onto the
goal's target value.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Sequence

import structlog

from .indicators import round_half_up, safe_divide
from .schemas import CategoryAggregate, Goal, GoalIndicator, ProductTagBaseline

logger = structlog.get_logger(__name__)


class MetricKind(str, Enum):
    """Whether a metric is the goal projection or the observed value"""
    PROJECTED = "projected"
    ACHIEVED = "achieved"


@dataclass(frozen=True)
class ProductTagMetric:
    """Period metrics of one product tag"""
    name: str
    image: str
    presence: float
    ratio: float
    incremental_vpc: int
    kind: MetricKind = MetricKind.ACHIEVED


def _incremental_vpc(presence: float, ratio: float, average_price: float, baseline_vpc: float) -> int:
    return round_half_up(presence * ratio * average_price - baseline_vpc)


def project_goal(achieved: ProductTagMetric, goal: Goal, average_price: float, baseline_vpc: float) -> ProductTagMetric:
    """Metric the tag would show if the goal's target value were reached"""
    presence = goal.value_indicator if goal.indicator == GoalIndicator.PRESENCE else achieved.presence
    ratio = goal.value_indicator if goal.indicator == GoalIndicator.RATIO else achieved.ratio
    return ProductTagMetric(
        name=achieved.name,
        image=achieved.image,
        presence=presence,
        ratio=ratio,
        incremental_vpc=_incremental_vpc(presence, ratio, average_price, baseline_vpc),
        kind=MetricKind.PROJECTED,
    )


def aggregate_product_tags(
    baseline_tags: Sequence[ProductTagBaseline],
    period_category_rows: Sequence[CategoryAggregate],
    goal: Goal,
    pattern_client_count: float,
) -> Dict[str, List[ProductTagMetric]]:
    """
    Build the per-tag metrics of a pattern for the evaluated period.

    Baseline tags without a category row in the period are left out. The
    goal's primary tag maps to ``[projected, achieved]``; every other tag
    maps to ``[achieved]``. Keys keep the baseline order.

    Args:
        baseline_tags: Product tag baselines of the pattern
        period_category_rows: Category aggregates of the pattern for the period
        goal: Goal defined on the pattern
        pattern_client_count: Diners of the pattern in the period

    Returns:
        Ordered mapping of tag name to its metrics
    """
    rows_by_name: Dict[str, CategoryAggregate] = {}
    for row in period_category_rows:
        rows_by_name.setdefault(row.category_name, row)

    metrics: Dict[str, List[ProductTagMetric]] = {}
    for baseline in baseline_tags:
        row = rows_by_name.get(baseline.name)
        if row is None:
            logger.debug("Product tag without period sales", tag=baseline.name)
            continue

        # Baseline mix valued at the current period's price
        baseline_vpc = baseline.base_presence * baseline.base_ratio * row.average_price

        presence = safe_divide(row.client_count, pattern_client_count)
        ratio = safe_divide(row.articles, row.client_count)
        achieved = ProductTagMetric(
            name=baseline.name,
            image=baseline.image,
            presence=presence,
            ratio=ratio,
            incremental_vpc=_incremental_vpc(presence, ratio, row.average_price, baseline_vpc),
        )

        if baseline.name == goal.primary_tag:
            projected = project_goal(achieved, goal, row.average_price, baseline_vpc)
            metrics[baseline.name] = [projected, replace(achieved, image="")]
        else:
            metrics[baseline.name] = [achieved]

    return metrics
