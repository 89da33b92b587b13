"""
Waiter Scoring

Merges the three waiter-scoped aggregate sets of a pattern (sales,
workable invoices and sales of the goal's category) into per-waiter goal
metrics, and orders them for both leaderboard axes.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

import polars as pl
import structlog

from .indicators import MET_LABEL, NOT_MET_LABEL, IndicatorResult, round_half_up
from .schemas import CategoryAggregate, Goal, SalesAggregate

logger = structlog.get_logger(__name__)

_SALES_SCHEMA = {
    "tag_id": pl.Utf8,
    "tag_name": pl.Utf8,
    "total": pl.Float64,
    "invoices": pl.Float64,
    "client_count": pl.Float64,
    "total_per_client": pl.Float64,
}

_CATEGORY_SCHEMA = {
    "tag_id": pl.Utf8,
    "tag_name": pl.Utf8,
    "articles": pl.Float64,
    "client_count": pl.Float64,
}


@dataclass(frozen=True)
class WaiterInfo:
    """Scorecard line of one waiter"""
    uuid: str
    name: str
    client_count: int
    total: float
    vpc: float
    workable_invoices: int  # percentage of invoices that are workable
    presence: float
    ratio: float
    achieved_goal: float  # presence in percent (PP) or ratio (PR)
    goal: IndicatorResult

    @property
    def met_goal(self) -> bool:
        return self.goal.value == MET_LABEL


@dataclass
class WaiterScores:
    """Waiters of a pattern, ready for ranking"""
    waiters_info: List[WaiterInfo] = field(default_factory=list)
    vpc_ranking: List[WaiterInfo] = field(default_factory=list)
    goal_ranking: List[WaiterInfo] = field(default_factory=list)

    @property
    def achieved_goal_count(self) -> int:
        return sum(1 for waiter in self.goal_ranking if waiter.met_goal)


def display_name(tag_name: str) -> str:
    """Title-case a waiter tag name, collapsing whitespace"""
    return " ".join(word.capitalize() for word in (tag_name or "").strip().lower().split())


def _frame(rows: Sequence[Any], schema: Dict[str, Any]) -> pl.DataFrame:
    data = {}
    for column, dtype in schema.items():
        values = [getattr(row, column) for row in rows]
        if dtype == pl.Float64:
            values = [float(value or 0) for value in values]
        data[column] = values
    return pl.DataFrame(data, schema=schema)


def _goal_status(met: bool) -> IndicatorResult:
    if met:
        return IndicatorResult(indicator=1, value=MET_LABEL)
    return IndicatorResult(indicator=-1, value=NOT_MET_LABEL)


def _goal_frame(sales: pl.DataFrame, categories: pl.DataFrame, goal: Goal) -> pl.DataFrame:
    """Presence/ratio of the goal category per waiter, missing waiters at zero"""
    metric = "presence" if goal.is_presence else "ratio"

    waiter_clients = sales.select(
        pl.col("tag_id"),
        pl.col("client_count").alias("waiter_client_count"),
    ).unique(subset="tag_id", keep="first", maintain_order=True)

    scored = (
        categories
        .join(waiter_clients, on="tag_id", how="left")
        .with_columns(pl.col("waiter_client_count").fill_null(1.0))
        .with_columns(
            pl.when(pl.col("waiter_client_count") != 0)
            .then(pl.col("client_count") / pl.col("waiter_client_count"))
            .otherwise(0.0)
            .alias("presence"),
            pl.when(pl.col("client_count") != 0)
            .then(pl.col("articles") / pl.col("client_count"))
            .otherwise(0.0)
            .alias("ratio"),
        )
        .with_columns(
            (pl.col(metric) >= goal.value_indicator).alias("met"),
        )
        .select("tag_id", "tag_name", "presence", "ratio", "met")
    )

    # Waiters that sold nothing of the goal category
    missing = (
        sales
        .join(categories.select("tag_id"), on="tag_id", how="anti")
        .select(
            pl.col("tag_id"),
            pl.col("tag_name"),
            pl.lit(0.0).alias("presence"),
            pl.lit(0.0).alias("ratio"),
            pl.lit(False).alias("met"),
        )
    )

    return (
        pl.concat([scored, missing], how="vertical")
        .with_row_index("position")
        .sort([metric, "position"], descending=[True, False])
        .drop("position")
    )


def _achieved_goal(presence: float, ratio: float, goal: Goal) -> float:
    if goal.is_presence:
        return round_half_up(presence * 100)
    return round_half_up(ratio, 1)


def score_waiters(
    sales_rows: Sequence[SalesAggregate],
    workable_rows: Sequence[SalesAggregate],
    category_rows: Sequence[CategoryAggregate],
    goal: Goal,
) -> WaiterScores:
    """
    Score every waiter of a pattern against its goal.

    Args:
        sales_rows: Waiter sales of the pattern for the period
        workable_rows: Waiter invoice counts without not-workable invoices
        category_rows: Waiter x category sales of the pattern for the period
        goal: Goal defined on the pattern

    Returns:
        WaiterScores with the scorecard lines ordered by goal status, the
        VPC axis ordered by VPC and the goal axis ordered by presence/ratio
    """
    branch = list(goal.goal_products_tags)
    branch_rows = [row for row in category_rows if list(row.category_branch) == branch]

    sales = (
        _frame(sales_rows, _SALES_SCHEMA)
        .with_row_index("position")
        .sort(["total_per_client", "position"], descending=[True, False])
        .drop("position")
        .with_row_index("rank")
    )
    workable = (
        _frame(workable_rows, _SALES_SCHEMA)
        .select(pl.col("tag_id"), pl.col("invoices").alias("workable_invoices"))
        .unique(subset="tag_id", keep="first", maintain_order=True)
    )
    categories = _frame(branch_rows, _CATEGORY_SCHEMA).unique(
        subset="tag_id", keep="first", maintain_order=True
    )

    goal_frame = _goal_frame(sales.drop("rank"), categories, goal)

    waiters = (
        sales
        .join(workable, on="tag_id", how="left")
        .join(goal_frame.drop("tag_name"), on="tag_id", how="left")
        .with_columns(
            pl.col("presence").fill_null(0.0),
            pl.col("ratio").fill_null(0.0),
            pl.col("met").fill_null(False),
        )
        .sort("rank")
    )

    vpc_ranking = []
    for row in waiters.iter_rows(named=True):
        workable_invoices = row["workable_invoices"]
        if workable_invoices is None:
            workable_invoices = row["invoices"]
        vpc_ranking.append(
            WaiterInfo(
                uuid=row["tag_id"],
                name=display_name(row["tag_name"]),
                client_count=round_half_up(row["client_count"]),
                total=round_half_up(row["total"], 2),
                vpc=round_half_up(row["total_per_client"], 2),
                workable_invoices=(
                    round_half_up(row["invoices"] * 100 / workable_invoices) if workable_invoices else 100
                ),
                presence=row["presence"],
                ratio=row["ratio"],
                achieved_goal=_achieved_goal(row["presence"], row["ratio"], goal),
                goal=_goal_status(row["met"]),
            )
        )

    goal_ranking = [
        WaiterInfo(
            uuid=row["tag_id"],
            name=display_name(row["tag_name"]),
            client_count=0,
            total=0.0,
            vpc=0.0,
            workable_invoices=100,
            presence=row["presence"],
            ratio=row["ratio"],
            achieved_goal=_achieved_goal(row["presence"], row["ratio"], goal),
            goal=_goal_status(row["met"]),
        )
        for row in goal_frame.iter_rows(named=True)
    ]

    # Sales figures for waiters present in both sets
    by_uuid = {waiter.uuid: waiter for waiter in vpc_ranking}
    goal_ranking = [by_uuid.get(waiter.uuid, waiter) for waiter in goal_ranking]

    waiters_info = sorted(vpc_ranking, key=lambda waiter: waiter.goal.value)

    logger.debug(
        "Waiters scored",
        waiters=len(vpc_ranking),
        goal_category_waiters=len(goal_ranking),
        goal=goal.tag_name,
    )

    return WaiterScores(
        waiters_info=waiters_info,
        vpc_ranking=vpc_ranking,
        goal_ranking=goal_ranking,
    )
