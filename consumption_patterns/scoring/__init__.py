"""
Consumption Patterns Scoring Engine
Scoring Module

The report builder lives in ``consumption_patterns.scoring.builder``.
"""
from .indicators import IndicatorResult, evaluate
from .product_tags import MetricKind, ProductTagMetric, aggregate_product_tags
from .rankings import Leaderboard, LeaderboardEntry, select_leaderboards
from .report import BuildState, PatternReport, PatternsGeneralInfo, PerformanceLevel, TrendSeries
from .schemas import (
    AggregateResult,
    AggregateScope,
    CategoryAggregate,
    Goal,
    GoalIndicator,
    Pattern,
    ProductTagBaseline,
    SalesAggregate,
)
from .waiters import WaiterInfo, WaiterScores, score_waiters

__all__ = [
    "IndicatorResult",
    "evaluate",
    "MetricKind",
    "ProductTagMetric",
    "aggregate_product_tags",
    "Leaderboard",
    "LeaderboardEntry",
    "select_leaderboards",
    "BuildState",
    "PatternReport",
    "PatternsGeneralInfo",
    "PerformanceLevel",
    "TrendSeries",
    "AggregateResult",
    "AggregateScope",
    "CategoryAggregate",
    "Goal",
    "GoalIndicator",
    "Pattern",
    "ProductTagBaseline",
    "SalesAggregate",
    "WaiterInfo",
    "WaiterScores",
    "score_waiters",
]
