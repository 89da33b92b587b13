"""
Pattern Report

Numeric scorecard of one (pattern, goal, week) computation. All values are
raw numbers; currency and locale formatting belong to the rendering layer.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional

from .indicators import IndicatorResult
from .product_tags import ProductTagMetric
from .rankings import LeaderboardEntry
from .schemas import GoalIndicator
from .waiters import WaiterInfo


class BuildState(str, Enum):
    """Stages of a report computation"""
    INIT = "init"
    FETCHED = "fetched"
    NO_DATA = "no_data"
    SCORED = "scored"
    RANKED = "ranked"
    TRENDED = "trended"
    DONE = "done"


class PerformanceLevel(str, Enum):
    """Observed VPC against the baseline band"""
    DEFICIENT = "Deficient"
    BAD = "Bad"
    GOOD = "Good"
    OUTSTANDING = "Outstanding"


@dataclass(frozen=True)
class PatternsGeneralInfo:
    """Week totals over every pattern of the local"""
    total: float = 0.0
    invoices: int = 0
    client_count: float = 0.0
    workable_invoices: Dict[str, int] = field(default_factory=dict)  # by pattern name
    not_workable_filters: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProductTagColumn:
    """Non-goal product tag as shown in the two display columns"""
    name: str
    image: str
    presence: float
    presence_variation: IndicatorResult
    ratio: float
    ratio_variation: IndicatorResult
    incremental_vpc: int


@dataclass
class TrendSeries:
    """Weekly VPC series, oldest to newest"""
    dates: List[date] = field(default_factory=list)
    historical_vpc: List[float] = field(default_factory=list)
    base_vpc: float = 0.0
    optimum_vpc: float = 0.0
    current_vpc: Optional[float] = None
    reference_week_index: int = -1

    @property
    def highlight_index(self) -> int:
        """Point whose label is emphasised (the evaluated week)"""
        return len(self.historical_vpc) - 1


@dataclass
class PatternReport:
    """Scorecard of a pattern against its goal for one week"""
    pattern_name: str
    goal_tag_name: str
    goal_indicator: GoalIndicator
    state: BuildState = BuildState.INIT

    # Volume
    total: float = 0.0
    general_total: float = 0.0
    total_per: int = 0
    invoices: int = 0
    general_invoices: int = 0
    invoices_per: int = 0
    client_count: float = 0.0
    general_client_count: float = 0.0

    # Data quality
    workable_invoices_ratio: float = 0.0
    workable_invoices: int = 0  # percent
    workable_invoices_per: Optional[IndicatorResult] = None

    # Goal
    goal: float = 0.0
    achieved_goal: float = 0.0
    achieved_goal_per: Optional[IndicatorResult] = None
    achieved_goal_vpc: int = 0
    achieved_goal_info: Optional[IndicatorResult] = None
    performance_goal: List[ProductTagMetric] = field(default_factory=list)

    # Waiters
    achieved_goal_waiters: int = 0
    goal_waiters_total: int = 0
    waiters_info: List[WaiterInfo] = field(default_factory=list)
    best_waiters_vpc: List[LeaderboardEntry[WaiterInfo]] = field(default_factory=list)
    worst_waiters_vpc: List[LeaderboardEntry[WaiterInfo]] = field(default_factory=list)
    best_waiters_goal: List[LeaderboardEntry[WaiterInfo]] = field(default_factory=list)
    worst_waiters_goal: List[LeaderboardEntry[WaiterInfo]] = field(default_factory=list)

    # Product tags
    products_tags_left: List[ProductTagColumn] = field(default_factory=list)
    products_tags_right: List[ProductTagColumn] = field(default_factory=list)

    # VPC
    weekly_vpc: float = 0.0
    performance_level: Optional[PerformanceLevel] = None
    incremental_vpc: float = 0.0
    incremental_vpc_per: Optional[IndicatorResult] = None
    weekly_increase: float = 0.0
    cumulative_increase: float = 0.0
    trend: TrendSeries = field(default_factory=TrendSeries)

    @property
    def is_empty(self) -> bool:
        """True when the pattern had no sales in the window"""
        return self.state == BuildState.NO_DATA
