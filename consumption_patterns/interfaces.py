"""
Collaborator Interfaces

Protocols for the systems the engine reads from and writes to. Sales are
always consumed pre-aggregated through ``SalesAggregationService``.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from consumption_patterns.scoring.schemas import AggregateResult, AggregateScope, Goal, Pattern

SALES_FACET = "sales"
CATEGORIES_FACET = "categories"


@dataclass(frozen=True)
class AggregateQuery:
    """Parameters of one aggregate fetch"""
    locations: Tuple[str, ...]
    begin_date: date
    end_date: date
    taxonomy_id: str
    merge_locations: bool = False
    exclusion_tag_ids: Tuple[str, ...] = ()
    inclusion_tag_ids: Tuple[str, ...] = ()
    scope: AggregateScope = AggregateScope.FULL
    exclude_taxes: bool = False
    grouping_tag_id: Optional[str] = None
    grouping_kind: Optional[str] = None
    group_id: Optional[str] = None
    facets: FrozenSet[str] = field(default_factory=lambda: frozenset({SALES_FACET}))


@dataclass(frozen=True)
class GroupInfo:
    """Group a local belongs to"""
    group_id: str
    exclude_taxes: bool = False


@dataclass(frozen=True)
class LocalInfo:
    """Display context of a local"""
    local_id: str
    name: str
    locale: Optional[str] = None


class SalesAggregationService(Protocol):
    async def query(self, request: AggregateQuery) -> AggregateResult:
        ...


class TaxonomyDirectory(Protocol):
    async def resolve(self, group_id: str, name: str) -> Optional[str]:
        """Taxonomy id by name, None when the group has no such taxonomy"""
        ...

    async def members(self, taxonomy_id: str) -> Set[str]:
        ...

    async def has_tag(self, taxonomy_id: str, tag_name: str) -> bool:
        ...

    async def grouped_tags(self, tag_ids: Sequence[str]) -> List[str]:
        """Tag ids to include when aggregating sales of the given tags"""
        ...


class LocalDirectory(Protocol):
    async def info(self, local_ids: Sequence[str]) -> List[LocalInfo]:
        ...

    async def exclusion_tags(self, local_id: str) -> List[str]:
        ...


class GroupDirectory(Protocol):
    async def for_local(self, local_id: str) -> Optional[GroupInfo]:
        ...


class GoalStore(Protocol):
    async def open_goals(self, group_id: str, local_id: str, goal_type: str, as_of: date) -> List[Goal]:
        ...


class ProductTagRuleDirectory(Protocol):
    async def rule_effect_tags(self, group_id: str) -> List[str]:
        """Raw effect tags of every product-tag rule of the group"""
        ...


class PatternStore(Protocol):
    async def create(self, pattern: Pattern) -> Pattern:
        ...

    async def find_by_keys(self, group: str, local: str, name: str) -> Optional[Pattern]:
        ...

    async def find_by_local(self, group: str, local: str) -> List[Pattern]:
        ...

    async def bulk_patch(self, updates: Iterable[Tuple[str, Dict[str, Any]]]) -> int:
        ...

    async def bulk_patch_image(self, group: str, tag_name: str, image_url: str) -> int:
        ...

    async def bulk_patch_reference_date(self, group: str, reference_date: date, local: Optional[str] = None) -> int:
        ...


class ChartRenderer(Protocol):
    def render(
        self,
        dates: Sequence[date],
        vpc_series: Sequence[float],
        base_vpc: float,
        optimum_vpc: float,
        locale: Optional[str],
        reference_week_index: int,
        chart_type: str,
    ) -> Any:
        ...
