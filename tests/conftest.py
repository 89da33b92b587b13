"""
Test Suite Configuration
"""
import pytest
import pytest_asyncio
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from consumption_patterns.config import PatternSettings, Settings
from consumption_patterns.interfaces import (
    CATEGORIES_FACET,
    AggregateQuery,
    GroupInfo,
    LocalInfo,
)
from consumption_patterns.scoring.builder import EvaluationContext, week_start
from consumption_patterns.scoring.report import PatternsGeneralInfo
from consumption_patterns.scoring.schemas import (
    AggregateResult,
    AggregateScope,
    CategoryAggregate,
    Goal,
    GoalIndicator,
    Pattern,
    ProductTagBaseline,
    SalesAggregate,
)

GROUP_ID = "group-1"
LOCAL_ID = "local-1"
PATTERN_TAXONOMY = "tax-pattern"
WAITER_TAXONOMY = "tax-waiter"
NOT_WORKABLE_TAXONOMY = "tax-not-workable"
PATTERN_TAG = "tag-cena"

LOCAL_EXCLUSIONS = ["tag-cortesia", "tag-personal"]
NOT_WORKABLE_MEMBERS = {"tag-personal", "tag-otro"}


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================

class FakeAggregationService:
    """Answers aggregate queries from canned results and records every query"""

    def __init__(self):
        self.patterns: Dict[str, AggregateResult] = {}  # by grouping tag
        self.waiters = AggregateResult()
        self.workable = AggregateResult()
        self.weekly: List[SalesAggregate] = []
        self.general: Dict[Tuple[str, ...], AggregateResult] = {}  # by exclusion tags
        self.queries: List[AggregateQuery] = []

    async def query(self, request: AggregateQuery) -> AggregateResult:
        self.queries.append(request)

        if request.scope == AggregateScope.WEEKLY:
            first_week = week_start(request.begin_date)
            rows = [
                row for row in self.weekly
                if first_week <= date.fromisocalendar(row.year, row.week, 1) <= request.end_date
            ]
            return AggregateResult(sales=rows)

        if request.taxonomy_id == WAITER_TAXONOMY:
            return self.waiters if CATEGORIES_FACET in request.facets else self.workable

        if request.grouping_tag_id is None:
            return self.general.get(request.exclusion_tag_ids, AggregateResult())

        return self.patterns.get(request.grouping_tag_id, AggregateResult())


class FakeTaxonomyDirectory:
    def __init__(self):
        self.taxonomies: Dict[Tuple[str, str], str] = {
            (GROUP_ID, "patron"): PATTERN_TAXONOMY,
            (GROUP_ID, "mesonero"): WAITER_TAXONOMY,
            (GROUP_ID, "No trabajable"): NOT_WORKABLE_TAXONOMY,
        }
        self.taxonomy_members: Dict[str, Set[str]] = {NOT_WORKABLE_TAXONOMY: set(NOT_WORKABLE_MEMBERS)}
        self.tags: Dict[str, Set[str]] = {PATTERN_TAXONOMY: {"Cena", "Almuerzo"}}
        self.grouped: Dict[str, List[str]] = {}

    async def resolve(self, group_id: str, name: str) -> Optional[str]:
        return self.taxonomies.get((group_id, name))

    async def members(self, taxonomy_id: str) -> Set[str]:
        return self.taxonomy_members.get(taxonomy_id, set())

    async def has_tag(self, taxonomy_id: str, tag_name: str) -> bool:
        return tag_name in self.tags.get(taxonomy_id, set())

    async def grouped_tags(self, tag_ids):
        return [grouped for tag_id in tag_ids for grouped in self.grouped.get(tag_id, [tag_id])]


class FakeLocalDirectory:
    def __init__(self):
        self.locals: Dict[str, LocalInfo] = {
            LOCAL_ID: LocalInfo(LOCAL_ID, "Restaurante Centro", "es_VE"),
            "local-2": LocalInfo("local-2", "Restaurante Este", "es_VE"),
        }
        self.exclusions: Dict[str, List[str]] = {LOCAL_ID: list(LOCAL_EXCLUSIONS)}

    async def info(self, local_ids):
        return [self.locals[local_id] for local_id in local_ids if local_id in self.locals]

    async def exclusion_tags(self, local_id: str) -> List[str]:
        return self.exclusions.get(local_id, [])


class FakeGroupDirectory:
    def __init__(self):
        self.groups: Dict[str, GroupInfo] = {
            LOCAL_ID: GroupInfo(GROUP_ID, exclude_taxes=True),
            "local-2": GroupInfo(GROUP_ID),
            "local-foreign": GroupInfo("group-2"),
        }

    async def for_local(self, local_id: str) -> Optional[GroupInfo]:
        return self.groups.get(local_id)


class FakeGoalStore:
    def __init__(self):
        self.goals: List[Goal] = []
        self.calls: List[Tuple[str, str, str, date]] = []

    async def open_goals(self, group_id: str, local_id: str, goal_type: str, as_of: date) -> List[Goal]:
        self.calls.append((group_id, local_id, goal_type, as_of))
        return [
            goal for goal in self.goals
            if goal.group == group_id and goal.local == local_id and goal.type == goal_type
        ]


class FakeRuleDirectory:
    def __init__(self):
        self.effects: List[str] = ["Postres", "Bebidas,Entradas", "Vinos"]

    async def rule_effect_tags(self, group_id: str) -> List[str]:
        return list(self.effects)


class InMemoryPatternStore:
    """PatternStore keeping patterns in a dict keyed by uuid"""

    def __init__(self, patterns: Iterable[Pattern] = ()):
        self.patterns: Dict[str, Pattern] = {pattern.uuid: pattern for pattern in patterns}

    async def create(self, pattern: Pattern) -> Pattern:
        for uuid, stored in list(self.patterns.items()):
            if (stored.group, stored.local, stored.name) == (pattern.group, pattern.local, pattern.name):
                del self.patterns[uuid]
        self.patterns[pattern.uuid] = pattern
        return pattern

    async def find_by_keys(self, group: str, local: str, name: str) -> Optional[Pattern]:
        return next(
            (p for p in self.patterns.values() if (p.group, p.local, p.name) == (group, local, name)),
            None,
        )

    async def find_by_local(self, group: str, local: str) -> List[Pattern]:
        return [p for p in self.patterns.values() if p.group == group and p.local == local]

    async def bulk_patch(self, updates) -> int:
        count = 0
        for uuid, fields in updates:
            self.patterns[uuid] = self.patterns[uuid].model_copy(update=fields)
            count += 1
        return count

    async def bulk_patch_image(self, group: str, tag_name: str, image_url: str) -> int:
        updates = []
        for pattern in self.patterns.values():
            if pattern.group == group and pattern.product_tag(tag_name) is not None:
                tags = [
                    tag.model_copy(update={"image": image_url}) if tag.name == tag_name else tag
                    for tag in pattern.products_tags
                ]
                updates.append((pattern.uuid, {"products_tags": tags}))
        return await self.bulk_patch(updates)

    async def bulk_patch_reference_date(self, group: str, reference_date: date, local: Optional[str] = None) -> int:
        updates = [
            (pattern.uuid, {"reference_date": reference_date})
            for pattern in self.patterns.values()
            if pattern.group == group and (local is None or pattern.local == local)
        ]
        return await self.bulk_patch(updates)


class FakeChartRenderer:
    def __init__(self):
        self.calls: List[Dict[str, Any]] = []

    def render(self, dates, vpc_series, base_vpc, optimum_vpc, locale, reference_week_index, chart_type):
        self.calls.append({
            "dates": list(dates),
            "vpc_series": list(vpc_series),
            "base_vpc": base_vpc,
            "optimum_vpc": optimum_vpc,
            "locale": locale,
            "reference_week_index": reference_week_index,
            "chart_type": chart_type,
        })
        return f"chart-{len(self.calls)}"


# =============================================================================
# SETTINGS
# =============================================================================

@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def pattern_settings() -> PatternSettings:
    return PatternSettings()


# =============================================================================
# SAMPLE WEEK
#
# Evaluated week: 2024-03-04 (Mon) to 2024-03-10 (Sun), ISO week 10.
# Pattern "Cena": base VPC 50, deviation 5, observed VPC 53.
# =============================================================================

@pytest.fixture
def sample_pattern() -> Pattern:
    return Pattern(
        group=GROUP_ID,
        local=LOCAL_ID,
        name="Cena",
        base_vpc=50.0,
        base_standard_deviation=5.0,
        base_data_quality=1.0,
        deficient_vpc=40.0,
        optimum_vpc=70.0,
        reference_date=date(2024, 2, 14),
        products_tags=[
            ProductTagBaseline(name="Postres", image="postres.png", base_presence=0.3, base_ratio=1.0),
            ProductTagBaseline(name="Bebidas", image="bebidas.png", base_presence=0.5, base_ratio=1.2),
            ProductTagBaseline(name="Entradas", image="entradas.png", base_presence=0.4, base_ratio=1.0),
            ProductTagBaseline(name="Vinos", image="vinos.png", base_presence=0.2, base_ratio=1.5),
        ],
    )


@pytest.fixture
def presence_goal() -> Goal:
    return Goal(
        uuid="goal-1",
        group=GROUP_ID,
        local=LOCAL_ID,
        indicator=GoalIndicator.PRESENCE,
        value_indicator=0.4,
        goal_products_tags=["Postres"],
        tag=PATTERN_TAG,
        tag_name="Cena",
        open_date=date(2024, 1, 1),
        close_date=date(2024, 12, 31),
    )


@pytest.fixture
def general_info() -> PatternsGeneralInfo:
    return PatternsGeneralInfo(
        total=10600.0,
        invoices=80,
        client_count=200.0,
        workable_invoices={"Cena": 50},
        not_workable_filters=["tag-personal"],
    )


@pytest.fixture
def evaluation_context() -> EvaluationContext:
    return EvaluationContext(
        locals=(LOCAL_ID,),
        begin_date=date(2024, 3, 4),
        end_date=date(2024, 3, 10),
        group_id=GROUP_ID,
        pattern_taxonomy_id=PATTERN_TAXONOMY,
        waiter_taxonomy_id=WAITER_TAXONOMY,
        exclusion_tag_ids=tuple(LOCAL_EXCLUSIONS),
    )


@pytest.fixture
def pattern_week() -> AggregateResult:
    """Sales and product categories of the pattern for the evaluated week"""
    return AggregateResult(
        sales=[
            SalesAggregate(
                tag_id=PATTERN_TAG, tag_name="Cena", total=5300.0, invoices=40,
                client_count=100.0, total_per_client=53.0,
            ),
        ],
        categories=[
            CategoryAggregate(
                tag_id=PATTERN_TAG, tag_name="Cena", category_name="Postres", category_branch=["Postres"],
                client_count=30.0, articles=36.0, average_price=8.0,
            ),
            CategoryAggregate(
                tag_id=PATTERN_TAG, tag_name="Cena", category_name="Bebidas", category_branch=["Bebidas"],
                client_count=50.0, articles=60.0, average_price=4.0,
            ),
            CategoryAggregate(
                tag_id=PATTERN_TAG, tag_name="Cena", category_name="Entradas", category_branch=["Entradas"],
                client_count=20.0, articles=20.0, average_price=6.0,
            ),
        ],
    )


@pytest.fixture
def waiter_sales() -> List[SalesAggregate]:
    return [
        SalesAggregate(tag_id="w-2", tag_name="luis", total=1800.0, invoices=14, client_count=40.0, total_per_client=45.0),
        SalesAggregate(tag_id="w-1", tag_name="ANA perez", total=2000.0, invoices=15, client_count=30.0, total_per_client=66.67),
        SalesAggregate(tag_id="w-3", tag_name="marta", total=1500.0, invoices=11, client_count=30.0, total_per_client=50.0),
    ]


@pytest.fixture
def waiter_workable() -> List[SalesAggregate]:
    return [
        SalesAggregate(tag_id="w-1", tag_name="ANA perez", invoices=20),
        SalesAggregate(tag_id="w-2", tag_name="luis", invoices=14),
    ]


@pytest.fixture
def waiter_categories() -> List[CategoryAggregate]:
    return [
        CategoryAggregate(
            tag_id="w-1", tag_name="ANA perez", category_name="Postres", category_branch=["Postres"],
            client_count=15.0, articles=20.0,
        ),
        CategoryAggregate(
            tag_id="w-2", tag_name="luis", category_name="Postres", category_branch=["Postres"],
            client_count=10.0, articles=10.0,
        ),
        CategoryAggregate(
            tag_id="w-3", tag_name="marta", category_name="Bebidas", category_branch=["Bebidas"],
            client_count=25.0, articles=30.0,
        ),
    ]


@pytest.fixture
def weekly_rows() -> List[SalesAggregate]:
    """VPC of weeks 1 to 10 of 2024, listed out of order"""
    vpc = {1: 50.0, 2: 50.0, 3: 50.0, 4: 50.0, 5: 50.0, 6: 50.0, 7: 52.0, 8: 48.0, 9: 55.0, 10: 53.0}
    return [
        SalesAggregate(tag_id=PATTERN_TAG, tag_name="Cena", year=2024, week=week,
                       client_count=100.0, total_per_client=value)
        for week, value in sorted(vpc.items(), key=lambda item: (item[0] * 7) % 10)
    ]


@pytest.fixture
def aggregation(pattern_week, waiter_sales, waiter_workable, waiter_categories, weekly_rows) -> FakeAggregationService:
    service = FakeAggregationService()
    service.patterns[PATTERN_TAG] = pattern_week
    service.waiters = AggregateResult(sales=waiter_sales, categories=waiter_categories)
    service.workable = AggregateResult(sales=waiter_workable)
    service.weekly = weekly_rows
    return service


@pytest.fixture
def taxonomies() -> FakeTaxonomyDirectory:
    return FakeTaxonomyDirectory()


@pytest.fixture
def locals_directory() -> FakeLocalDirectory:
    return FakeLocalDirectory()


@pytest.fixture
def groups() -> FakeGroupDirectory:
    return FakeGroupDirectory()


@pytest.fixture
def goal_store(presence_goal) -> FakeGoalStore:
    store = FakeGoalStore()
    store.goals = [presence_goal]
    return store


@pytest.fixture
def rules() -> FakeRuleDirectory:
    return FakeRuleDirectory()


@pytest.fixture
def pattern_store(sample_pattern) -> InMemoryPatternStore:
    return InMemoryPatternStore([sample_pattern])


@pytest.fixture
def chart_renderer() -> FakeChartRenderer:
    return FakeChartRenderer()


# =============================================================================
# DATABASE
# =============================================================================

@pytest_asyncio.fixture
async def sql_store(tmp_path):
    """Pattern store over a throwaway SQLite database"""
    from consumption_patterns.database import SqlPatternStore, close_database, init_database

    await init_database(f"sqlite+aiosqlite:///{tmp_path / 'patterns.db'}", create_tables=True)
    yield SqlPatternStore()
    await close_database()
