"""
Scoring Input Schemas

Typed records for the static inputs of a pattern computation (baseline
patterns and goals) and for the pre-aggregated sales rows returned by the
aggregation collaborator.
"""

from datetime import date
from enum import Enum
from hashlib import md5
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class GoalIndicator(str, Enum):
    """Goal indicator types"""
    PRESENCE = "PP"  # Presence percentage target
    RATIO = "PR"  # Items per diner target


class AggregateScope(str, Enum):
    """Time bucketing of an aggregate query"""
    FULL = "full"
    WEEKLY = "weekly"


def generate_pattern_uuid(group: str, local: str, name: str) -> str:
    """Stable identifier for a pattern, derived from its unique keys"""
    return md5((group + local + name).encode("utf-8")).hexdigest()


class ProductTagBaseline(BaseModel):
    """Baseline mix of one product tag inside a pattern"""

    name: str = Field(..., min_length=1)
    image: str = ""
    base_presence: float = Field(..., ge=0, le=1)
    base_ratio: float = Field(..., gt=0)

    @field_validator("name", "image", mode="before")
    @classmethod
    def strip_strings(cls, v):
        return v.strip() if isinstance(v, str) else v


class Pattern(BaseModel):
    """
    Baseline consumption profile of a local.

    Identity is (group, local, name). String fields are stripped, blank
    references and non-positive VPC figures are rejected, and the uuid is
    derived from the keys unless one is supplied.
    """

    uuid: Optional[str] = None
    group: str = Field(..., min_length=1)
    local: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    base_vpc: float = Field(..., gt=0)
    base_standard_deviation: float = Field(..., gt=0)
    base_data_quality: float = 1.0
    deficient_vpc: float = Field(..., gt=0)
    optimum_vpc: float = Field(..., gt=0)
    reference_date: Optional[date] = None
    products_tags: List[ProductTagBaseline] = Field(default_factory=list)

    @field_validator("group", "local", "name", mode="before")
    @classmethod
    def strip_keys(cls, v):
        if v is None:
            raise ValueError("must not be null")
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def derive_uuid(self) -> "Pattern":
        if not self.uuid or not self.uuid.strip():
            self.uuid = generate_pattern_uuid(self.group, self.local, self.name)
        return self

    def product_tag(self, name: str) -> Optional[ProductTagBaseline]:
        """Baseline entry for a product tag, if the pattern defines it"""
        return next((tag for tag in self.products_tags if tag.name == name), None)


class Goal(BaseModel):
    """Target defined on a pattern for a window of time"""

    model_config = ConfigDict(frozen=True)

    uuid: Optional[str] = None
    group: Optional[str] = None
    local: Optional[str] = None
    type: str = "PATTERN"
    status: str = "OPEN"
    indicator: GoalIndicator
    value_indicator: float
    goal_products_tags: List[str] = Field(..., min_length=1)
    tag: str
    tag_name: str
    open_date: Optional[date] = None
    close_date: Optional[date] = None

    @property
    def primary_tag(self) -> str:
        """Product tag the goal targets"""
        return self.goal_products_tags[0]

    @property
    def is_presence(self) -> bool:
        return self.indicator == GoalIndicator.PRESENCE


class SalesAggregate(BaseModel):
    """Aggregated sales of one scope (pattern, waiter) over a date range"""

    model_config = ConfigDict(frozen=True)

    tag_id: Optional[str] = None
    tag_name: str = ""
    total: float = 0.0
    subtotal: float = 0.0
    tax: float = 0.0
    discount: float = 0.0
    invoices: int = 0
    articles: float = 0.0
    client_count: float = 0.0
    average_price: float = 0.0
    total_per_client: float = 0.0
    year: Optional[int] = None
    week: Optional[int] = None


class CategoryAggregate(SalesAggregate):
    """Aggregated sales of one product category inside a scope"""

    category_name: str
    category_branch: List[str] = Field(default_factory=list)


class AggregateResult(BaseModel):
    """Facets returned by the aggregation collaborator"""

    sales: List[SalesAggregate] = Field(default_factory=list)
    categories: List[CategoryAggregate] = Field(default_factory=list)
