"""
Database Models

Storage of the pattern baselines. A pattern row carries its product tag
baselines as a JSON document (JSONB on PostgreSQL), mirroring the
``Pattern`` schema one to one.
"""

from datetime import datetime, date
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    Index,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from consumption_patterns.scoring.schemas import Pattern, ProductTagBaseline


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


ProductTagsType = JSON().with_variant(JSONB(), "postgresql")


class PatternRecord(Base):
    """
    Pattern Baseline Table

    One row per (group, local, name). The uuid is derived from those keys,
    so re-importing a pattern lands on the same primary key.
    """
    __tablename__ = "patterns"

    uuid: Mapped[str] = mapped_column(String(32), primary_key=True)
    group: Mapped[str] = mapped_column(String(64), nullable=False)
    local: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Baseline figures
    base_vpc: Mapped[float] = mapped_column(Float, nullable=False)
    base_standard_deviation: Mapped[float] = mapped_column(Float, nullable=False)
    base_data_quality: Mapped[float] = mapped_column(Float, default=1.0)
    deficient_vpc: Mapped[float] = mapped_column(Float, nullable=False)
    optimum_vpc: Mapped[float] = mapped_column(Float, nullable=False)
    reference_date: Mapped[Optional[date]] = mapped_column(Date)

    # [{"name", "image", "base_presence", "base_ratio"}, ...]
    products_tags: Mapped[List[Dict[str, Any]]] = mapped_column(ProductTagsType, default=list)

    # Audit
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("group", "local", "name", name="uq_patterns_group_local_name"),
        UniqueConstraint("local", "name", name="uq_patterns_local_name"),
        Index("ix_patterns_group", "group"),
    )

    def to_pattern(self) -> Pattern:
        return Pattern(
            uuid=self.uuid,
            group=self.group,
            local=self.local,
            name=self.name,
            base_vpc=self.base_vpc,
            base_standard_deviation=self.base_standard_deviation,
            base_data_quality=self.base_data_quality,
            deficient_vpc=self.deficient_vpc,
            optimum_vpc=self.optimum_vpc,
            reference_date=self.reference_date,
            products_tags=[ProductTagBaseline(**tag) for tag in self.products_tags or []],
        )

    @classmethod
    def from_pattern(cls, pattern: Pattern) -> "PatternRecord":
        return cls(
            uuid=pattern.uuid,
            group=pattern.group,
            local=pattern.local,
            name=pattern.name,
            base_vpc=pattern.base_vpc,
            base_standard_deviation=pattern.base_standard_deviation,
            base_data_quality=pattern.base_data_quality,
            deficient_vpc=pattern.deficient_vpc,
            optimum_vpc=pattern.optimum_vpc,
            reference_date=pattern.reference_date,
            products_tags=[tag.model_dump() for tag in pattern.products_tags],
        )
