"""
Pattern Repository

SQL implementation of the pattern store. Patches are applied as a single
ORM bulk UPDATE by primary key inside one transaction.
"""

from contextlib import asynccontextmanager
from datetime import date
from typing import Any, AsyncGenerator, Dict, Iterable, List, Optional, Tuple

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consumption_patterns.scoring.schemas import Pattern
from .connection import get_session_factory
from .models import PatternRecord

logger = structlog.get_logger(__name__)


class SqlPatternStore:
    """
    Pattern store backed by the ``patterns`` table.

    Example:
        await init_database()
        store = SqlPatternStore()
        await store.create(pattern)
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[AsyncSession, None]:
        factory = self._session_factory or get_session_factory()
        async with factory() as session:
            async with session.begin():
                yield session

    @staticmethod
    async def _patch(session: AsyncSession, rows: List[Dict[str, Any]]) -> int:
        if rows:
            await session.execute(update(PatternRecord), rows)
        return len(rows)

    async def create(self, pattern: Pattern) -> Pattern:
        """Store a pattern, replacing any pattern with the same keys"""
        async with self._transaction() as session:
            await session.execute(
                delete(PatternRecord).where(
                    PatternRecord.group == pattern.group,
                    PatternRecord.local == pattern.local,
                    PatternRecord.name == pattern.name,
                )
            )
            session.add(PatternRecord.from_pattern(pattern))

        logger.debug("Pattern stored", uuid=pattern.uuid, local=pattern.local, pattern=pattern.name)
        return pattern

    async def find_by_keys(self, group: str, local: str, name: str) -> Optional[Pattern]:
        async with self._transaction() as session:
            record = await session.scalar(
                select(PatternRecord).where(
                    PatternRecord.group == group,
                    PatternRecord.local == local,
                    PatternRecord.name == name,
                )
            )
            return record.to_pattern() if record is not None else None

    async def find_by_local(self, group: str, local: str) -> List[Pattern]:
        async with self._transaction() as session:
            records = await session.scalars(
                select(PatternRecord)
                .where(PatternRecord.group == group, PatternRecord.local == local)
                .order_by(PatternRecord.name)
            )
            return [record.to_pattern() for record in records]

    async def bulk_patch(self, updates: Iterable[Tuple[str, Dict[str, Any]]]) -> int:
        """
        Apply (uuid, field values) patches atomically.

        Returns:
            Number of patches applied
        """
        rows = [{"uuid": uuid, **fields} for uuid, fields in updates]
        async with self._transaction() as session:
            return await self._patch(session, rows)

    async def bulk_patch_image(self, group: str, tag_name: str, image_url: str) -> int:
        """Set the image of a product tag in every pattern of the group that has it"""
        async with self._transaction() as session:
            records = await session.scalars(select(PatternRecord).where(PatternRecord.group == group))
            rows = []
            for record in records:
                tags = record.products_tags or []
                if not any(tag.get("name") == tag_name for tag in tags):
                    continue
                rows.append({
                    "uuid": record.uuid,
                    "products_tags": [
                        {**tag, "image": image_url} if tag.get("name") == tag_name else tag
                        for tag in tags
                    ],
                })
            updated = await self._patch(session, rows)

        logger.debug("Pattern images patched", group=group, tag=tag_name, patterns=updated)
        return updated

    async def bulk_patch_reference_date(
        self,
        group: str,
        reference_date: date,
        local: Optional[str] = None,
    ) -> int:
        """Set the reference date of every pattern of a group, or of one of its locals"""
        query = select(PatternRecord.uuid).where(PatternRecord.group == group)
        if local is not None:
            query = query.where(PatternRecord.local == local)

        async with self._transaction() as session:
            uuids = (await session.scalars(query)).all()
            updated = await self._patch(
                session, [{"uuid": uuid, "reference_date": reference_date} for uuid in uuids]
            )

        logger.debug("Pattern reference dates patched", group=group, local=local, patterns=updated)
        return updated
