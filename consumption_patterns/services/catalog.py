"""
Pattern Catalog Service

Maintains the baseline patterns of a group: batch import with name and
product tag validation, product tag image backfill and reference date
correction.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

import structlog

from consumption_patterns.config import PatternSettings, get_settings
from consumption_patterns.exceptions import LookupNotFoundError, PatternValidationError
from consumption_patterns.interfaces import (
    GroupDirectory,
    LocalDirectory,
    PatternStore,
    ProductTagRuleDirectory,
    TaxonomyDirectory,
)
from consumption_patterns.scoring.schemas import Pattern

logger = structlog.get_logger(__name__)


@dataclass
class ImportSummary:
    """Pattern names of an import, grouped by outcome and keyed by local name"""
    valid_patterns: Dict[str, List[str]] = field(default_factory=dict)
    invalid_name: Dict[str, List[str]] = field(default_factory=dict)
    invalid_products_tags: Dict[str, List[str]] = field(default_factory=dict)


def _record(bucket: Dict[str, List[str]], local_name: str, value: str) -> None:
    bucket.setdefault(local_name, []).append(value)


def rule_tag_names(effect_tags: Iterable[str]) -> Set[str]:
    """Product tag names referenced by rule effects; an effect tag may list several, comma separated"""
    names: Set[str] = set()
    for effect_tag in effect_tags:
        if not effect_tag:
            continue
        names.add(effect_tag)
        names.update(part.strip() for part in effect_tag.split(",") if part.strip())
    return names


class PatternCatalogService:
    """
    Create and maintain pattern baselines.

    Example:
        catalog = PatternCatalogService(store, taxonomies, locals_directory, groups, rules)
        summary = await catalog.import_patterns("group-1", payloads, date(2024, 1, 1))
    """

    def __init__(
        self,
        store: PatternStore,
        taxonomies: TaxonomyDirectory,
        locals_directory: LocalDirectory,
        groups: GroupDirectory,
        rules: ProductTagRuleDirectory,
        settings: Optional[PatternSettings] = None,
    ):
        self.store = store
        self.taxonomies = taxonomies
        self.locals_directory = locals_directory
        self.groups = groups
        self.rules = rules
        self.settings = settings or get_settings().patterns

    async def _pattern_taxonomy(self, group_id: str) -> str:
        name = self.settings.pattern_taxonomy_name
        taxonomy_id = await self.taxonomies.resolve(group_id, name)
        if taxonomy_id is None:
            raise LookupNotFoundError(f"Taxonomy '{name}' does not exist for group {group_id}")
        return taxonomy_id

    async def _check_membership(self, group_id: str, local_id: Optional[str]) -> str:
        if not local_id or not str(local_id).strip():
            raise PatternValidationError("Pattern local must not be blank")
        local_id = str(local_id).strip()
        group = await self.groups.for_local(local_id)
        if group is None or group.group_id != group_id:
            raise PatternValidationError(f"Local {local_id} does not belong to group {group_id}")
        return local_id

    async def import_patterns(
        self,
        group_id: str,
        payloads: Iterable[Mapping[str, Any]],
        reference_date: Optional[date] = None,
    ) -> ImportSummary:
        """
        Validate and store a batch of pattern baselines.

        A pattern whose name is not a tag of the pattern taxonomy, or with a
        product tag no rule produces, is reported and skipped. Valid patterns
        replace any stored pattern with the same keys.

        Args:
            group_id: Group owning the patterns
            payloads: Raw pattern fields (local, name, base figures, products_tags)
            reference_date: Reference date stored on every imported pattern

        Returns:
            ImportSummary keyed by local name

        Raises:
            LookupNotFoundError: If the group has no pattern taxonomy
            PatternValidationError: If a local is blank or outside the group
            pydantic.ValidationError: If a payload has invalid base figures
        """
        if not group_id or not group_id.strip():
            raise PatternValidationError("Pattern group must not be blank")

        taxonomy_id = await self._pattern_taxonomy(group_id)
        known_tags = rule_tag_names(await self.rules.rule_effect_tags(group_id))
        summary = ImportSummary()

        for payload in payloads:
            local_id = await self._check_membership(group_id, payload.get("local"))
            local_names = await self.locals_directory.info([local_id])
            local_name = next((info.name for info in local_names if info.local_id == local_id), local_id)
            name = payload.get("name")

            if not name or not await self.taxonomies.has_tag(taxonomy_id, str(name).strip()):
                _record(summary.invalid_name, local_name, name)
                logger.info("Pattern name is not a pattern tag", local=local_id, pattern=name)
                continue

            missing = [
                tag.get("name") for tag in payload.get("products_tags") or []
                if tag.get("name") not in known_tags
            ]
            if missing:
                for tag_name in missing:
                    _record(summary.invalid_products_tags, local_name, tag_name)
                logger.info("Pattern product tags without rules", local=local_id, pattern=name, tags=missing)
                continue

            pattern = Pattern(
                **{key: value for key, value in payload.items() if key not in ("uuid", "group", "reference_date")},
                group=group_id,
                reference_date=reference_date,
            )
            pattern = await self.store.create(pattern)
            _record(summary.valid_patterns, local_name, pattern.name)

        logger.info(
            "Patterns imported",
            group=group_id,
            valid=sum(len(names) for names in summary.valid_patterns.values()),
            invalid_name=sum(len(names) for names in summary.invalid_name.values()),
            invalid_products_tags=sum(len(names) for names in summary.invalid_products_tags.values()),
        )
        return summary

    async def load_pattern_image(self, group_id: str, tag_name: str, image_url: str) -> int:
        """
        Set the image of a product tag in every pattern of the group using it.

        Returns:
            Number of patterns updated

        Raises:
            LookupNotFoundError: If no pattern of the group has the tag
        """
        await self._pattern_taxonomy(group_id)
        updated = await self.store.bulk_patch_image(group_id, tag_name, image_url)
        if not updated:
            raise LookupNotFoundError(f"No pattern of group {group_id} has product tag '{tag_name}'")
        logger.info("Pattern images loaded", group=group_id, tag=tag_name, patterns=updated)
        return updated

    async def update_reference_date(
        self,
        group_id: str,
        reference_date: date,
        local_id: Optional[str] = None,
    ) -> int:
        """
        Move the reference date of every pattern of a group, or of one local.

        Returns:
            Number of patterns updated

        Raises:
            LookupNotFoundError: If no pattern matches
        """
        updated = await self.store.bulk_patch_reference_date(group_id, reference_date, local_id)
        if not updated:
            raise LookupNotFoundError(
                f"No patterns defined for group {group_id}" + (f" and local {local_id}" if local_id else "")
            )
        logger.info("Pattern reference dates updated", group=group_id, local=local_id, patterns=updated)
        return updated
