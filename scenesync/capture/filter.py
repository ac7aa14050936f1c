"""
Category filter.

Decides whether an entity of a given class (with a given tag set) takes part
in sync. The decision only depends on the immutable CategorySettings the
filter was built from, so the filter is rebuilt whenever a category flag
changes and decisions are memoised per (class, has-Abstract-tag).

Rules, in priority order:
    1. "Abstract" tag: allow if the Abstract category is enabled and
       registers the class, otherwise fall through
    2. Dual-gated classes (BillboardGui, SurfaceGui) need both Geometry and
       UI enabled
    3. Exact membership: allow if any enabled category registers the class,
       deny if only disabled categories do
    4. Supertype: allow if a superclass is registered under, or is a base
       type of, an enabled category
    5. Catch-all category flag

Invariants:
    - The Abstract category only applies through rule 1
    - Rule order is fixed; reordering changes which ambiguous classes sync

How to change safely:
    - Add classes through configuration (CategorySettings), not here
    - Keep the memo keyed by everything _decide() reads
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from ..config import (
    ABSTRACT_TAG,
    CATCH_ALL_CATEGORY,
    DUAL_GATE_CATEGORIES,
    DUAL_GATED_CLASSES,
    CategorySettings,
)
from ..host.base import Entity
from ..host.classes import ancestors

logger = logging.getLogger(__name__)

ABSTRACT_CATEGORY = ABSTRACT_TAG


class CategoryFilter:
    """Sync filter built from one category snapshot.

    Example:
        >>> f = CategoryFilter(CategorySettings())
        >>> f.should_sync("Script", ())
        True
        >>> f.should_sync("Part", ())
        False
        >>> f.should_sync("Part", ("Abstract",))
        True
    """

    def __init__(self, settings: Optional[CategorySettings] = None) -> None:
        self.settings = settings or CategorySettings()
        self._owner: Dict[str, str] = {}
        self._memberships: Dict[str, List[str]] = {}
        for category in self.settings.categories:
            for class_name in category.classes:
                self._owner.setdefault(class_name, category.name)
                self._memberships.setdefault(class_name, []).append(category.name)
        self._decisions: Dict[Tuple[str, bool], bool] = {}

    def category_of(self, class_name: str) -> Optional[str]:
        """First-registered owning category of a class, if any."""
        return self._owner.get(class_name)

    def categories_of(self, class_name: str) -> Tuple[str, ...]:
        """All categories registering a class, in registration order."""
        return tuple(self._memberships.get(class_name, ()))

    def should_sync(self, class_name: str, tags: Iterable[str] = ()) -> bool:
        """Whether entities of this class and tag set are synced."""
        key = (class_name, ABSTRACT_TAG in tags)
        decision = self._decisions.get(key)
        if decision is None:
            decision = self._decide(*key)
            self._decisions[key] = decision
        return decision

    def should_sync_entity(self, entity: Entity) -> bool:
        return self.should_sync(entity.class_name, entity.tags())

    def _decide(self, class_name: str, has_abstract_tag: bool) -> bool:
        settings = self.settings

        if has_abstract_tag:
            abstract = settings.get(ABSTRACT_CATEGORY)
            if abstract is not None and abstract.enabled and class_name in abstract.classes:
                return True

        if class_name in DUAL_GATED_CLASSES:
            return all(settings.is_enabled(name) for name in DUAL_GATE_CATEGORIES)

        owners = [c for c in self._memberships.get(class_name, ()) if c != ABSTRACT_CATEGORY]
        if owners:
            return any(settings.is_enabled(name) for name in owners)

        lineage = ancestors(class_name)
        for category in settings.categories:
            if not category.enabled or category.name == ABSTRACT_CATEGORY:
                continue
            if any(base in category.bases for base in lineage):
                return True
            if any(superclass in category.classes for superclass in lineage[1:]):
                return True

        return settings.is_enabled(CATCH_ALL_CATEGORY)
