"""
Resolve the cache regions to refresh after a mutation.

A detail descriptor needs the mutated record's id. When the id is missing the
descriptor contributes nothing and a warning is logged, so the detail region
may stay stale. Pass strict=True to raise NotFoundError instead.
"""

import logging
from typing import Dict, FrozenSet, Hashable, Optional, Set, Tuple

from feedesk.core.enums import EntityType, InstitutionContext, Operation
from feedesk.core.exceptions import NotFoundError

from .rules import INVALIDATION_RULES, Descriptor, RegionKey

logger = logging.getLogger(__name__)


class InvalidationResolver:
    def __init__(self, rules: Optional[Dict[Tuple[EntityType, Operation], Tuple[Descriptor, ...]]] = None) -> None:
        self._rules = INVALIDATION_RULES if rules is None else rules

    def resolve(
        self,
        context: InstitutionContext,
        entity: EntityType,
        operation: Operation,
        entity_id: Optional[Hashable] = None,
        strict: bool = False,
    ) -> FrozenSet[RegionKey]:
        context = InstitutionContext(context)
        entity = EntityType(entity)
        operation = Operation(operation)
        descriptors = self._rules.get((entity, operation))
        if descriptors is None:
            logger.debug("No invalidation rule for %s.%s", entity.value, operation.value)
            return frozenset()

        keys: Set[RegionKey] = set()
        for descriptor in descriptors:
            if descriptor.requires_id and entity_id is None:
                if strict:
                    raise NotFoundError(
                        f"{entity.value}.{operation.value} needs an id to invalidate {descriptor.resource} detail"
                    )
                logger.warning(
                    "Skipped %s detail region for %s.%s (%s): no id given",
                    descriptor.resource, entity.value, operation.value, context.value,
                )
                continue
            keys.update(descriptor.keys(context, entity_id))
        return frozenset(keys)


_default_resolver = InvalidationResolver()


def resolve(
    context: InstitutionContext,
    entity: EntityType,
    operation: Operation,
    entity_id: Optional[Hashable] = None,
    strict: bool = False,
) -> FrozenSet[RegionKey]:
    return _default_resolver.resolve(context, entity, operation, entity_id, strict=strict)
