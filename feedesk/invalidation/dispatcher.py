"""Push resolved region keys into the cache store: invalidate now, refetch in the background."""

import asyncio
import logging
from typing import FrozenSet, Hashable, Optional, Set

from feedesk.core.enums import EntityType, InstitutionContext, Operation
from feedesk.payments.schemas import PaymentCompleted

from .cache import CacheStore
from .resolver import InvalidationResolver
from .rules import RegionKey

logger = logging.getLogger(__name__)


class InvalidationDispatcher:
    def __init__(self, cache: CacheStore, resolver: Optional[InvalidationResolver] = None) -> None:
        self._cache = cache
        self._resolver = resolver or InvalidationResolver()
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(
        self,
        context: InstitutionContext,
        entity: EntityType,
        operation: Operation,
        entity_id: Optional[Hashable] = None,
    ) -> FrozenSet[RegionKey]:
        keys = self._resolver.resolve(context, entity, operation, entity_id)
        for key in keys:
            self._cache.invalidate(key)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; %s region(s) invalidated without refetch", len(keys))
            return keys
        for key in keys:
            task = loop.create_task(self._refetch(key))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        logger.info(
            "Dispatched %s region(s) for %s.%s (%s)",
            len(keys), EntityType(entity).value, Operation(operation).value, InstitutionContext(context).value,
        )
        return keys

    async def on_payment_completed(self, event: PaymentCompleted) -> None:
        self.dispatch(event.context, EntityType.FEE, Operation.PAYMENT)

    async def drain(self) -> None:
        """Wait for scheduled refetches to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _refetch(self, key: RegionKey) -> None:
        try:
            await self._cache.refetch(key)
        except Exception:
            logger.exception("Refetch failed for region %s", key)
