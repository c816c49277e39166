"""
Payment item builder: the staged list of payment lines for one session.

No validation happens on add/update so the operator can compose freely;
validation is a separate pass. Removal of term-based lines must go from the
highest staged term down.
"""

import logging
from decimal import Decimal
from typing import Callable, List, Tuple

from feedesk.core.exceptions import DuplicateItemError, ItemNotFoundError, SequenceViolationError

from .schemas import TERM_ITEM_TYPES, PaymentItem, purpose_label

logger = logging.getLogger(__name__)

BuilderListener = Callable[["PaymentItemBuilder"], None]


class PaymentItemBuilder:
    def __init__(self) -> None:
        self._items: List[PaymentItem] = []
        self._listeners: List[BuilderListener] = []

    def add_item(self, item: PaymentItem) -> None:
        if self._index_of(item.id) is not None:
            raise DuplicateItemError(f"Payment item {item.id} is already staged")
        self._items.append(item)
        self._changed()

    def update_item(self, item: PaymentItem) -> None:
        index = self._index_of(item.id)
        if index is None:
            raise ItemNotFoundError(item.id)
        self._items[index] = item
        self._changed()

    def remove_item(self, item_id: str) -> None:
        index = self._index_of(item_id)
        if index is None:
            raise ItemNotFoundError(item_id)
        item = self._items[index]
        if isinstance(item, TERM_ITEM_TYPES):
            highest = max(
                i.term_number
                for i in self._items
                if isinstance(i, TERM_ITEM_TYPES) and i.purpose == item.purpose
            )
            if item.term_number != highest:
                raise SequenceViolationError(
                    f"Remove term {highest} before term {item.term_number} "
                    f"({purpose_label(item.purpose)})"
                )
        del self._items[index]
        self._changed()

    def clear(self) -> None:
        if not self._items:
            return
        self._items.clear()
        self._changed()

    def get_total(self) -> Decimal:
        return sum((item.amount for item in self._items), Decimal("0"))

    def get_items(self) -> Tuple[PaymentItem, ...]:
        return tuple(self._items)

    def subscribe(self, listener: BuilderListener) -> Callable[[], None]:
        """Register a listener called after every mutation. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def __len__(self) -> int:
        return len(self._items)

    def _index_of(self, item_id: str):
        for index, item in enumerate(self._items):
            if item.id == item_id:
                return index
        return None

    def _changed(self) -> None:
        logger.debug("Staged items changed: count=%s total=%s", len(self._items), self.get_total())
        for listener in list(self._listeners):
            listener(self)
