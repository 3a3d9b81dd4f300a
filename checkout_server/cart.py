"""Optimistic cart view shared by the cart page and the cart drawer."""

import logging
from typing import Optional

from pydantic import BaseModel

from .models import CartItem, OrderSummaryData
from .pricing import VAT_RATE, calculate_cart_summary

logger = logging.getLogger(__name__)


class CartUpdate(BaseModel):
    """A pending quantity change; quantity 0 means removal."""

    item_id: str
    quantity: int


def cart_item_id(product_id: str, variant_id: Optional[str] = None) -> str:
    return f"{product_id}-{variant_id or 'default'}"


def apply_cart_update(items: list[CartItem], update: CartUpdate) -> list[CartItem]:
    """Set the matching item's quantity, then drop items with quantity <= 0. Pure."""
    projected = []
    for item in items:
        quantity = update.quantity if item.id == update.item_id else item.quantity
        if quantity <= 0:
            continue
        projected.append(item if quantity == item.quantity else item.model_copy(update={"quantity": quantity}))
    return projected


class OptimisticCart:
    """
    Authoritative cart items plus the pending updates not yet confirmed.

    The visible items are recomputed from the authoritative list on every
    access; pending updates are dropped whenever the authoritative list is
    replaced.
    """

    def __init__(self, items: Optional[list[CartItem]] = None) -> None:
        self._items: list[CartItem] = list(items or [])
        self.pending: list[CartUpdate] = []

    @property
    def authoritative_items(self) -> list[CartItem]:
        return list(self._items)

    @property
    def items(self) -> list[CartItem]:
        projected = self._items
        for update in self.pending:
            projected = apply_cart_update(projected, update)
        return list(projected)

    def update_quantity(self, item_id: str, quantity: int) -> CartUpdate:
        update = CartUpdate(item_id=item_id, quantity=quantity)
        self.pending.append(update)
        return update

    def remove(self, item_id: str) -> CartUpdate:
        return self.update_quantity(item_id, 0)

    def sync(self, items: list[CartItem]) -> None:
        """Replace the authoritative items; the optimistic overlay is reset."""
        if self.pending:
            logger.debug(f"Authoritative cart changed, dropping {len(self.pending)} pending update(s)")
        self._items = list(items)
        self.pending = []

    def settle(self, update: CartUpdate) -> None:
        """Forget a pending update whose mutation finished without a new item list."""
        self.pending = [p for p in self.pending if p is not update]

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def summary(self, vat_rate: float = VAT_RATE) -> OrderSummaryData:
        return calculate_cart_summary(self.items, vat_rate)
