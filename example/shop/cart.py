"""
Cart Service - E-commerce cart integration with Reservoir reservations.

This module demonstrates the reserve -> hold -> confirm flow:
add-to-cart reserves, remove-from-cart releases, checkout confirms.

Usage:
    from example.shop.cart import CartService

    cart = CartService(holder_id="user:42")
    line = cart.add_item(sku="T-SHIRT", qty=2, variant="M")
    cart.remove_item(line)
    result = cart.checkout(idempotency_key="CHECKOUT-123")
"""

from __future__ import annotations

import logging

from django.db import transaction

from reservoir.exceptions import AlreadyTerminal, ReservationExpired, ReservationNotFound
from reservoir.ids import generate_idempotency_key
from reservoir.services import ReservationCoordinator

from .models import CartLine, Product


logger = logging.getLogger(__name__)


class CheckoutError(Exception):
    """Checkout could not confirm every line."""

    def __init__(self, message: str, expired_lines: list[CartLine]):
        self.expired_lines = expired_lines
        super().__init__(message)


class CartService:
    """
    Minimal cart backed by reservations.

    In production, you would add:
    - Pricing and promotions
    - Order creation after checkout
    - Payment integration
    - etc.
    """

    def __init__(self, holder_id: str, coordinator: ReservationCoordinator | None = None):
        self.holder_id = holder_id
        self.coordinator = coordinator or ReservationCoordinator()

    def lines(self):
        return CartLine.objects.filter(holder_id=self.holder_id, checked_out=False).select_related("product")

    def add_item(self, sku: str, qty: int, variant: str | None = None, ttl: int | None = None) -> CartLine:
        """
        Reserve stock and add a line to the cart.

        Raises:
            Product.DoesNotExist: Unknown or inactive product
            InsufficientStock: Not enough stock (nothing is added)
        """
        product = Product.objects.get(sku=sku, is_active=True)
        reservation = self.coordinator.reserve(
            sku=sku,
            variant=variant,
            quantity=qty,
            holder_id=self.holder_id,
            ttl=ttl,
        )
        return CartLine.objects.create(
            holder_id=self.holder_id,
            product=product,
            variant=reservation.variant,
            quantity=qty,
            reservation_id=reservation.reservation_id,
        )

    def remove_item(self, line: CartLine, qty: int | None = None) -> None:
        """
        Release the line's reservation (fully or partially) and update the cart.

        A reservation that already expired or vanished is simply dropped from the cart.
        """
        try:
            result = self.coordinator.release(line.reservation_id, quantity=qty, holder_id=self.holder_id)
        except (AlreadyTerminal, ReservationNotFound) as e:
            logger.info("Cart line %s dropped: reservation %s (%s)", line.pk, line.reservation_id, e.code)
            line.delete()
            return

        if result.remaining_quantity:
            line.quantity = result.remaining_quantity
            line.save(update_fields=["quantity"])
        else:
            line.delete()

    def checkout(self, idempotency_key: str | None = None) -> dict:
        """
        Confirm every line's reservation (decrements the ledger).

        Expired lines are removed from the cart and reported; the customer
        must add them again.

        Raises:
            CheckoutError: Some lines expired (confirmed lines stay confirmed)
            LedgerUnavailable: Transient ledger failure, retry the checkout
        """
        idempotency_key = idempotency_key or generate_idempotency_key()
        confirmed = []
        expired = []
        for line in self.lines():
            key = f"{idempotency_key}:{line.reservation_id}"
            try:
                self.coordinator.confirm(
                    line.reservation_id,
                    idempotency_key=key,
                    reference=idempotency_key,
                    holder_id=self.holder_id,
                )
            except (ReservationExpired, ReservationNotFound):
                expired.append(line)
                continue
            except AlreadyTerminal as e:
                # Confirmed by a previous, interrupted checkout
                if e.code != "confirmed":
                    expired.append(line)
                    continue
            confirmed.append(line)

        with transaction.atomic():
            for line in confirmed:
                line.checked_out = True
                line.save(update_fields=["checked_out"])
            for line in expired:
                line.delete()

        if expired:
            raise CheckoutError(f"{len(expired)} item(s) expired, add them again", expired)

        return {
            "holder_id": self.holder_id,
            "reference": idempotency_key,
            "lines": len(confirmed),
            "total_q": sum(line.total_q for line in confirmed),
        }
