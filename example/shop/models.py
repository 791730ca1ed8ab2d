"""
Example catalog and cart models for demonstrating Reservoir integration.

Stock itself lives in Reservoir's ledger (StockRecord), keyed by SKU and
variant. The cart only remembers which reservation backs each line.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class Product(models.Model):
    """
    Simple product model for the example shop.

    In production, you would likely have:
    - Categories and tags
    - Multiple images
    - Variant attributes (size, color)
    - etc.
    """

    sku = models.CharField(_("SKU"), max_length=64, unique=True)
    name = models.CharField(_("name"), max_length=200)
    description = models.TextField(_("description"), blank=True, default="")

    # Price in cents (or smallest currency unit)
    price_q = models.BigIntegerField(_("price (q)"), default=0)

    is_active = models.BooleanField(_("active"), default=True)

    created_at = models.DateTimeField(_("created at"), auto_now_add=True)
    updated_at = models.DateTimeField(_("updated at"), auto_now=True)

    class Meta:
        verbose_name = _("product")
        verbose_name_plural = _("products")
        ordering = ("name",)

    def __str__(self) -> str:
        return f"{self.name} ({self.sku})"

    @property
    def price_display(self) -> str:
        """Returns formatted price for display."""
        return f"R$ {self.price_q / 100:.2f}"


class CartLine(models.Model):
    """
    A cart line backed by a Reservoir reservation.

    Lines are deleted on removal and marked as checked out on checkout.
    """

    holder_id = models.CharField(_("holder"), max_length=128, db_index=True)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="cart_lines")
    variant = models.CharField(_("variant"), max_length=64, blank=True, default="")
    quantity = models.PositiveIntegerField(_("quantity"))
    reservation_id = models.CharField(_("reservation"), max_length=32, unique=True)
    checked_out = models.BooleanField(_("checked out"), default=False)
    created_at = models.DateTimeField(_("created at"), auto_now_add=True)

    class Meta:
        verbose_name = _("cart line")
        verbose_name_plural = _("cart lines")
        ordering = ("created_at", "id")

    def __str__(self) -> str:
        return f"{self.holder_id}: {self.product.sku} x{self.quantity}"

    @property
    def total_q(self) -> int:
        return self.product.price_q * self.quantity
