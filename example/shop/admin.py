"""
Admin configuration for example shop.
"""

from django.contrib import admin
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display

from reservoir.models import Reservation, StockRecord

from .models import CartLine, Product


class CartLineInline(TabularInline):
    model = CartLine
    extra = 0
    fields = ("holder_id", "variant", "quantity", "reservation_id", "checked_out")
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Product)
class ProductAdmin(ModelAdmin):
    list_display = ("sku", "name", "price_display", "stock_display", "is_active")
    list_filter = ("is_active",)
    search_fields = ("sku", "name")
    ordering = ("name",)
    inlines = [CartLineInline]

    fieldsets = (
        (None, {"fields": ("sku", "name", "description")}),
        ("Pricing", {"fields": ("price_q",)}),
        ("Status", {"fields": ("is_active",)}),
    )

    @display(description="Price")
    def price_display(self, obj):
        return obj.price_display

    @display(description="Available / total")
    def stock_display(self, obj):
        # Stock lives in the Reservoir ledger, summed across variants
        total = sum(StockRecord.objects.filter(sku=obj.sku).values_list("total_stock", flat=True))
        held = Reservation.objects.filter(sku=obj.sku).active().reserved_quantity()
        return f"{max(total - held, 0)} / {total}"


@admin.register(CartLine)
class CartLineAdmin(ModelAdmin):
    list_display = ("holder_id", "product", "variant", "quantity", "reservation_id", "checked_out", "created_at")
    list_filter = ("checked_out",)
    search_fields = ("holder_id", "reservation_id", "product__sku")
    readonly_fields = ("holder_id", "product", "variant", "quantity", "reservation_id", "checked_out", "created_at")

    def has_add_permission(self, request):
        return False
