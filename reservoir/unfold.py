from __future__ import annotations

from django.apps import apps


def _active_reservation_items():
    """Subitens de "Reservas ativas" por SKU com reservas em aberto."""
    from reservoir.models import Reservation

    skus = (
        Reservation.objects.active()
        .order_by("sku")
        .values_list("sku", flat=True)
        .distinct()[:10]
    )
    return [
        {
            "title": sku,
            "icon": "inventory_2",
            "link": f"/admin/reservoir/reservation/?status__exact=active&sku={sku}",
        }
        for sku in skus
    ]


def get_sidebar_navigation(request):
    """
    Retorna `UNFOLD['SIDEBAR']['navigation']`.

    `group['items']` precisa ser lista (não callable) nesta versão do Unfold.
    """
    navigation = [
        {
            "title": "Reservas",
            "icon": "lock_clock",
            "items": [
                {
                    "title": "Reservas ativas",
                    "icon": "shopping_cart",
                    "link": "/admin/reservoir/reservation/?status__exact=active",
                    "items": _active_reservation_items(),
                },
                {
                    "title": "Histórico",
                    "icon": "history",
                    "link": "/admin/reservoir/reservation/",
                },
            ],
        },
    ]

    stock_items = [
        {
            "title": "Estoque",
            "icon": "warehouse",
            "link": "/admin/reservoir/stockrecord/",
        },
        {
            "title": "Movimentos",
            "icon": "swap_vert",
            "link": "/admin/reservoir/stockmovement/",
        },
        {
            "title": "Idempotência",
            "icon": "key",
            "link": "/admin/reservoir/idempotencykey/",
        },
    ]

    if apps.is_installed("example.shop"):
        stock_items.append(
            {
                "title": "Produtos",
                "icon": "storefront",
                "link": "/admin/shop/product/",
            }
        )

    navigation.append(
        {
            "title": "Estoque",
            "icon": "settings",
            "items": stock_items,
        }
    )

    return navigation
