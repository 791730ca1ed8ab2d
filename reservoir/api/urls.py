from __future__ import annotations

from django.http import JsonResponse
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .sse import inventory_stream_view, stock_poll_view, stock_stream_view
from .views import AvailabilityViewSet, ReservationViewSet


def health_check(request):
    """
    Healthcheck endpoint para monitoramento.

    Returns:
        200 OK com {"status": "healthy", "version": "X.X.X"}
    """
    from reservoir import __version__

    return JsonResponse({
        "status": "healthy",
        "version": __version__,
    })


router = DefaultRouter(trailing_slash=False)
router.register("reservations", ReservationViewSet, basename="reservations")
router.register("availability", AvailabilityViewSet, basename="availability")

urlpatterns = [
    path("health", health_check, name="health-check"),
    path("stock/<str:sku>/stream", stock_stream_view, name="stock-stream"),
    path("stock/<str:sku>/poll", stock_poll_view, name="stock-poll"),
    path("inventory/stream", inventory_stream_view, name="inventory-stream"),
    path("", include(router.urls)),
]
