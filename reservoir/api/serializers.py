from __future__ import annotations

from rest_framework import serializers

from reservoir.models import Reservation


class ReservationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Reservation
        fields = (
            "reservation_id",
            "sku",
            "variant",
            "holder_id",
            "quantity",
            "original_quantity",
            "released_quantity",
            "status",
            "reference",
            "created_at",
            "expires_at",
            "confirmed_at",
            "released_at",
            "expired_at",
        )
        read_only_fields = fields


class ReserveSerializer(serializers.Serializer):
    """
    POST /api/reservations/reserve

    `holder_id` omitido: usa o usuário autenticado ou a sessão.
    """

    sku = serializers.CharField(allow_blank=False, max_length=64)
    variant = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=64)
    quantity = serializers.IntegerField(min_value=1)
    holder_id = serializers.CharField(required=False, allow_blank=False, max_length=128)
    ttl_seconds = serializers.IntegerField(required=False, min_value=1)
    idempotency_key = serializers.CharField(required=False, allow_blank=False, max_length=128)


class ReleaseSerializer(serializers.Serializer):
    """
    POST /api/reservations/release

    Sem `quantity` libera a reserva inteira.
    """

    reservation_id = serializers.CharField(allow_blank=False, max_length=32)
    quantity = serializers.IntegerField(required=False, min_value=1)
    idempotency_key = serializers.CharField(required=False, allow_blank=False, max_length=128)


class ConfirmSerializer(serializers.Serializer):
    """
    POST /api/reservations/confirm
    """

    reservation_id = serializers.CharField(allow_blank=False, max_length=32)
    idempotency_key = serializers.CharField(required=False, allow_blank=False, max_length=128)
    reference = serializers.CharField(required=False, allow_blank=True, max_length=128)


class StockCheckItemSerializer(serializers.Serializer):
    sku = serializers.CharField(allow_blank=False, max_length=64)
    variant = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=64)
    quantity = serializers.IntegerField(min_value=1)


class StockCheckSerializer(serializers.Serializer):
    """
    POST /api/reservations/check-stock
    """

    items = serializers.ListField(child=StockCheckItemSerializer(), allow_empty=False)
