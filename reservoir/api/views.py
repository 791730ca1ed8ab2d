"""
Reservoir API Views — Endpoints REST de reservas e disponibilidade.

Erros de domínio viram respostas {"code", "message", "context"} com o
status HTTP declarado na exceção (409 sem estoque, 410 expirada, 503 ledger...).

Configuração de Throttling:
    Configure em settings.py:

    REST_FRAMEWORK = {
        'DEFAULT_THROTTLE_RATES': {
            'anon': '100/hour',
            'user': '1000/hour',
            'reservoir_reserve': '120/minute',  # reserve/release
            'reservoir_confirm': '60/minute',   # confirm
        }
    }
"""

from __future__ import annotations

import logging

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle, UserRateThrottle

from reservoir.conf import get_setting
from reservoir.exceptions import ReservoirError, ValidationError
from reservoir.services import ExpirySweeper, ReservationCoordinator
from reservoir.types import Availability

from .serializers import (
    ConfirmSerializer,
    ReleaseSerializer,
    ReservationSerializer,
    ReserveSerializer,
    StockCheckSerializer,
)


logger = logging.getLogger(__name__)


def _get_actor(request) -> str:
    """Extrai username do request ou retorna 'api' como fallback."""
    user = getattr(request, "user", None)
    return getattr(user, "username", None) or "api"


def resolve_holder(request, explicit: str | None = None) -> str:
    """
    Titular da reserva: explícito, usuário autenticado ou sessão (nessa ordem).
    """
    if explicit:
        return explicit
    user = getattr(request, "user", None)
    if user is not None and user.is_authenticated:
        return f"user:{user.pk}"
    session = getattr(request, "session", None)
    if session is not None:
        if not session.session_key:
            session.save()
        return f"session:{session.session_key}"
    return "anonymous"


def acting_holder(request) -> str | None:
    """Titular que restringe release/confirm; staff age sobre qualquer reserva."""
    user = getattr(request, "user", None)
    if user is not None and user.is_staff:
        return None
    return resolve_holder(request)


def availability_payload(availability: Availability) -> dict:
    data = availability.as_dict()
    data["variant"] = availability.variant or None
    return data


def error_response(e: ReservoirError) -> Response:
    return Response(e.as_dict(), status=e.http_status)


def invalid_response(serializer) -> Response:
    """Erros de serializer no mesmo formato das exceções de domínio."""
    errors = serializer.errors
    if "quantity" in errors:
        code = "invalid_qty"
    elif "ttl_seconds" in errors:
        code = "invalid_ttl"
    else:
        code = "invalid_request"
    return error_response(ValidationError(code=code, message="Dados inválidos", context={"errors": errors}))


class ReserveRateThrottle(UserRateThrottle):
    """
    Throttle para reserve/release.

    Configure via 'reservoir_reserve' em DEFAULT_THROTTLE_RATES.
    """

    scope = "reservoir_reserve"


class ConfirmRateThrottle(UserRateThrottle):
    """
    Throttle para confirm (checkout).

    Configure via 'reservoir_confirm' em DEFAULT_THROTTLE_RATES.
    """

    scope = "reservoir_confirm"


class ReservationViewSet(viewsets.GenericViewSet):
    """
    ViewSet de reservas.

    Endpoints:
        POST /api/reservations/reserve - Reserva N unidades (201 | 409)
        POST /api/reservations/release - Libera total ou parcial (200 | 404 | 409 | 410)
        POST /api/reservations/confirm - Converte em baixa no ledger (200 | 404 | 410 | 503)
        POST /api/reservations/check-stock - Pré-flight sem reservar
        GET  /api/reservations/mine - Reservas ativas do titular
        POST /api/reservations/sweep - Ciclo manual do sweeper (staff)

    Notas:
        - reserve/release/confirm são idempotentes via idempotency_key
        - Quem perde a corrida pela última unidade recebe 409 insufficient_stock
        - release/confirm só agem sobre reservas do próprio titular (staff: qualquer uma)
    """

    serializer_class = ReservationSerializer
    throttle_classes = [AnonRateThrottle, UserRateThrottle]

    def get_permissions(self):
        setting = "ADMIN_PERMISSION_CLASSES" if self.action == "sweep" else "DEFAULT_PERMISSION_CLASSES"
        return [permission() for permission in get_setting(setting)]

    def get_coordinator(self) -> ReservationCoordinator:
        return ReservationCoordinator()

    @action(detail=False, methods=["post"], url_path="reserve", throttle_classes=[ReserveRateThrottle])
    def reserve(self, request, *args, **kwargs):
        """
        Reserva unidades de um SKU.

        Returns:
            201: Reserva criada (com a disponibilidade resultante)
            400: Dados inválidos
            409: Estoque insuficiente
        """
        s = ReserveSerializer(data=request.data)
        if not s.is_valid():
            return invalid_response(s)
        data = s.validated_data
        # holder_id explícito só vale para staff (reserva em nome de outro titular)
        explicit = data.get("holder_id") if request.user.is_staff else None
        holder_id = resolve_holder(request, explicit)
        coordinator = self.get_coordinator()

        try:
            reservation = coordinator.reserve(
                sku=data["sku"],
                variant=data.get("variant"),
                quantity=data["quantity"],
                holder_id=holder_id,
                ttl=data.get("ttl_seconds"),
                idempotency_key=data.get("idempotency_key"),
            )
            availability = coordinator.get_availability(reservation.sku, reservation.variant)
        except ReservoirError as e:
            logger.warning(
                "Reserve failed",
                extra={
                    "sku": data["sku"],
                    "variant": data.get("variant"),
                    "quantity": data["quantity"],
                    "error_code": e.code,
                    "actor": _get_actor(request),
                },
            )
            return error_response(e)

        logger.info(
            "Reserve successful",
            extra={"reservation_id": reservation.reservation_id, "holder_id": holder_id},
        )
        body = {**ReservationSerializer(reservation).data, **availability_payload(availability)}
        return Response(body, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"], url_path="release", throttle_classes=[ReserveRateThrottle])
    def release(self, request, *args, **kwargs):
        s = ReleaseSerializer(data=request.data)
        if not s.is_valid():
            return invalid_response(s)
        data = s.validated_data
        coordinator = self.get_coordinator()

        try:
            result = coordinator.release(
                data["reservation_id"],
                quantity=data.get("quantity"),
                idempotency_key=data.get("idempotency_key"),
                holder_id=acting_holder(request),
            )
        except ReservoirError as e:
            logger.warning(
                "Release failed",
                extra={"reservation_id": data["reservation_id"], "error_code": e.code},
            )
            return error_response(e)

        return Response(vars(result).copy(), status=status.HTTP_200_OK)

    @action(detail=False, methods=["post"], url_path="confirm", throttle_classes=[ConfirmRateThrottle])
    def confirm(self, request, *args, **kwargs):
        """
        Confirma a reserva (checkout): baixa definitiva no ledger.

        Returns:
            200: Confirmada
            404: Reserva desconhecida
            410: Reserva expirada ou já terminal
            503: Ledger indisponível (reserva continua ativa, repita)
        """
        s = ConfirmSerializer(data=request.data)
        if not s.is_valid():
            return invalid_response(s)
        data = s.validated_data
        coordinator = self.get_coordinator()

        logger.info(
            "Confirm requested",
            extra={
                "reservation_id": data["reservation_id"],
                "idempotency_key": data.get("idempotency_key"),
                "actor": _get_actor(request),
            },
        )

        try:
            reservation = coordinator.confirm(
                data["reservation_id"],
                idempotency_key=data.get("idempotency_key"),
                reference=data.get("reference"),
                holder_id=acting_holder(request),
            )
        except ReservoirError as e:
            logger.warning(
                "Confirm failed",
                extra={"reservation_id": data["reservation_id"], "error_code": e.code},
            )
            return error_response(e)

        return Response(ReservationSerializer(reservation).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["post"], url_path="check-stock")
    def check_stock(self, request, *args, **kwargs):
        s = StockCheckSerializer(data=request.data)
        if not s.is_valid():
            return invalid_response(s)
        try:
            result = self.get_coordinator().check_stock(s.validated_data["items"])
        except ReservoirError as e:
            return error_response(e)
        return Response(result.as_dict(), status=status.HTTP_200_OK)

    @action(detail=False, methods=["get"], url_path="mine")
    def mine(self, request, *args, **kwargs):
        """Reservas do titular. `?all=1` inclui as terminais ainda retidas."""
        explicit = request.query_params.get("holder_id") if request.user.is_staff else None
        holder_id = resolve_holder(request, explicit)
        active_only = request.query_params.get("all") not in ("1", "true")
        qs = self.get_coordinator().list_reservations(holder_id, active_only=active_only)
        return Response(
            {"holder_id": holder_id, "reservations": ReservationSerializer(qs, many=True).data},
            status=status.HTTP_200_OK,
        )

    @action(detail=False, methods=["post"], url_path="sweep")
    def sweep(self, request, *args, **kwargs):
        result = ExpirySweeper(self.get_coordinator()).sweep()
        logger.info("Manual sweep", extra={"actor": _get_actor(request), **result.as_dict()})
        return Response(result.as_dict(), status=status.HTTP_200_OK)


class AvailabilityViewSet(viewsets.ViewSet):
    """
    GET /api/availability/{sku}?variant=X - Disponibilidade atual da chave
    """

    lookup_field = "sku"
    lookup_value_regex = "[^/]+"
    throttle_classes = [AnonRateThrottle, UserRateThrottle]

    def get_permissions(self):
        return [permission() for permission in get_setting("DEFAULT_PERMISSION_CLASSES")]

    def retrieve(self, request, sku=None):
        try:
            availability = ReservationCoordinator().get_availability(sku, request.query_params.get("variant"))
        except ReservoirError as e:
            return error_response(e)
        return Response(availability_payload(availability), status=status.HTTP_200_OK)
