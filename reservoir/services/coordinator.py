"""
Reservation Coordinator — Reserve, release e confirm serializados por chave.

Ponto de serialização por chave (SKU + variante):
1. KeyedLock em processo (threads do mesmo worker)
2. select_for_update na linha ReservationKey, dentro de transaction.atomic
   (outros processos: web workers, worker do sweeper)

Nenhum IO de rede acontece com o ponto de serialização tomado:
- o total do ledger é lido antes do lock e revalidado pelo `ledger_version`
- o confirm roda em duas fases, com a baixa no ledger fora do lock
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import timedelta
from typing import Iterable, Iterator

from django.db import transaction
from django.utils import timezone

from ..availability import calculate_availability
from ..conf import confirm_grace, get_setting, hold_ttl, max_hold_ttl
from ..contrib.ledger import LedgerBackend, get_ledger_backend
from ..contrib.realtime import broadcast_availability, broadcast_reservation
from ..exceptions import (
    AlreadyTerminal,
    InsufficientStock,
    LedgerUnavailable,
    ReservationExpired,
    ReservationNotFound,
    ReservoirError,
    ValidationError,
)
from ..locks import KeyedLock, key_locks
from ..models import Reservation, ReservationKey
from ..types import Availability, ReleaseResult, StockCheckItem, StockCheckResult, StockKey
from .idempotency import IdempotencyService


logger = logging.getLogger(__name__)

# Tentativas de leitura do ledger antes de desistir por concorrência de baixas
LEDGER_SNAPSHOT_ATTEMPTS = 5


class _LedgerMoved(Exception):
    """O ledger mudou entre a leitura e o lock."""


class ReservationCoordinator:
    """
    Autoridade única sobre reservas.

    Uso:
        coordinator = ReservationCoordinator()
        reservation = coordinator.reserve("CAMISETA", quantity=2, holder_id="user:42", variant="P")
        coordinator.confirm(reservation.reservation_id)
    """

    def __init__(
        self,
        ledger: LedgerBackend | None = None,
        locks: KeyedLock | None = None,
        broadcast: bool = True,
    ):
        self.ledger = ledger if ledger is not None else get_ledger_backend()
        self.locks = locks if locks is not None else key_locks
        self.broadcast = broadcast

    # ------------------------------------------------------------------
    # Operações públicas
    # ------------------------------------------------------------------

    def reserve(
        self,
        sku: str,
        quantity: int,
        holder_id: str,
        variant: str | None = None,
        ttl: int | timedelta | None = None,
        idempotency_key: str | None = None,
    ) -> Reservation:
        """
        Reserva `quantity` unidades da chave, tudo ou nada.

        Args:
            sku: SKU do produto
            quantity: Quantidade (> 0)
            holder_id: Titular da reserva (usuário ou sessão)
            variant: Variante (None quando o produto não tem variantes)
            ttl: Janela da reserva em segundos ou timedelta (default HOLD_TTL_SECONDS)
            idempotency_key: Chave de idempotência opcional

        Returns:
            Reservation ativa

        Raises:
            ValidationError: Quantidade ou TTL inválidos
            InsufficientStock: Disponibilidade menor que a quantidade pedida
        """
        key = StockKey.of(sku, variant)
        quantity = self._validate_quantity(quantity)
        window = self._resolve_ttl(ttl)
        holder_id = str(holder_id or "")

        def operation() -> Reservation:
            return self._reserve(key, quantity, holder_id, window)

        if idempotency_key:
            return IdempotencyService.run(
                scope=f"reserve:{holder_id}"[:64],
                key=idempotency_key,
                operation=operation,
                encode=lambda r: {"reservation_id": r.reservation_id},
                decode=lambda body: self._load(body["reservation_id"]),
                response_code=201,
            )
        return operation()

    def release(
        self,
        reservation_id: str,
        quantity: int | None = None,
        idempotency_key: str | None = None,
        holder_id: str | None = None,
    ) -> ReleaseResult:
        """
        Libera a reserva inteira ou parte dela.

        Com `holder_id`, só o titular da reserva pode liberar; para os demais
        a reserva não existe.

        Raises:
            ReservationNotFound: Reserva desconhecida
            AlreadyTerminal: Reserva confirmada, liberada ou expirada
                (code="confirm_in_progress" com confirm em andamento)
        """
        if quantity is not None:
            quantity = self._validate_quantity(quantity)
        self._check_holder(reservation_id, holder_id)

        def operation() -> ReleaseResult:
            return self._release(reservation_id, quantity)

        if idempotency_key:
            return IdempotencyService.run(
                scope=f"release:{reservation_id}"[:64],
                key=idempotency_key,
                operation=operation,
                encode=lambda r: vars(r).copy(),
                decode=lambda body: ReleaseResult(**body),
            )
        return operation()

    def confirm(
        self,
        reservation_id: str,
        idempotency_key: str | None = None,
        reference: str | None = None,
        holder_id: str | None = None,
    ) -> Reservation:
        """
        Converte a reserva em baixa definitiva no ledger (checkout).

        A baixa usa o reservation_id como referência: repetir o confirm nunca
        baixa duas vezes.

        Raises:
            ReservationNotFound: Reserva desconhecida
            ReservationExpired: Prazo vencido (o pedido deve reservar de novo)
            AlreadyTerminal: Reserva já confirmada ou liberada
            LedgerUnavailable: Falha transitória no ledger (reserva continua ativa)
        """
        self._check_holder(reservation_id, holder_id)

        def operation() -> Reservation:
            return self._confirm(reservation_id, reference or "")

        if idempotency_key:
            return IdempotencyService.run(
                scope=f"confirm:{reservation_id}"[:64],
                key=idempotency_key,
                operation=operation,
                encode=lambda r: {"reservation_id": r.reservation_id},
                decode=lambda body: self._load(body["reservation_id"]),
            )
        return operation()

    def get_availability(self, sku: str, variant: str | None = None) -> Availability:
        key = StockKey.of(sku, variant)
        return self._with_ledger_total(key, lambda row, total: self._availability(key, total), create=False)

    def check_stock(self, items: Iterable[dict]) -> StockCheckResult:
        """
        Pré-flight de carrinho/checkout: não reserva nada.

        Quantidades da mesma chave no mesmo pedido são somadas para o veredito.

        Args:
            items: [{"sku": ..., "variant": ..., "quantity": ...}]
        """
        items = list(items)
        requested: dict[StockKey, int] = {}
        for item in items:
            key = StockKey.of(item["sku"], item.get("variant"))
            requested[key] = requested.get(key, 0) + self._validate_quantity(item.get("quantity"))

        known: dict[StockKey, bool] = {}
        availability: dict[StockKey, Availability] = {}
        for key in requested:

            def read(row, total, key=key):
                known[key] = total is not None
                return self._availability(key, total)

            availability[key] = self._with_ledger_total(key, read, create=False)

        details = []
        for item in items:
            key = StockKey.of(item["sku"], item.get("variant"))
            current = availability[key]
            ok = known[key] and requested[key] <= current.available_stock
            if not known[key]:
                message = "Produto não encontrado"
            elif ok:
                message = None
            elif current.is_out_of_stock:
                message = "Produto esgotado"
            else:
                message = f"Apenas {current.available_stock} unidade(s) disponível(is)"
            details.append(
                StockCheckItem(
                    sku=key.sku,
                    variant=key.variant,
                    requested_quantity=int(item["quantity"]),
                    available_stock=current.available_stock,
                    reserved_stock=current.reserved_stock,
                    available=ok,
                    message=message,
                )
            )

        return StockCheckResult(satisfiable=all(d.available for d in details), details=details)

    def adjust_stock(
        self,
        sku: str,
        variant: str | None = None,
        *,
        total: int | None = None,
        delta: int | None = None,
        reason: str = "",
    ) -> Availability:
        """
        Ajuste administrativo do total no ledger.

        Recusa totais abaixo do que já está reservado (disponibilidade nunca negativa).

        Raises:
            ValidationError: Parâmetros inválidos ou ledger sem suporte a ajuste
            InsufficientStock: Novo total menor que o reservado
        """
        if (total is None) == (delta is None):
            raise ValidationError(
                code="invalid_adjustment",
                message="Informe exatamente um entre total e delta",
            )
        if not hasattr(self.ledger, "set_total_stock"):
            raise ValidationError(
                code="invalid_adjustment",
                message=f"Ledger {type(self.ledger).__name__} não suporta ajuste",
            )

        key = StockKey.of(sku, variant)

        def apply(row: ReservationKey, current: int | None) -> Availability:
            new_total = int(total) if total is not None else (current or 0) + int(delta)
            reserved = Reservation.objects.for_key(key).active().reserved_quantity()
            if new_total < 0:
                raise ValidationError(
                    code="invalid_adjustment",
                    message="Estoque total não pode ser negativo",
                    context={"sku": key.sku, "variant": key.variant, "total": new_total},
                )
            if new_total < reserved:
                raise InsufficientStock(
                    message=f"{reserved} unidade(s) reservada(s), total {new_total} recusado",
                    context={"sku": key.sku, "variant": key.variant, "reserved_stock": reserved},
                )
            self.ledger.set_total_stock(key, new_total, reason=reason)
            self._bump_ledger_version(row)
            after = self._availability(key, new_total)
            self._publish_after_commit(after, reason="adjusted")
            return after

        availability = self._with_ledger_total(key, apply)
        logger.info(f"Stock adjusted: {key} total={availability.total_stock} ({reason or '-'})")
        return availability

    def list_reservations(self, holder_id: str, active_only: bool = True):
        qs = Reservation.objects.filter(holder_id=holder_id)
        if active_only:
            qs = qs.active()
        return qs.order_by("-created_at", "-id")

    def expire_overdue(self, sku: str, variant: str | None = None, now=None) -> int:
        """
        Expira as reservas vencidas da chave (usado pelo sweeper).

        Reservas com confirm em andamento só expiram depois do prazo de graça.

        Returns:
            Número de reservas expiradas
        """
        key = StockKey.of(sku, variant)
        now = now or timezone.now()
        grace_cutoff = now - confirm_grace()

        def expire(row: ReservationKey, total: int | None) -> int:
            overdue = list(
                Reservation.objects.select_for_update()
                .for_key(key)
                .active()
                .filter(expires_at__lt=now)
            )
            expired = 0
            for reservation in overdue:
                if reservation.confirming_since and reservation.confirming_since >= grace_cutoff:
                    continue
                if reservation.confirming_since:
                    logger.warning(f"Reaping stuck confirm: {reservation.reservation_id}")
                reservation.mark_expired(now)
                self._publish_reservation_after_commit(reservation)
                expired += 1
            if expired:
                self._publish_after_commit(self._availability(key, total), reason="expired")
            return expired

        return self._with_ledger_total(key, expire, create=False)

    # ------------------------------------------------------------------
    # Internos
    # ------------------------------------------------------------------

    def _reserve(self, key: StockKey, quantity: int, holder_id: str, window: timedelta) -> Reservation:
        def create(row: ReservationKey, total: int | None) -> Reservation:
            current = self._availability(key, total)
            if total is None or quantity > current.available_stock:
                raise InsufficientStock(
                    message=self._shortage_message(total, current),
                    context={
                        "sku": key.sku,
                        "variant": key.variant,
                        "requested": quantity,
                        "available_stock": current.available_stock,
                    },
                )
            now = timezone.now()
            reservation = Reservation.objects.create(
                sku=key.sku,
                variant=key.variant,
                holder_id=holder_id,
                quantity=quantity,
                original_quantity=quantity,
                created_at=now,
                expires_at=now + window,
            )
            self._publish_reservation_after_commit(reservation)
            self._publish_after_commit(self._availability(key, total), reason="reserved")
            return reservation

        try:
            reservation = self._with_ledger_total(key, create)
        except InsufficientStock as e:
            logger.warning(f"Reserve refused: {key} x{quantity} ({e.message})")
            raise

        logger.info(
            f"Reserved {reservation.reservation_id}: {key} x{quantity} "
            f"holder={holder_id} until {reservation.expires_at.isoformat()}"
        )
        return reservation

    def _release(self, reservation_id: str, quantity: int | None) -> ReleaseResult:
        key = self._key_of(reservation_id)
        outcome: dict = {}

        def apply(row: ReservationKey, total: int | None) -> None:
            reservation = self._locked(reservation_id)
            now = timezone.now()

            if reservation.is_terminal:
                outcome["error"] = AlreadyTerminal(
                    code=reservation.status,
                    message=f"Reserva já {reservation.get_status_display()}",
                    context={"reservation_id": reservation_id, "status": reservation.status},
                )
                return
            if reservation.confirming_since and reservation.confirming_since >= now - confirm_grace():
                outcome["error"] = AlreadyTerminal(
                    code="confirm_in_progress",
                    message="Confirmação em andamento para esta reserva",
                    context={"reservation_id": reservation_id},
                )
                return
            if reservation.is_past_deadline(now):
                # Expira na hora; a capacidade volta e a transação precisa commitar
                reservation.mark_expired(now)
                self._publish_reservation_after_commit(reservation)
                self._publish_after_commit(self._availability(key, total), reason="expired")
                outcome["error"] = AlreadyTerminal(
                    code="expired",
                    message="Reserva expirada",
                    context={"reservation_id": reservation_id},
                )
                return

            amount = reservation.quantity if quantity is None else min(quantity, reservation.quantity)
            reservation.released_quantity += amount
            reservation.confirming_since = None
            if amount >= reservation.quantity:
                reservation.status = Reservation.Status.RELEASED
                reservation.released_at = now
            else:
                reservation.quantity -= amount
            reservation.save(
                update_fields=[
                    "quantity",
                    "released_quantity",
                    "status",
                    "released_at",
                    "confirming_since",
                    "updated_at",
                ]
            )
            self._publish_reservation_after_commit(reservation)
            self._publish_after_commit(self._availability(key, total), reason="released")
            outcome["result"] = ReleaseResult(
                reservation_id=reservation_id,
                released_quantity=amount,
                remaining_quantity=0 if reservation.is_terminal else reservation.quantity,
                status=reservation.status,
            )

        self._with_ledger_total(key, apply)

        if "error" in outcome:
            logger.warning(f"Release refused: {reservation_id} ({outcome['error'].code})")
            raise outcome["error"]

        result = outcome["result"]
        logger.info(f"Released {reservation_id}: x{result.released_quantity} (status={result.status})")
        return result

    def _confirm(self, reservation_id: str, reference: str) -> Reservation:
        key = self._key_of(reservation_id)
        outcome: dict = {}

        # Fase 1: valida e marca confirming_since
        def begin(row: ReservationKey, total: int | None) -> None:
            reservation = self._locked(reservation_id)
            now = timezone.now()

            if reservation.status == Reservation.Status.EXPIRED:
                outcome["error"] = ReservationExpired(
                    message="Reserva expirada, reserve novamente",
                    context={"reservation_id": reservation_id},
                )
                return
            if reservation.is_terminal:
                outcome["error"] = AlreadyTerminal(
                    code=reservation.status,
                    message=f"Reserva já {reservation.get_status_display()}",
                    context={"reservation_id": reservation_id, "status": reservation.status},
                )
                return
            # Marcação vencida (worker caiu) vale como ausente: o sweeper já pode expirar
            in_flight = (
                reservation.confirming_since is not None
                and reservation.confirming_since >= now - confirm_grace()
            )
            if not in_flight and reservation.is_past_deadline(now):
                reservation.mark_expired(now)
                self._publish_reservation_after_commit(reservation)
                self._publish_after_commit(self._availability(key, total), reason="expired")
                outcome["error"] = ReservationExpired(
                    message="Reserva expirada, reserve novamente",
                    context={"reservation_id": reservation_id},
                )
                return

            # Um confirm repetido reaproveita a marcação: a baixa é idempotente por referência
            if not in_flight:
                reservation.confirming_since = now
                reservation.save(update_fields=["confirming_since", "updated_at"])
            outcome["marker"] = reservation.confirming_since
            outcome["quantity"] = reservation.quantity

        self._with_ledger_total(key, begin)

        if "error" in outcome:
            logger.warning(f"Confirm refused: {reservation_id} ({outcome['error'].code})")
            raise outcome["error"]

        # Fase 2: baixa no ledger, fora do lock
        try:
            self.ledger.decrement_stock(key, outcome["quantity"], reference=reservation_id)
        except ReservoirError:
            self._abort_confirm(key, reservation_id, outcome["marker"])
            raise
        except Exception as e:
            self._abort_confirm(key, reservation_id, outcome["marker"])
            logger.exception(f"Unexpected ledger error confirming {reservation_id}: {e}")
            raise LedgerUnavailable(
                message="Falha ao registrar baixa no ledger",
                context={"reservation_id": reservation_id},
            ) from e

        # Fase 3: marca confirmada
        def finish(row: ReservationKey, total: int | None) -> Reservation:
            reservation = self._locked(reservation_id)
            if reservation.status == Reservation.Status.CONFIRMED:
                return reservation
            if reservation.status != Reservation.Status.ACTIVE:
                # Reserva recolhida durante a fase 2: a capacidade já voltou para outros
                outcome["error"] = ReservationExpired(
                    message="Reserva expirou durante a confirmação, reserve novamente",
                    context={"reservation_id": reservation_id, "status": reservation.status},
                )
                return reservation
            now = timezone.now()
            reservation.status = Reservation.Status.CONFIRMED
            reservation.confirmed_at = now
            reservation.confirming_since = None
            reservation.reference = reference[:128]
            reservation.save(
                update_fields=["status", "confirmed_at", "confirming_since", "reference", "updated_at"]
            )
            self._bump_ledger_version(row)
            self._publish_reservation_after_commit(reservation)
            # `total` foi lido depois da baixa da fase 2
            self._publish_after_commit(self._availability(key, total), reason="confirmed")
            return reservation

        reservation = self._with_ledger_total(key, finish)

        if "error" in outcome:
            logger.error(f"Confirm landed after {reservation.status}: {reservation_id}, returning stock")
            self._restore_ledger(key, outcome["quantity"], reservation_id)
            raise outcome["error"]

        logger.info(f"Confirmed {reservation_id}: {key} x{reservation.quantity}")
        return reservation

    def _abort_confirm(self, key: StockKey, reservation_id: str, marker) -> None:
        """Desfaz a marcação da fase 1; a reserva continua ativa."""
        with self._serialized(key):
            Reservation.objects.filter(
                reservation_id=reservation_id,
                status=Reservation.Status.ACTIVE,
                confirming_since=marker,
            ).update(confirming_since=None, updated_at=timezone.now())
        logger.warning(f"Confirm aborted: {reservation_id}, reservation kept active")

    def _restore_ledger(self, key: StockKey, quantity: int, reservation_id: str) -> None:
        """Devolve ao ledger uma baixa que não virou confirmação."""
        if not hasattr(self.ledger, "restore_stock"):
            logger.error(
                f"Ledger {type(self.ledger).__name__} cannot restore stock: "
                f"reverse {reservation_id} ({key} x{quantity}) manually"
            )
            return
        try:
            self.ledger.restore_stock(key, quantity, reference=reservation_id)
        except Exception:
            logger.exception(f"Failed to restore stock for {reservation_id} ({key} x{quantity})")
            return

        def settle(row: ReservationKey, total: int | None) -> None:
            self._bump_ledger_version(row)
            self._publish_after_commit(self._availability(key, total), reason="restored")

        self._with_ledger_total(key, settle)

    @contextmanager
    def _serialized(
        self,
        key: StockKey,
        expected_version: int | None = None,
        create: bool = True,
    ) -> Iterator[ReservationKey | None]:
        """
        Ponto de serialização da chave.

        Com `create=False` (leituras) a linha não é criada: chave sem linha
        não tem reservas, e o bloco recebe None.
        """
        with self.locks.hold(key):
            with transaction.atomic():
                locked = ReservationKey.objects.select_for_update()
                if create:
                    row, _created = locked.get_or_create(sku=key.sku, variant=key.variant)
                else:
                    row = locked.filter(sku=key.sku, variant=key.variant).first()
                current = row.ledger_version if row is not None else 0
                if expected_version is not None and current != expected_version:
                    raise _LedgerMoved()
                yield row

    def _with_ledger_total(self, key: StockKey, fn, create: bool = True):
        """
        Lê o total do ledger fora do lock e executa `fn(row, total)` serializado.

        Se uma baixa ou ajuste mudou o ledger entre a leitura e o lock, lê de novo.
        """
        for _attempt in range(LEDGER_SNAPSHOT_ATTEMPTS):
            version = self._ledger_version(key)
            total = self.ledger.get_total_stock(key)
            try:
                with self._serialized(key, expected_version=version, create=create) as row:
                    return fn(row, total)
            except _LedgerMoved:
                continue
        raise LedgerUnavailable(
            code="ledger_contended",
            message="Ledger em alteração contínua, tente novamente",
            context={"sku": key.sku, "variant": key.variant},
        )

    def _ledger_version(self, key: StockKey) -> int:
        version = (
            ReservationKey.objects.filter(sku=key.sku, variant=key.variant)
            .values_list("ledger_version", flat=True)
            .first()
        )
        return version or 0

    def _bump_ledger_version(self, row: ReservationKey) -> None:
        row.ledger_version += 1
        row.save(update_fields=["ledger_version"])

    def _availability(self, key: StockKey, total: int | None) -> Availability:
        active = Reservation.objects.for_key(key).active().values_list("quantity", flat=True)
        return calculate_availability(
            key,
            total_stock=total or 0,
            active_quantities=active,
            low_stock_threshold=int(get_setting("LOW_STOCK_THRESHOLD")),
        )

    def _key_of(self, reservation_id: str) -> StockKey:
        # sku/variant nunca mudam: a chave pode ser lida antes do lock
        row = Reservation.objects.filter(reservation_id=reservation_id).values_list("sku", "variant").first()
        if row is None:
            raise ReservationNotFound(
                message=f"Reserva não encontrada: {reservation_id}",
                context={"reservation_id": reservation_id},
            )
        return StockKey.of(*row)

    def _check_holder(self, reservation_id: str, holder_id: str | None) -> None:
        # Titular nunca muda: checado antes do replay de idempotência
        if holder_id is None:
            return
        if not Reservation.objects.filter(reservation_id=reservation_id, holder_id=holder_id).exists():
            raise ReservationNotFound(
                message=f"Reserva não encontrada: {reservation_id}",
                context={"reservation_id": reservation_id},
            )

    def _locked(self, reservation_id: str) -> Reservation:
        try:
            return Reservation.objects.select_for_update().get(reservation_id=reservation_id)
        except Reservation.DoesNotExist:
            raise ReservationNotFound(
                message=f"Reserva não encontrada: {reservation_id}",
                context={"reservation_id": reservation_id},
            ) from None

    def _load(self, reservation_id: str) -> Reservation:
        try:
            return Reservation.objects.get(reservation_id=reservation_id)
        except Reservation.DoesNotExist:
            raise ReservationNotFound(
                message=f"Reserva não encontrada: {reservation_id}",
                context={"reservation_id": reservation_id},
            ) from None

    def _publish_after_commit(self, availability: Availability, *, reason: str) -> None:
        if self.broadcast:
            transaction.on_commit(lambda: broadcast_availability(availability, reason=reason))

    def _publish_reservation_after_commit(self, reservation: Reservation) -> None:
        if self.broadcast:
            snapshot = Reservation(
                reservation_id=reservation.reservation_id,
                sku=reservation.sku,
                variant=reservation.variant,
                status=reservation.status,
                quantity=reservation.quantity,
            )
            transaction.on_commit(lambda: broadcast_reservation(snapshot))

    @staticmethod
    def _validate_quantity(quantity) -> int:
        try:
            value = int(quantity)
        except (TypeError, ValueError):
            value = 0
        if isinstance(quantity, (bool, float)) or value <= 0:
            raise ValidationError(
                code="invalid_qty",
                message="Quantidade deve ser um inteiro maior que zero",
                context={"quantity": quantity},
            )
        return value

    @staticmethod
    def _resolve_ttl(ttl) -> timedelta:
        if ttl is None:
            window = hold_ttl()
        elif isinstance(ttl, timedelta):
            window = ttl
        else:
            try:
                window = timedelta(seconds=int(ttl))
            except (TypeError, ValueError):
                window = timedelta(0)
        if window <= timedelta(0):
            raise ValidationError(
                code="invalid_ttl",
                message="TTL deve ser maior que zero",
                context={"ttl": str(ttl)},
            )
        return min(window, max_hold_ttl())

    @staticmethod
    def _shortage_message(total: int | None, current: Availability) -> str:
        if total is None:
            return "Produto não encontrado no estoque"
        if current.is_out_of_stock:
            return "Produto esgotado"
        return f"Apenas {current.available_stock} unidade(s) disponível(is)"
