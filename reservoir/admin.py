from __future__ import annotations

import logging

from django import forms
from django.contrib import admin
from django.http import HttpResponseRedirect
from django.urls import reverse
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin
from unfold.contrib.filters.admin.choice_filters import ChoicesRadioFilter
from unfold.decorators import action, display

from .exceptions import ReservoirError
from .models import IdempotencyKey, Reservation, StockMovement, StockRecord
from .services import ExpirySweeper, ReservationCoordinator
from .types import StockKey


logger = logging.getLogger(__name__)


def history_action(modeladmin, request, object_id):
    """Action que redireciona para o histórico do objeto."""
    url = reverse(
        f"admin:{modeladmin.model._meta.app_label}_{modeladmin.model._meta.model_name}_history",
        args=[object_id],
    )
    return HttpResponseRedirect(url)


def _actor(request) -> str:
    return getattr(getattr(request, "user", None), "username", None) or "admin"


class StockRecordForm(forms.ModelForm):
    class Meta:
        model = StockRecord
        fields = ("sku", "variant", "total_stock")

    def clean(self):
        cleaned = super().clean()
        sku = cleaned.get("sku") or self.instance.sku
        variant = cleaned.get("variant", self.instance.variant)
        total = cleaned.get("total_stock")
        if sku and total is not None:
            key = StockKey.of(sku, variant)
            reserved = Reservation.objects.for_key(key).active().reserved_quantity()
            if total < reserved:
                raise forms.ValidationError(
                    _("Há %(n)s unidade(s) reservada(s); o total não pode ficar abaixo disso.") % {"n": reserved}
                )
        return cleaned


@admin.register(StockRecord)
class StockRecordAdmin(ModelAdmin):
    form = StockRecordForm
    list_display = ("sku", "variant", "total_stock", "reserved_display", "available_display", "updated_at")
    search_fields = ("sku", "variant")
    ordering = ("sku", "variant")
    list_fullwidth = True
    compressed_fields = True
    warn_unsaved_form = True

    actions_detail = ["history_detail_action"]

    @action(description=_("Histórico"), url_path="history-action", icon="history")
    def history_detail_action(self, request, object_id):
        return history_action(self, request, object_id)

    def get_readonly_fields(self, request, obj=None):
        # Identidade da chave não muda depois de criada
        return ("sku", "variant") if obj else ()

    def save_model(self, request, obj, form, change):
        """Ajustes passam pelo coordinator: serialização por chave, movimento e broadcast."""
        try:
            ReservationCoordinator().adjust_stock(
                obj.sku,
                obj.variant,
                total=obj.total_stock,
                reason=f"admin:{_actor(request)}",
            )
        except ReservoirError as e:
            logger.warning("Admin stock adjustment refused: %s", e.message)
            self.message_user(request, e.message, level="error")
            return
        saved = StockRecord.objects.get(sku=obj.sku, variant=obj.variant)
        obj.pk = saved.pk
        obj.updated_at = saved.updated_at

    @display(description=_("reservado"))
    def reserved_display(self, obj: StockRecord) -> int:
        return Reservation.objects.for_key(obj.key).active().reserved_quantity()

    @display(description=_("disponível"))
    def available_display(self, obj: StockRecord) -> int:
        return max(obj.total_stock - self.reserved_display(obj), 0)


@admin.register(StockMovement)
class StockMovementAdmin(ModelAdmin):
    list_display = ("sku", "variant", "kind_badge", "delta", "balance", "reference", "reason", "created_at")
    list_filter = (("kind", ChoicesRadioFilter),)
    search_fields = ("sku", "reference", "reason")
    ordering = ("-created_at", "-id")
    date_hierarchy = "created_at"
    list_fullwidth = True
    readonly_fields = ("sku", "variant", "kind", "delta", "balance", "reference", "reason", "created_at")

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @display(description=_("tipo"), label={"baixa por confirmação": "info", "ajuste": "warning"})
    def kind_badge(self, obj: StockMovement) -> str:
        return obj.get_kind_display()


@admin.register(Reservation)
class ReservationAdmin(ModelAdmin):
    list_display = (
        "reservation_id",
        "sku",
        "variant",
        "holder_id",
        "quantity",
        "status_badge",
        "expires_at",
        "created_at",
    )
    list_filter = (("status", ChoicesRadioFilter), "sku")
    search_fields = ("reservation_id", "sku", "holder_id", "reference")
    ordering = ("-created_at", "-id")
    date_hierarchy = "created_at"
    list_filter_submit = True
    list_fullwidth = True
    compressed_fields = True

    actions = ["release_action"]
    actions_list = ["sweep_now_action"]
    actions_detail = ["history_detail_action"]

    fieldsets = (
        (
            _("Reserva"),
            {"fields": ("reservation_id", "sku", "variant", "holder_id", "status", "reference"), "classes": ("tab",)},
        ),
        (
            _("Quantidades"),
            {"fields": ("quantity", "original_quantity", "released_quantity"), "classes": ("tab",)},
        ),
        (
            _("Prazos"),
            {
                "fields": (
                    "created_at",
                    "expires_at",
                    "confirming_since",
                    "confirmed_at",
                    "released_at",
                    "expired_at",
                    "updated_at",
                ),
                "classes": ("tab",),
            },
        ),
    )
    # Reservas só mudam pelo coordinator (API, actions) ou pelo sweeper
    readonly_fields = (
        "reservation_id",
        "sku",
        "variant",
        "holder_id",
        "status",
        "reference",
        "quantity",
        "original_quantity",
        "released_quantity",
        "created_at",
        "expires_at",
        "confirming_since",
        "confirmed_at",
        "released_at",
        "expired_at",
        "updated_at",
    )

    def has_add_permission(self, request):
        return False

    @action(description=_("Histórico"), url_path="history-action", icon="history")
    def history_detail_action(self, request, object_id):
        return history_action(self, request, object_id)

    @action(description=_("Varrer expiradas agora"), url_path="sweep-now", icon="cleaning_services")
    def sweep_now_action(self, request):
        result = ExpirySweeper().sweep()
        self.message_user(
            request,
            _("Reservas expiradas: %(expired)s, removidas: %(purged)s")
            % {"expired": result.expired, "purged": result.purged},
        )
        if result.failed_keys:
            self.message_user(
                request,
                _("Chaves com erro: %(keys)s") % {"keys": ", ".join(result.failed_keys)},
                level="error",
            )
        return HttpResponseRedirect(reverse("admin:reservoir_reservation_changelist"))

    @admin.action(description=_("Liberar reservas selecionadas"))
    def release_action(self, request, queryset):
        coordinator = ReservationCoordinator()
        ok_count = 0
        fail_count = 0
        for reservation_id in queryset.active().values_list("reservation_id", flat=True):
            try:
                coordinator.release(reservation_id)
                ok_count += 1
            except ReservoirError as e:
                logger.warning("Admin release failed for %s: %s", reservation_id, e.code)
                fail_count += 1

        if ok_count:
            self.message_user(request, _("Reservas liberadas: %(n)s") % {"n": ok_count})
        if fail_count:
            self.message_user(request, _("Reservas não liberadas: %(n)s") % {"n": fail_count}, level="error")

    @display(
        description=_("status"),
        label={"ativa": "info", "confirmada": "success", "liberada": "warning", "expirada": "danger"},
    )
    def status_badge(self, obj: Reservation) -> str:
        return obj.get_status_display()


@admin.register(IdempotencyKey)
class IdempotencyKeyAdmin(ModelAdmin):
    list_display = (
        "scope",
        "key",
        "operation",
        "status_badge",
        "response_code",
        "expires_at",
        "created_at",
    )
    list_filter = (("status", ChoicesRadioFilter), ("operation", ChoicesRadioFilter))
    search_fields = ("scope", "key")
    ordering = ("-created_at",)
    list_fullwidth = True
    readonly_fields = ("scope", "key", "operation", "status", "response_code", "response_body", "expires_at", "created_at")

    def has_add_permission(self, request):
        return False

    @display(
        description=_("status"),
        label={"em andamento": "warning", "concluído": "success", "falhou": "danger"},
    )
    def status_badge(self, obj: IdempotencyKey) -> str:
        return obj.get_status_display()
