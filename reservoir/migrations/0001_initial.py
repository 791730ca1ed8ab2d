from __future__ import annotations

import django.utils.timezone
from django.db import migrations, models

import reservoir.ids


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="IdempotencyKey",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("scope", models.CharField(max_length=64, verbose_name="escopo")),
                ("key", models.CharField(max_length=128, verbose_name="chave")),
                (
                    "operation",
                    models.CharField(
                        choices=[
                            ("reserve", "reserva"),
                            ("release", "liberação"),
                            ("confirm", "confirmação"),
                            ("other", "outra"),
                        ],
                        default="other",
                        editable=False,
                        max_length=16,
                        verbose_name="operação",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("in_progress", "em andamento"), ("done", "concluído"), ("failed", "falhou")],
                        default="in_progress",
                        max_length=16,
                        verbose_name="status",
                    ),
                ),
                ("response_code", models.IntegerField(blank=True, null=True, verbose_name="código de resposta")),
                ("response_body", models.JSONField(blank=True, null=True, verbose_name="corpo da resposta")),
                ("expires_at", models.DateTimeField(blank=True, db_index=True, null=True, verbose_name="expira em")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
            ],
            options={
                "verbose_name": "chave de idempotência",
                "verbose_name_plural": "chaves de idempotência",
                "ordering": ("-created_at", "-id"),
                "constraints": [
                    models.UniqueConstraint(fields=("scope", "key"), name="reservoir_idempotency_scope_key"),
                ],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="reservoir_idem_status_created"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sku", models.CharField(max_length=64, verbose_name="SKU")),
                ("variant", models.CharField(blank=True, default="", max_length=64, verbose_name="variante")),
                ("total_stock", models.PositiveIntegerField(default=0, verbose_name="estoque total")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="atualizado em")),
            ],
            options={
                "verbose_name": "registro de estoque",
                "verbose_name_plural": "registros de estoque",
                "ordering": ("sku", "variant"),
                "constraints": [
                    models.UniqueConstraint(fields=("sku", "variant"), name="reservoir_stockrecord_unique_key"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockMovement",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sku", models.CharField(max_length=64, verbose_name="SKU")),
                ("variant", models.CharField(blank=True, default="", max_length=64, verbose_name="variante")),
                (
                    "kind",
                    models.CharField(
                        choices=[("confirm", "baixa por confirmação"), ("adjust", "ajuste"), ("restore", "devolução de baixa")],
                        max_length=16,
                        verbose_name="tipo",
                    ),
                ),
                ("delta", models.IntegerField(verbose_name="delta")),
                ("balance", models.PositiveIntegerField(verbose_name="saldo após")),
                (
                    "reference",
                    models.CharField(blank=True, max_length=128, null=True, unique=True, verbose_name="referência"),
                ),
                ("reason", models.CharField(blank=True, default="", max_length=255, verbose_name="motivo")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criado em")),
            ],
            options={
                "verbose_name": "movimento de estoque",
                "verbose_name_plural": "movimentos de estoque",
                "ordering": ("-created_at", "-id"),
            },
        ),
        migrations.CreateModel(
            name="ReservationKey",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sku", models.CharField(max_length=64, verbose_name="SKU")),
                ("variant", models.CharField(blank=True, default="", max_length=64, verbose_name="variante")),
                ("ledger_version", models.PositiveIntegerField(default=0, verbose_name="versão do ledger")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="criada em")),
            ],
            options={
                "verbose_name": "chave de reserva",
                "verbose_name_plural": "chaves de reserva",
                "constraints": [
                    models.UniqueConstraint(fields=("sku", "variant"), name="reservoir_reservationkey_unique_key"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Reservation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "reservation_id",
                    models.CharField(
                        default=reservoir.ids.generate_reservation_id,
                        editable=False,
                        max_length=32,
                        unique=True,
                        verbose_name="ID da reserva",
                    ),
                ),
                ("sku", models.CharField(max_length=64, verbose_name="SKU")),
                ("variant", models.CharField(blank=True, default="", max_length=64, verbose_name="variante")),
                ("holder_id", models.CharField(db_index=True, max_length=128, verbose_name="titular")),
                ("quantity", models.PositiveIntegerField(verbose_name="quantidade")),
                ("original_quantity", models.PositiveIntegerField(verbose_name="quantidade original")),
                ("released_quantity", models.PositiveIntegerField(default=0, verbose_name="quantidade liberada")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "ativa"),
                            ("confirmed", "confirmada"),
                            ("released", "liberada"),
                            ("expired", "expirada"),
                        ],
                        db_index=True,
                        default="active",
                        max_length=16,
                        verbose_name="status",
                    ),
                ),
                ("reference", models.CharField(blank=True, default="", max_length=128, verbose_name="referência")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, verbose_name="criada em")),
                ("expires_at", models.DateTimeField(db_index=True, verbose_name="expira em")),
                ("confirming_since", models.DateTimeField(blank=True, null=True, verbose_name="confirmando desde")),
                ("confirmed_at", models.DateTimeField(blank=True, null=True, verbose_name="confirmada em")),
                ("released_at", models.DateTimeField(blank=True, null=True, verbose_name="liberada em")),
                ("expired_at", models.DateTimeField(blank=True, null=True, verbose_name="expirada em")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="atualizada em")),
            ],
            options={
                "verbose_name": "reserva",
                "verbose_name_plural": "reservas",
                "ordering": ("created_at", "id"),
                "indexes": [
                    models.Index(fields=["sku", "variant", "status"], name="reservoir_res_key_status"),
                    models.Index(fields=["status", "expires_at"], name="reservoir_res_status_exp"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(quantity__gt=0),
                        name="reservoir_reservation_qty_positive",
                    ),
                ],
            },
        ),
    ]
