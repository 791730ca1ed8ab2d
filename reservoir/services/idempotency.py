"""
Idempotency Service — Dedupe/replay de operações com chave de idempotência.

Fluxo:
1. acquire(): cria ou trava a chave (fora da transação principal)
2. operação roda
3. complete() grava a resposta; fail() libera a chave para nova tentativa

Repetir uma operação concluída com a mesma chave devolve a resposta gravada
sem reexecutar nada.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from django.db import transaction
from django.utils import timezone

from ..conf import idempotency_ttl
from ..exceptions import IdempotencyCacheHit, IdempotencyError, ReservoirError
from ..models import IdempotencyKey


logger = logging.getLogger(__name__)


class IdempotencyService:
    """Guard de idempotência baseado em IdempotencyKey."""

    @staticmethod
    def acquire(scope: str, key: str) -> IdempotencyKey:
        """
        Adquire a chave para uma operação.

        Returns:
            IdempotencyKey com status="in_progress"

        Raises:
            IdempotencyCacheHit: Chave já concluída (resposta em cache, não é erro)
            IdempotencyError: Mesma chave em andamento
        """
        with transaction.atomic():
            try:
                idem = IdempotencyKey.objects.select_for_update().get(scope=scope, key=key)
            except IdempotencyKey.DoesNotExist:
                idem, created = IdempotencyKey.objects.get_or_create(
                    scope=scope,
                    key=key,
                    defaults={
                        "status": IdempotencyKey.Status.IN_PROGRESS,
                        "expires_at": timezone.now() + idempotency_ttl(),
                    },
                )
                if created:
                    return idem
                # Outro request criou a chave entre o get e o create
                idem = IdempotencyKey.objects.select_for_update().get(pk=idem.pk)

            if idem.can_replay:
                raise IdempotencyCacheHit(idem.response_body, idem.response_code)

            if idem.status == IdempotencyKey.Status.IN_PROGRESS:
                if idem.is_orphaned():
                    # Chave órfã: permite nova tentativa
                    idem.expires_at = timezone.now() + idempotency_ttl()
                    idem.save(update_fields=["expires_at"])
                    return idem
                raise IdempotencyError(
                    code="in_progress",
                    message="Operação já está em andamento com esta chave",
                    context={"scope": scope, "key": key},
                )

            # failed: permite nova tentativa
            idem.status = IdempotencyKey.Status.IN_PROGRESS
            idem.expires_at = timezone.now() + idempotency_ttl()
            idem.save(update_fields=["status", "expires_at"])
            return idem

    @staticmethod
    def complete(idem: IdempotencyKey, response: dict, response_code: int = 200) -> None:
        idem.status = IdempotencyKey.Status.DONE
        idem.response_body = response
        idem.response_code = response_code
        idem.save(update_fields=["status", "response_body", "response_code"])

    @staticmethod
    def fail(idem: IdempotencyKey) -> None:
        idem.status = IdempotencyKey.Status.FAILED
        idem.save(update_fields=["status"])

    @staticmethod
    def run(
        scope: str,
        key: str,
        operation: Callable[[], Any],
        encode: Callable[[Any], dict],
        decode: Callable[[dict], Any],
        response_code: int = 200,
    ) -> Any:
        """
        Executa `operation` protegida pela chave (scope, key).

        `encode` transforma o resultado no corpo gravado; `decode` reconstrói
        o resultado a partir do corpo em cache numa repetição.
        """
        try:
            idem = IdempotencyService.acquire(scope, key)
        except IdempotencyCacheHit as cache_hit:
            logger.debug("Idempotency replay", extra={"scope": scope, "key": key})
            return decode(cache_hit.cached_response)

        try:
            result = operation()
        except ReservoirError:
            IdempotencyService.fail(idem)
            raise
        except Exception as e:
            IdempotencyService.fail(idem)
            logger.exception(f"Unexpected error in {scope}: {e}")
            raise

        IdempotencyService.complete(idem, encode(result), response_code)
        return result
