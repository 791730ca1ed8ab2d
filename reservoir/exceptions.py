"""
Reservoir Exceptions — Exceções específicas do Reservoir.

Todas as exceções seguem o padrão:
- code: Código máquina do erro (ex.: "insufficient_stock", "invalid_qty")
- message: Mensagem legível para humanos
- context: Dados adicionais sobre o erro

Cada exceção também declara o status HTTP usado pela API.
"""

from __future__ import annotations


class ReservoirError(Exception):
    """
    Classe base para todas as exceções do Reservoir.

    Attributes:
        code: Código máquina do erro
        message: Mensagem legível para humanos
        context: Dados adicionais sobre o erro
    """

    http_status = 400

    def __init__(self, code: str = "error", message: str = "", context: dict | None = None):
        self.code = code
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def as_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "context": self.context}


class ValidationError(ReservoirError):
    """
    Erro de validação de entrada.

    Codes: "invalid_qty", "invalid_ttl", "invalid_adjustment"
    """


class InsufficientStock(ReservoirError):
    """
    Quantidade pedida excede a disponibilidade atual.

    Nunca é atendida parcialmente. Também é o resultado determinístico
    para quem perde a corrida pela última unidade.

    Codes: "insufficient_stock"
    """

    http_status = 409

    def __init__(self, code: str = "insufficient_stock", message: str = "", context: dict | None = None):
        super().__init__(code, message, context)


class ReservationNotFound(ReservoirError):
    """
    Reserva desconhecida (nunca existiu ou já foi removida).

    Codes: "not_found"
    """

    http_status = 404

    def __init__(self, code: str = "not_found", message: str = "", context: dict | None = None):
        super().__init__(code, message, context)


class AlreadyTerminal(ReservoirError):
    """
    Operação sobre reserva já confirmada, liberada ou expirada.

    Codes: "confirmed", "released", "expired", "confirm_in_progress"
    """

    http_status = 410

    def __init__(self, code: str = "terminal", message: str = "", context: dict | None = None):
        super().__init__(code, message, context)
        if code == "confirm_in_progress":
            self.http_status = 409


class ReservationExpired(ReservoirError):
    """
    Confirmação de reserva que passou do prazo. O fluxo de pedido deve reservar de novo.

    Codes: "expired"
    """

    http_status = 410

    def __init__(self, code: str = "expired", message: str = "", context: dict | None = None):
        super().__init__(code, message, context)


class LedgerUnavailable(ReservoirError):
    """
    Falha transitória ao gravar no ledger durante o confirm.

    A reserva continua ativa; o chamador deve repetir o confirm.

    Codes: "ledger_unavailable"
    """

    http_status = 503

    def __init__(self, code: str = "ledger_unavailable", message: str = "", context: dict | None = None):
        super().__init__(code, message, context)


class IdempotencyError(ReservoirError):
    """
    Erro relacionado a idempotência.

    Codes: "in_progress", "conflict"
    """

    http_status = 409


class IdempotencyCacheHit(ReservoirError):
    """
    Indica que resposta foi encontrada em cache de idempotência.

    NÃO é um erro - é um fluxo de controle para retornar resposta cacheada.

    Attributes:
        cached_response: A resposta cacheada da operação anterior
        response_code: Status HTTP da resposta original
    """

    def __init__(self, cached_response: dict, response_code: int | None = None):
        self.cached_response = cached_response
        self.response_code = response_code
        super().__init__("cache_hit", "Idempotency cache hit")
