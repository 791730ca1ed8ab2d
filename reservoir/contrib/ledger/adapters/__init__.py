"""
Ledger Adapters — Implementações prontas do LedgerBackend.

- ModelLedgerBackend: ledger local (StockRecord + StockMovement)
- HttpLedgerBackend: serviço de catálogo externo via HTTP
"""
