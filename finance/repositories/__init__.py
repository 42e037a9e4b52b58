"""
Repositories do app finance.

Localização: finance/repositories/

Repositories específicos para o domínio financeiro.
Cada repository representa uma collection relacionada a finanças.
"""
from .query_builder import build_transaction_query
from .transaction_repository import TransactionRepository

__all__ = ['TransactionRepository', 'build_transaction_query']
