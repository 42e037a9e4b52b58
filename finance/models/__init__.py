"""
Modelos do app finance.

Localização: finance/models/
"""
from .transaction_model import (
    HISTORY_FIELDS,
    PROJECTABLE_FIELDS,
    TransactionField,
    TransactionModel,
    history_label,
    new_transaction_id,
    truncate_to_millis,
)
from .transaction_query import TransactionQuery

__all__ = [
    'HISTORY_FIELDS', 'PROJECTABLE_FIELDS', 'TransactionField', 'TransactionModel',
    'TransactionQuery', 'history_label', 'new_transaction_id', 'truncate_to_millis',
]
