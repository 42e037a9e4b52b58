"""
Montagem da consulta de busca de transações.

Localização: finance/repositories/query_builder.py

Função pura: traduz um TransactionQuery em StoreQuery, aplicando os
filtros sempre nesta ordem (quando presentes):

1. account_id == account_id
2. type IN types
3. posted_time >= start_time e posted_time < end_time
   (somente se os DOIS limites forem informados)
4. limit (somente se > 0)
5. online_services array-contains-any online_services

offset é ignorado: o banco não suporta offset nativamente.
"""
from core.store.filters import Operator, StoreQuery
from finance.models.transaction_model import TransactionField, parse_rfc3339
from finance.models.transaction_query import TransactionQuery


def build_transaction_query(query: TransactionQuery) -> StoreQuery:
    """
    Monta a consulta de transações.

    Args:
        query: Filtros da busca

    Returns:
        StoreQuery com os filtros na ordem fixa

    Raises:
        InvalidArgumentError: Se start_time ou end_time não forem RFC 3339
    """
    store_query = StoreQuery()

    if query.account_id:
        store_query = store_query.where(TransactionField.ACCOUNT_ID.value, Operator.EQUAL, query.account_id)

    if query.types:
        store_query = store_query.where(TransactionField.TYPE.value, Operator.IN, list(query.types))

    if query.start_time and query.end_time:
        start_time = parse_rfc3339(query.start_time, 'start_time')
        end_time = parse_rfc3339(query.end_time, 'end_time')
        store_query = (store_query
                       .where(TransactionField.POSTED_TIME.value, Operator.GREATER_THAN_OR_EQUAL, start_time)
                       .where(TransactionField.POSTED_TIME.value, Operator.LESS_THAN, end_time))

    if query.limit > 0:
        store_query = store_query.limit(query.limit)

    if query.online_services:
        # array-contains-any e não array-contains: array-contains aceita um único valor
        store_query = store_query.where(
            TransactionField.ONLINE_SERVICES.value,
            Operator.ARRAY_CONTAINS_ANY,
            list(query.online_services)
        )

    return store_query
