"""
Testes da montagem da consulta de busca de transações.
"""
from datetime import datetime, timezone

import pytest

from core.exceptions import InvalidArgumentError
from core.store.filters import Operator
from finance.models.transaction_query import TransactionQuery
from finance.repositories.query_builder import build_transaction_query


def test_empty_query_has_no_filters():
    query = build_transaction_query(TransactionQuery())

    assert query.filters == ()
    assert query.max_results is None


def test_full_query_keeps_fixed_order():
    query = build_transaction_query(TransactionQuery(
        account_id='A1',
        types=['PURCHASE', 'REFUND'],
        start_time='2024-05-01T00:00:00Z',
        end_time='2024-05-02T00:00:00+00:00',
        limit=10,
        online_services=['Apple'],
    ))

    assert [(f.field, f.op) for f in query.filters] == [
        ('account_id', Operator.EQUAL),
        ('type', Operator.IN),
        ('posted_time', Operator.GREATER_THAN_OR_EQUAL),
        ('posted_time', Operator.LESS_THAN),
        ('online_services', Operator.ARRAY_CONTAINS_ANY),
    ]
    assert query.filters[1].value == ('PURCHASE', 'REFUND')
    assert query.filters[2].value == datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert query.filters[3].value == datetime(2024, 5, 2, tzinfo=timezone.utc)
    assert query.max_results == 10


@pytest.mark.parametrize('start_time,end_time', [
    ('', ''),
    ('2024-05-01T00:00:00Z', ''),
    ('', '2024-05-02T00:00:00Z'),
])
def test_time_range_requires_both_bounds(start_time, end_time):
    query = build_transaction_query(TransactionQuery(start_time=start_time, end_time=end_time))

    assert all(f.field != 'posted_time' for f in query.filters)


def test_single_bound_is_not_parsed():
    # Sem o outro limite, o valor nem é interpretado
    query = build_transaction_query(TransactionQuery(start_time='não é data'))

    assert query.filters == ()


@pytest.mark.parametrize('start_time,end_time,bad_field', [
    ('ontem', '2024-05-02T00:00:00Z', 'start_time'),
    ('2024-05-01T00:00:00Z', '2024-13-40T00:00:00Z', 'end_time'),
    ('2024-05-01T00:00:00', '2024-05-02T00:00:00Z', 'start_time'),
])
def test_malformed_time_bound_is_identified(start_time, end_time, bad_field):
    with pytest.raises(InvalidArgumentError) as exc_info:
        build_transaction_query(TransactionQuery(start_time=start_time, end_time=end_time))

    assert exc_info.value.field == bad_field
    assert exc_info.value.details['field'] == bad_field


def test_online_services_use_any_of_operator():
    query = build_transaction_query(TransactionQuery(online_services=['A', 'B']))

    assert len(query.filters) == 1
    assert query.filters[0].op == Operator.ARRAY_CONTAINS_ANY
    assert query.filters[0].op != Operator.ARRAY_CONTAINS
    assert query.filters[0].value == ('A', 'B')


def test_single_online_service_still_uses_any_of():
    query = build_transaction_query(TransactionQuery(online_services=['A']))

    assert query.filters[0].op == Operator.ARRAY_CONTAINS_ANY


@pytest.mark.parametrize('limit', [0, -5])
def test_non_positive_limit_is_omitted(limit):
    query = build_transaction_query(TransactionQuery(limit=limit))

    assert query.max_results is None


def test_offset_has_no_effect():
    with_offset = build_transaction_query(TransactionQuery(account_id='A1', offset=20))
    without_offset = build_transaction_query(TransactionQuery(account_id='A1'))

    assert with_offset == without_offset
