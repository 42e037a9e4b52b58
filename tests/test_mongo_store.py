"""
Testes do adaptador MongoDB com objetos pymongo simulados.
"""
from unittest.mock import MagicMock

import pytest
from pymongo import ReplaceOne
from pymongo.errors import AutoReconnect, ExecutionTimeout, OperationFailure

from core.exceptions import (
    InvalidArgumentError,
    IterationFailureError,
    NotFoundError,
    OperationTimeoutError,
    StoreError,
    TransactionAbortedError,
)
from core.store.filters import Filter, Operator, StoreQuery
from core.store.mongo_store import MongoDocumentStore, build_mongo_filter, translate_filter


@pytest.fixture
def collections():
    return {}


@pytest.fixture
def session():
    mock_session = MagicMock()
    mock_session.with_transaction.side_effect = lambda callback: callback(mock_session)
    return mock_session


@pytest.fixture
def mongo_store(collections, session):
    database = MagicMock()
    database.__getitem__.side_effect = lambda name: collections.setdefault(name, MagicMock(name=name))
    client = MagicMock()
    client.start_session.return_value.__enter__.return_value = session
    return MongoDocumentStore(database, client=client)


def make_cursor(documents, error=None):
    def iterate():
        yield from documents
        if error is not None:
            raise error

    cursor = MagicMock()
    cursor.__iter__.side_effect = lambda: iterate()
    cursor.max_time_ms.return_value = cursor
    return cursor


class TestTranslateFilter:

    @pytest.mark.parametrize('query_filter,expected', [
        (Filter('type', Operator.EQUAL, 'PURCHASE'), {'type': {'$eq': 'PURCHASE'}}),
        (Filter('type', Operator.NOT_EQUAL, 'PURCHASE'), {'type': {'$exists': True, '$ne': 'PURCHASE'}}),
        (Filter('amount', Operator.LESS_THAN, 5), {'amount': {'$lt': 5}}),
        (Filter('amount', Operator.LESS_THAN_OR_EQUAL, 5), {'amount': {'$lte': 5}}),
        (Filter('amount', Operator.GREATER_THAN, 5), {'amount': {'$gt': 5}}),
        (Filter('amount', Operator.GREATER_THAN_OR_EQUAL, 5), {'amount': {'$gte': 5}}),
        (Filter('type', Operator.IN, ['A', 'B']), {'type': {'$in': ['A', 'B']}}),
        (Filter('type', Operator.NOT_IN, ['A']), {'type': {'$exists': True, '$nin': ['A']}}),
        (Filter('online_services', Operator.ARRAY_CONTAINS, 'Apple'),
         {'online_services': {'$elemMatch': {'$eq': 'Apple'}}}),
        (Filter('online_services', Operator.ARRAY_CONTAINS_ANY, ['Apple', 'Amazon']),
         {'online_services': {'$elemMatch': {'$in': ['Apple', 'Amazon']}}}),
    ])
    def test_operators(self, query_filter, expected):
        assert translate_filter(query_filter) == expected

    def test_no_filters(self):
        assert build_mongo_filter([]) == {}

    def test_single_filter_is_not_wrapped(self):
        assert build_mongo_filter([Filter('type', '==', 'X')]) == {'type': {'$eq': 'X'}}

    def test_range_on_same_field_uses_and(self):
        mongo_filter = build_mongo_filter([
            Filter('posted_time', '>=', 1),
            Filter('posted_time', '<', 2),
        ])

        assert mongo_filter == {'$and': [{'posted_time': {'$gte': 1}}, {'posted_time': {'$lt': 2}}]}

    def test_scope_comes_first(self):
        mongo_filter = build_mongo_filter([Filter('type', '==', 'X')], scope={'_parent': 'T1'})

        assert mongo_filter['$and'][0] == {'_parent': 'T1'}


class TestDocuments:

    def test_get_strips_internal_fields(self, mongo_store, collections):
        mongo_store.db['transactions'].find_one.return_value = {'_id': 'T1', 'id': 'T1', 'type': 'PURCHASE'}

        document = mongo_store.get_document('transactions', 'T1')

        assert document == {'id': 'T1', 'type': 'PURCHASE'}
        collections['transactions'].find_one.assert_called_once_with({'_id': 'T1'})

    def test_get_missing_raises_not_found(self, mongo_store):
        mongo_store.db['transactions'].find_one.return_value = None

        with pytest.raises(NotFoundError):
            mongo_store.get_document('transactions', 'T404')

    def test_subcollection_maps_to_dotted_collection(self, mongo_store, collections):
        mongo_store.set_document('transactions/T1/history', 'version_1', {'type': 'PURCHASE'})

        collections['transactions.history'].replace_one.assert_called_once_with(
            {'_id': 'T1/version_1'},
            {'type': 'PURCHASE', '_id': 'T1/version_1', '_parent': 'T1'},
            upsert=True
        )

    def test_set_rejects_non_dict_without_touching_mongo(self, mongo_store, collections):
        with pytest.raises(InvalidArgumentError):
            mongo_store.set_document('transactions', 'T1', 'not a document')

        assert collections == {}

    def test_driver_error_becomes_store_error(self, mongo_store):
        mongo_store.db['transactions'].find_one.side_effect = AutoReconnect('sem conexão')

        with pytest.raises(StoreError) as exc_info:
            mongo_store.get_document('transactions', 'T1')

        assert exc_info.value.operation == 'get_document'
        assert not isinstance(exc_info.value, OperationTimeoutError)

    def test_driver_timeout_becomes_timeout_error(self, mongo_store):
        mongo_store.db['transactions'].find_one.side_effect = ExecutionTimeout('prazo esgotado')

        with pytest.raises(OperationTimeoutError):
            mongo_store.get_document('transactions', 'T1', timeout=0.5)

    def test_delete_reports_whether_removed(self, mongo_store):
        mongo_store.db['transactions'].delete_one.return_value.deleted_count = 0

        assert mongo_store.delete_document('transactions', 'T1') is False

    def test_get_documents_uses_single_in_query(self, mongo_store, collections):
        mongo_store.db['transactions'].find.return_value = [{'_id': 'T2', 'id': 'T2'}]

        documents = mongo_store.get_documents('transactions', ['T1', 'T2'])

        assert documents == [{'id': 'T2'}]
        collections['transactions'].find.assert_called_once_with({'_id': {'$in': ['T1', 'T2']}})


class TestQuery:

    def test_query_passes_filter_projection_and_limit(self, mongo_store, collections):
        cursor = make_cursor([{'_id': 'T1', 'type': 'PURCHASE'}])
        mongo_store.db['transactions'].find.return_value = cursor
        query = StoreQuery().where('id', '==', 'T1').select('type').limit(1)

        results = list(mongo_store.query_documents('transactions', query, timeout=2))

        assert results == [{'type': 'PURCHASE'}]
        collections['transactions'].find.assert_called_once_with(
            {'id': {'$eq': 'T1'}}, projection={'type': 1}, limit=1
        )
        cursor.max_time_ms.assert_called_once_with(2000)
        cursor.close.assert_called_once()

    def test_subcollection_query_is_scoped_to_parent(self, mongo_store, collections):
        mongo_store.db['transactions.history'].find.return_value = make_cursor([])

        list(mongo_store.query_documents('transactions/T1/history', StoreQuery()))

        mongo_filter = collections['transactions.history'].find.call_args[0][0]
        assert mongo_filter == {'_parent': 'T1'}

    def test_cursor_failure_raises_iteration_failure(self, mongo_store):
        cursor = make_cursor([{'_id': 'T1'}], error=AutoReconnect('cursor perdido'))
        mongo_store.db['transactions'].find.return_value = cursor

        with pytest.raises(IterationFailureError) as exc_info:
            list(mongo_store.query_documents('transactions', StoreQuery()))

        assert exc_info.value.details['retrieved'] == 1
        cursor.close.assert_called_once()


class TestTransactions:

    def test_run_atomic_uses_session(self, mongo_store, collections, session):
        mongo_store.db['transactions'].find_one.return_value = {'_id': 'T1', 'version': 2}

        def fn(context):
            current = context.get('transactions', 'T1')
            context.set('transactions', 'T1', {'version': current['version'] + 1})
            return current['version']

        assert mongo_store.run_atomic(fn, document_id='T1') == 2
        collections['transactions'].find_one.assert_called_once_with({'_id': 'T1'}, session=session)
        collections['transactions'].replace_one.assert_called_once_with(
            {'_id': 'T1'}, {'version': 3, '_id': 'T1'}, upsert=True, session=session
        )

    def test_run_atomic_failure_becomes_aborted(self, mongo_store, session):
        session.with_transaction.side_effect = OperationFailure('WriteConflict')

        with pytest.raises(TransactionAbortedError) as exc_info:
            mongo_store.run_atomic(lambda context: None, document_id='T1')

        assert exc_info.value.details['id'] == 'T1'

    def test_domain_error_inside_transaction_propagates(self, mongo_store):
        def fn(context):
            raise InvalidArgumentError('registro inválido', field='type')

        with pytest.raises(InvalidArgumentError):
            mongo_store.run_atomic(fn, document_id='T1')

    def test_flush_sends_one_ordered_bulk_write(self, mongo_store, collections, session):
        writer = mongo_store.new_buffered_writer('transactions')
        writer.enqueue_set('T1', {'id': 'T1'})
        writer.enqueue_set('T2', {'id': 'T2'})

        assert writer.flush() == 2
        collections['transactions'].bulk_write.assert_called_once_with(
            [
                ReplaceOne({'_id': 'T1'}, {'id': 'T1', '_id': 'T1'}, upsert=True),
                ReplaceOne({'_id': 'T2'}, {'id': 'T2', '_id': 'T2'}, upsert=True),
            ],
            ordered=True,
            session=session
        )

    def test_empty_flush_does_not_open_session(self, mongo_store):
        writer = mongo_store.new_buffered_writer('transactions')

        assert writer.flush() == 0
        mongo_store.client.start_session.assert_not_called()

    def test_flush_failure_becomes_store_error(self, mongo_store, session):
        session.with_transaction.side_effect = OperationFailure('falha no lote')
        writer = mongo_store.new_buffered_writer('transactions')
        writer.enqueue_set('T1', {'id': 'T1'})

        with pytest.raises(StoreError) as exc_info:
            writer.flush()

        assert exc_info.value.operation == 'flush'
