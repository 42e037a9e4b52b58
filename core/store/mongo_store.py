"""
Banco de documentos MongoDB.

Localização: core/store/mongo_store.py

Implementação do DocumentStore sobre pymongo.

Mapeamento:
- collection raiz 'transactions' -> collection 'transactions', _id = ID do documento
- sub-collection 'transactions/<id>/history' -> collection 'transactions.history',
  _id = '<id>/<ID do documento>' e campo _parent = '<id>'
- _id e _parent são removidos dos documentos devolvidos

Transações (run_atomic e flush do buffer) exigem replica set ou cluster
sharded. O retry em erros transitórios (TransientTransactionError,
UnknownTransactionCommitResult) é o do próprio pymongo (with_transaction).
"""
import contextlib
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import pymongo
from pymongo import ReplaceOne
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.cursor import Cursor
from pymongo.database import Database
from pymongo.errors import PyMongoError

from core.exceptions import (
    IterationFailureError,
    NotFoundError,
    OperationTimeoutError,
    StoreError,
    TransactionAbortedError,
)
from core.store.base import AtomicContext, BufferedWriter, Document, DocumentStore, check_document, split_collection_path
from core.store.filters import Filter, Operator, StoreQuery

logger = logging.getLogger(__name__)

PARENT_FIELD = '_parent'
INTERNAL_FIELDS = ('_id', PARENT_FIELD)

_COMPARISON_OPERATORS = {
    Operator.LESS_THAN: '$lt',
    Operator.LESS_THAN_OR_EQUAL: '$lte',
    Operator.GREATER_THAN: '$gt',
    Operator.GREATER_THAN_OR_EQUAL: '$gte',
}


def translate_filter(query_filter: Filter) -> Dict[str, Any]:
    """
    Converte um Filter em documento de consulta do MongoDB.

    '!=' e 'not-in' exigem que o campo exista, como no store em memória.
    """
    field_name = query_filter.field
    value = query_filter.value
    op = query_filter.op

    if op == Operator.EQUAL:
        return {field_name: {'$eq': value}}
    if op == Operator.NOT_EQUAL:
        return {field_name: {'$exists': True, '$ne': value}}
    if op in _COMPARISON_OPERATORS:
        return {field_name: {_COMPARISON_OPERATORS[op]: value}}
    if op == Operator.IN:
        return {field_name: {'$in': list(value)}}
    if op == Operator.NOT_IN:
        return {field_name: {'$exists': True, '$nin': list(value)}}
    if op == Operator.ARRAY_CONTAINS:
        return {field_name: {'$elemMatch': {'$eq': value}}}
    if op == Operator.ARRAY_CONTAINS_ANY:
        return {field_name: {'$elemMatch': {'$in': list(value)}}}
    raise ValueError(f"Operador não suportado: {op}")


def build_mongo_filter(filters: Sequence[Filter], scope: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Combina os filtros (na ordem recebida) em um único documento de consulta.

    Vários filtros sobre o mesmo campo (ex.: intervalo de datas) são
    combinados com $and.
    """
    clauses = [scope] if scope else []
    clauses.extend(translate_filter(query_filter) for query_filter in filters)
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {'$and': clauses}


def _timeout_scope(timeout: Optional[float]):
    if timeout is None:
        return contextlib.nullcontext()
    return pymongo.timeout(timeout)


class _MongoAtomicContext(AtomicContext):

    def __init__(self, store: 'MongoDocumentStore', session: ClientSession):
        self._store = store
        self._session = session

    def get(self, collection: str, document_id: str) -> Optional[Document]:
        mongo_collection, key, _ = self._store._locate(collection, document_id)
        raw = mongo_collection.find_one({'_id': key}, session=self._session)
        return self._store._from_storage(raw) if raw is not None else None

    def set(self, collection: str, document_id: str, value: Document) -> None:
        check_document(document_id, value)
        mongo_collection, key, parent_id = self._store._locate(collection, document_id)
        mongo_collection.replace_one(
            {'_id': key},
            self._store._to_storage(key, parent_id, value),
            upsert=True,
            session=self._session
        )


class MongoBufferedWriter(BufferedWriter):
    """
    Buffer de escrita do MongoDB.

    Acumula ReplaceOne(upsert=True) e, no flush, envia um único bulk_write
    ordenado dentro de uma transação: ou tudo é gravado, ou nada.
    """

    def __init__(self, store: 'MongoDocumentStore', collection: str):
        self._store = store
        self._collection = collection
        self._operations: List[ReplaceOne] = []
        self._flushed = False

    @property
    def pending(self) -> int:
        return len(self._operations)

    def enqueue_set(self, document_id: str, value: Document) -> None:
        if self._flushed:
            raise RuntimeError('Buffer já confirmado; crie um novo writer')
        check_document(document_id, value)
        _, key, parent_id = self._store._locate(self._collection, document_id)
        self._operations.append(
            ReplaceOne({'_id': key}, self._store._to_storage(key, parent_id, value), upsert=True)
        )

    def flush(self, timeout: Optional[float] = None) -> int:
        if self._flushed:
            raise RuntimeError('Buffer já confirmado; crie um novo writer')
        if not self._operations:
            self._flushed = True
            return 0

        mongo_collection, _, _ = self._store._locate(self._collection)
        operations = self._operations

        def callback(session: ClientSession):
            return mongo_collection.bulk_write(operations, ordered=True, session=session)

        try:
            with _timeout_scope(timeout):
                with self._store.client.start_session() as session:
                    session.with_transaction(callback)
        except PyMongoError as error:
            logger.error(f"[MONGO_STORE] Erro no flush de {len(operations)} documentos em {self._collection}: {error}", exc_info=True)
            raise self._store._translate('flush', error, collection=self._collection) from error

        self._operations = []
        self._flushed = True
        return len(operations)


class MongoDocumentStore(DocumentStore):
    """
    DocumentStore sobre MongoDB.

    Exemplo de uso:
        client = MongoClient(uri, tz_aware=True)
        store = MongoDocumentStore(client.financeiro_db)
    """

    def __init__(self, database: Database, client: Optional[pymongo.MongoClient] = None):
        self.db = database
        self.client = client if client is not None else database.client

    def _locate(self, collection: str, document_id: Optional[str] = None) -> Tuple[Collection, Optional[str], Optional[str]]:
        """
        Resolve o caminho lógico para (collection do MongoDB, _id, id do pai).
        """
        root, parent_id, child = split_collection_path(collection)
        if parent_id is None:
            return self.db[root], document_id, None
        key = f'{parent_id}/{document_id}' if document_id is not None else None
        return self.db[f'{root}.{child}'], key, parent_id

    @staticmethod
    def _scope(collection: str) -> Optional[Dict[str, Any]]:
        _, parent_id, _ = split_collection_path(collection)
        return {PARENT_FIELD: parent_id} if parent_id is not None else None

    @staticmethod
    def _to_storage(key: str, parent_id: Optional[str], value: Document) -> Document:
        document = dict(value)
        document['_id'] = key
        if parent_id is not None:
            document[PARENT_FIELD] = parent_id
        return document

    @staticmethod
    def _from_storage(raw: Document) -> Document:
        return {name: value for name, value in raw.items() if name not in INTERNAL_FIELDS}

    @staticmethod
    def _translate(operation: str, error: PyMongoError, **details: Any) -> StoreError:
        if getattr(error, 'timeout', False):
            return OperationTimeoutError(operation, reason=str(error), **details)
        return StoreError(operation, reason=str(error), **details)

    def get_document(self, collection: str, document_id: str,
                     timeout: Optional[float] = None) -> Document:
        mongo_collection, key, _ = self._locate(collection, document_id)
        try:
            with _timeout_scope(timeout):
                raw = mongo_collection.find_one({'_id': key})
        except PyMongoError as error:
            raise self._translate('get_document', error, collection=collection, id=document_id) from error

        if raw is None:
            raise NotFoundError(collection, document_id)
        return self._from_storage(raw)

    def set_document(self, collection: str, document_id: str, value: Document,
                     timeout: Optional[float] = None) -> None:
        check_document(document_id, value)
        mongo_collection, key, parent_id = self._locate(collection, document_id)
        try:
            with _timeout_scope(timeout):
                mongo_collection.replace_one({'_id': key}, self._to_storage(key, parent_id, value), upsert=True)
        except PyMongoError as error:
            raise self._translate('set_document', error, collection=collection, id=document_id) from error

    def delete_document(self, collection: str, document_id: str,
                        timeout: Optional[float] = None) -> bool:
        mongo_collection, key, _ = self._locate(collection, document_id)
        try:
            with _timeout_scope(timeout):
                result = mongo_collection.delete_one({'_id': key})
        except PyMongoError as error:
            raise self._translate('delete_document', error, collection=collection, id=document_id) from error
        return result.deleted_count > 0

    def get_documents(self, collection: str, document_ids: Sequence[str],
                      timeout: Optional[float] = None) -> List[Document]:
        if not document_ids:
            return []
        mongo_collection, _, _ = self._locate(collection)
        keys = [self._locate(collection, document_id)[1] for document_id in document_ids]
        try:
            with _timeout_scope(timeout):
                return [self._from_storage(raw) for raw in mongo_collection.find({'_id': {'$in': keys}})]
        except PyMongoError as error:
            raise self._translate('get_documents', error, collection=collection, ids=list(document_ids)) from error

    def query_documents(self, collection: str, query: StoreQuery,
                        timeout: Optional[float] = None) -> Iterator[Document]:
        mongo_collection, _, _ = self._locate(collection)
        mongo_filter = build_mongo_filter(query.filters, self._scope(collection))
        projection = {name: 1 for name in query.fields} if query.fields is not None else None

        cursor = mongo_collection.find(mongo_filter, projection=projection, limit=query.max_results or 0)
        if timeout is not None:
            cursor = cursor.max_time_ms(int(timeout * 1000))
        return self._iterate(collection, cursor)

    def _iterate(self, collection: str, cursor: Cursor) -> Iterator[Document]:
        retrieved = 0
        try:
            for raw in cursor:
                retrieved += 1
                yield self._from_storage(raw)
        except PyMongoError as error:
            logger.error(f"[MONGO_STORE] Erro ao iterar {collection} após {retrieved} documentos: {error}", exc_info=True)
            raise IterationFailureError(collection, reason=str(error), retrieved=retrieved) from error
        finally:
            cursor.close()

    def run_atomic(self, fn: Callable[[AtomicContext], Any], document_id: str = '',
                   timeout: Optional[float] = None) -> Any:
        def callback(session: ClientSession):
            return fn(_MongoAtomicContext(self, session))

        try:
            with _timeout_scope(timeout):
                with self.client.start_session() as session:
                    return session.with_transaction(callback)
        except PyMongoError as error:
            if getattr(error, 'timeout', False):
                raise OperationTimeoutError('run_atomic', reason=str(error), id=document_id) from error
            logger.error(f"[MONGO_STORE] Transação abortada para '{document_id}': {error}", exc_info=True)
            raise TransactionAbortedError(document_id, reason=str(error)) from error

    def new_buffered_writer(self, collection: str) -> BufferedWriter:
        return MongoBufferedWriter(self, collection)

    def ensure_index(self, collection: str, keys: Sequence) -> None:
        mongo_collection, _, _ = self._locate(collection)
        mongo_collection.create_index(list(keys))
