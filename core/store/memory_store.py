"""
Banco de documentos em memória.

Localização: core/store/memory_store.py

Implementação do DocumentStore para testes e desenvolvimento local.
Documentos são copiados (deepcopy) na leitura e na escrita, então quem
chama nunca compartilha estado com o store.

Transações usam controle otimista: cada documento tem uma revisão; no
commit, se algum documento lido mudou de revisão, a função é executada
de novo. Depois de `max_attempts` tentativas, TransactionAbortedError.
"""
import copy
import logging
import threading
import time
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from core import config
from core.exceptions import NotFoundError, OperationTimeoutError, TransactionAbortedError
from core.store.base import AtomicContext, BufferedWriter, Document, DocumentStore, check_document, split_collection_path
from core.store.filters import Filter, Operator, StoreQuery

logger = logging.getLogger(__name__)

DocumentKey = Tuple[str, str]


def matches_filter(document: Document, query_filter: Filter) -> bool:
    """
    Avalia um filtro sobre um documento.

    Documentos sem o campo nunca casam (inclusive com '!=' e 'not-in').
    Comparações entre tipos incompatíveis não casam.
    """
    if query_filter.field not in document:
        return False

    actual = document[query_filter.field]
    expected = query_filter.value
    op = query_filter.op

    try:
        if op == Operator.EQUAL:
            return actual == expected
        if op == Operator.NOT_EQUAL:
            return actual != expected
        if op == Operator.LESS_THAN:
            return actual < expected
        if op == Operator.LESS_THAN_OR_EQUAL:
            return actual <= expected
        if op == Operator.GREATER_THAN:
            return actual > expected
        if op == Operator.GREATER_THAN_OR_EQUAL:
            return actual >= expected
        if op == Operator.IN:
            return actual in expected
        if op == Operator.NOT_IN:
            return actual not in expected
        if op == Operator.ARRAY_CONTAINS:
            return isinstance(actual, (list, tuple)) and expected in actual
        if op == Operator.ARRAY_CONTAINS_ANY:
            return isinstance(actual, (list, tuple)) and any(value in actual for value in expected)
    except TypeError:
        return False

    raise ValueError(f"Operador não suportado: {op}")


class _MemoryAtomicContext(AtomicContext):

    def __init__(self, store: 'InMemoryDocumentStore'):
        self._store = store
        self._read_revisions: Dict[DocumentKey, int] = {}
        self._writes: Dict[DocumentKey, Document] = {}

    def get(self, collection: str, document_id: str) -> Optional[Document]:
        key = (collection, document_id)
        if key in self._writes:
            return copy.deepcopy(self._writes[key])
        with self._store._lock:
            self._read_revisions.setdefault(key, self._store._revisions.get(key, 0))
            document = self._store._collections.get(collection, {}).get(document_id)
            return copy.deepcopy(document) if document is not None else None

    def set(self, collection: str, document_id: str, value: Document) -> None:
        check_document(document_id, value)
        self._writes[(collection, document_id)] = copy.deepcopy(dict(value))

    def has_conflict(self) -> bool:
        return any(
            self._store._revisions.get(key, 0) != revision
            for key, revision in self._read_revisions.items()
        )

    def commit(self) -> None:
        for (collection, document_id), value in self._writes.items():
            self._store._write(collection, document_id, value)


class MemoryBufferedWriter(BufferedWriter):
    """Buffer de escrita do store em memória; o flush aplica tudo de uma vez."""

    def __init__(self, store: 'InMemoryDocumentStore', collection: str):
        self._store = store
        self._collection = collection
        self._operations: List[Tuple[str, Document]] = []
        self._flushed = False

    @property
    def pending(self) -> int:
        return len(self._operations)

    def enqueue_set(self, document_id: str, value: Document) -> None:
        if self._flushed:
            raise RuntimeError('Buffer já confirmado; crie um novo writer')
        check_document(document_id, value)
        self._operations.append((document_id, copy.deepcopy(dict(value))))

    def flush(self, timeout: Optional[float] = None) -> int:
        if self._flushed:
            raise RuntimeError('Buffer já confirmado; crie um novo writer')
        with self._store._lock:
            for document_id, value in self._operations:
                self._store._write(self._collection, document_id, value)
        written = len(self._operations)
        self._operations = []
        self._flushed = True
        return written


class InMemoryDocumentStore(DocumentStore):
    """
    DocumentStore em memória, seguro para uso entre threads.

    Exemplo de uso:
        store = InMemoryDocumentStore()
        store.set_document('transactions', 'T1', {'id': 'T1', 'type': 'PURCHASE'})
        store.get_document('transactions', 'T1')
    """

    def __init__(self, max_attempts: Optional[int] = None):
        # Sem valor explícito, usa MEMORY_STORE_MAX_ATTEMPTS
        self.max_attempts = max_attempts if max_attempts is not None else config.get_memory_store_max_attempts()
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._revisions: Dict[DocumentKey, int] = {}
        self.indexes: Dict[str, List[Any]] = {}

    def _write(self, collection: str, document_id: str, value: Document) -> None:
        # Chamado sempre com o lock adquirido
        self._collections.setdefault(collection, {})[document_id] = value
        key = (collection, document_id)
        self._revisions[key] = self._revisions.get(key, 0) + 1

    def get_document(self, collection: str, document_id: str,
                     timeout: Optional[float] = None) -> Document:
        with self._lock:
            document = self._collections.get(collection, {}).get(document_id)
            if document is None:
                raise NotFoundError(collection, document_id)
            return copy.deepcopy(document)

    def set_document(self, collection: str, document_id: str, value: Document,
                     timeout: Optional[float] = None) -> None:
        check_document(document_id, value)
        split_collection_path(collection)
        with self._lock:
            self._write(collection, document_id, copy.deepcopy(dict(value)))

    def delete_document(self, collection: str, document_id: str,
                        timeout: Optional[float] = None) -> bool:
        with self._lock:
            documents = self._collections.get(collection, {})
            if document_id not in documents:
                return False
            del documents[document_id]
            key = (collection, document_id)
            self._revisions[key] = self._revisions.get(key, 0) + 1
            return True

    def get_documents(self, collection: str, document_ids: Sequence[str],
                      timeout: Optional[float] = None) -> List[Document]:
        with self._lock:
            documents = self._collections.get(collection, {})
            return [
                copy.deepcopy(documents[document_id])
                for document_id in dict.fromkeys(document_ids)
                if document_id in documents
            ]

    def query_documents(self, collection: str, query: StoreQuery,
                        timeout: Optional[float] = None) -> Iterator[Document]:
        with self._lock:
            snapshot = [copy.deepcopy(document) for document in self._collections.get(collection, {}).values()]
        return self._iterate(snapshot, query)

    @staticmethod
    def _iterate(snapshot: List[Document], query: StoreQuery) -> Iterator[Document]:
        returned = 0
        for document in snapshot:
            if query.max_results is not None and returned >= query.max_results:
                return
            if not all(matches_filter(document, query_filter) for query_filter in query.filters):
                continue
            returned += 1
            if query.fields is not None:
                yield {name: document[name] for name in query.fields if name in document}
            else:
                yield document

    def run_atomic(self, fn: Callable[[AtomicContext], Any], document_id: str = '',
                   timeout: Optional[float] = None) -> Any:
        deadline = time.monotonic() + timeout if timeout is not None else None

        for attempt in range(1, self.max_attempts + 1):
            context = _MemoryAtomicContext(self)
            result = fn(context)

            if deadline is not None and time.monotonic() > deadline:
                raise OperationTimeoutError('run_atomic', reason=f'prazo de {timeout}s esgotado', id=document_id)

            with self._lock:
                if not context.has_conflict():
                    context.commit()
                    return result

            logger.warning(f"[MEMORY_STORE] Conflito na transação de '{document_id}' (tentativa {attempt}/{self.max_attempts})")

        raise TransactionAbortedError(
            document_id,
            reason=f'conflito persistente após {self.max_attempts} tentativas'
        )

    def new_buffered_writer(self, collection: str) -> BufferedWriter:
        return MemoryBufferedWriter(self, collection)

    def ensure_index(self, collection: str, keys: Sequence) -> None:
        self.indexes.setdefault(collection, []).append(list(keys))
