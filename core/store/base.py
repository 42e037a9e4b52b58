"""
Interface do banco de documentos (DocumentStore).

Localização: core/store/base.py

Define o contrato consumido pelos repositories, independente da
implementação concreta (MongoDB em produção, memória em testes).

Coleções são endereçadas por caminho: 'transactions' para uma collection
raiz ou 'transactions/<id>/history' para uma sub-collection de um documento
(ver `subcollection_path`).

Todas as operações aceitam `timeout` (segundos). Se o prazo estourar, nada
fica parcialmente aplicado: ou a transação/lote inteiro é confirmado, ou nada.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, TypeVar

from core.exceptions import InvalidArgumentError
from core.store.filters import StoreQuery

T = TypeVar('T')

Document = Dict[str, Any]

PATH_SEPARATOR = '/'


def subcollection_path(parent: str, document_id: str, child: str) -> str:
    """
    Monta o caminho de uma sub-collection pertencente a um documento.

    Exemplo:
        subcollection_path('transactions', 'T1', 'history')
        -> 'transactions/T1/history'
    """
    return PATH_SEPARATOR.join((parent, document_id, child))


def check_document(document_id: str, value: Any) -> None:
    """
    Valida o par (id, documento) antes de qualquer escrita.

    Raises:
        InvalidArgumentError: Se o ID for vazio/contiver '/' ou o valor não for um dict
            com chaves string
    """
    if not isinstance(document_id, str) or not document_id or PATH_SEPARATOR in document_id:
        raise InvalidArgumentError('ID de documento inválido', field='id', value=document_id)
    if not isinstance(value, Mapping):
        raise InvalidArgumentError(
            f'Documento "{document_id}" inválido: esperado dict, recebido {type(value).__name__}',
            field='value', value=type(value).__name__, id=document_id
        )
    for key in value:
        if not isinstance(key, str) or not key or key.startswith('$') or key == '_id':
            raise InvalidArgumentError(
                f'Documento "{document_id}" tem nome de campo inválido: {key!r}',
                field=str(key), value=key, id=document_id
            )


def split_collection_path(collection: str):
    """
    Separa um caminho de collection em (raiz, id do pai, sub-collection).

    Para collections raiz, id do pai e sub-collection são None.

    Raises:
        ValueError: Se o caminho não tiver 1 ou 3 segmentos
    """
    parts = collection.split(PATH_SEPARATOR)
    if len(parts) == 1:
        return parts[0], None, None
    if len(parts) == 3 and all(parts):
        return parts[0], parts[1], parts[2]
    raise ValueError(f"Caminho de collection inválido: '{collection}'")


class AtomicContext(ABC):
    """Handles de leitura/escrita disponíveis dentro de uma transação."""

    @abstractmethod
    def get(self, collection: str, document_id: str) -> Optional[Document]:
        """
        Lê um documento dentro da transação.

        Returns:
            Dict com o documento ou None se não existir
        """

    @abstractmethod
    def set(self, collection: str, document_id: str, value: Document) -> None:
        """Sobrescreve (ou cria) um documento dentro da transação."""


class BufferedWriter(ABC):
    """
    Buffer de escrita em lote.

    O flush NUNCA é automático (nem por tamanho nem por tempo): quem
    enfileira é responsável por chamar `flush()` exatamente uma vez.
    Operações enfileiradas sem flush são descartadas.

    Não é seguro para enfileiramento concorrente; cada chamador deve usar
    sua própria instância.
    """

    @abstractmethod
    def enqueue_set(self, document_id: str, value: Document) -> None:
        """
        Enfileira uma sobrescrita completa do documento.

        Raises:
            InvalidArgumentError: Se o valor não for um documento válido
        """

    @abstractmethod
    def flush(self, timeout: Optional[float] = None) -> int:
        """
        Confirma todas as operações enfileiradas como um único grupo.

        Returns:
            Quantidade de documentos escritos
        """

    @property
    @abstractmethod
    def pending(self) -> int:
        """Quantidade de operações ainda não confirmadas."""


class DocumentStore(ABC):
    """Contrato do banco de documentos transacional."""

    @abstractmethod
    def get_document(self, collection: str, document_id: str,
                     timeout: Optional[float] = None) -> Document:
        """
        Busca um documento por ID.

        Raises:
            NotFoundError: Se o documento não existir
        """

    @abstractmethod
    def set_document(self, collection: str, document_id: str, value: Document,
                     timeout: Optional[float] = None) -> None:
        """Sobrescreve (ou cria) o documento inteiro."""

    @abstractmethod
    def delete_document(self, collection: str, document_id: str,
                        timeout: Optional[float] = None) -> bool:
        """
        Remove um documento.

        Returns:
            True se algum documento foi removido
        """

    @abstractmethod
    def get_documents(self, collection: str, document_ids: Sequence[str],
                      timeout: Optional[float] = None) -> List[Document]:
        """
        Leitura em lote, em uma única ida ao banco.

        A ordem do resultado é a devolvida pelo banco, não necessariamente a
        ordem de `document_ids`. IDs inexistentes são omitidos.
        """

    @abstractmethod
    def query_documents(self, collection: str, query: StoreQuery,
                        timeout: Optional[float] = None) -> Iterator[Document]:
        """
        Executa uma consulta e devolve um iterador preguiçoso.

        Raises:
            IterationFailureError: Durante a iteração, se o cursor falhar
        """

    @abstractmethod
    def run_atomic(self, fn: Callable[[AtomicContext], T], document_id: str = '',
                   timeout: Optional[float] = None) -> T:
        """
        Executa `fn` dentro de uma transação.

        Em caso de conflito a função é executada novamente, conforme a
        política de retry do banco. `fn` não deve ter efeitos colaterais
        fora do contexto recebido.

        Args:
            fn: Função que recebe o AtomicContext
            document_id: ID principal envolvido (usado nas mensagens de erro)
            timeout: Prazo em segundos

        Raises:
            TransactionAbortedError: Se as tentativas se esgotarem
        """

    @abstractmethod
    def new_buffered_writer(self, collection: str) -> BufferedWriter:
        """Cria um buffer de escrita novo para a collection."""

    def ensure_index(self, collection: str, keys: Sequence) -> None:
        """
        Cria um índice, se o banco suportar.

        Args:
            collection: Nome da collection
            keys: Lista de (campo, direção), ex.: [('account_id', 1)]
        """
