"""
Repository para transações de cartão.

Localização: finance/repositories/transaction_repository.py

Este repository encapsula todas as operações com a collection 'transactions'
e com o histórico de versões de cada transação (sub-collection 'history').
O schema está documentado em finance/models/transaction_model.py.

Upsert com histórico (upsert_with_history), executado em uma única transação:
1. lê o documento atual; a última versão do histórico é version + 1
   (0 se o documento não existir ou não tiver version)
2. nova_versão = última_versão + 1
3. grava no registro version = nova_versão - 1 e last_updated = agora
4. sobrescreve o documento principal
5. cria a entrada de histórico 'version_<nova_versão>' com a projeção fixa
   do registro que está sendo gravado

Ou seja: o documento principal fica sempre uma versão atrás do rótulo do
histórico, que guarda os dados novos. Depois de N chamadas: version == N - 1
e o histórico tem version_1..version_N.

Datas são gravadas com precisão de milissegundos (a do BSON).
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from core import config
from core.exceptions import IterationFailureError, NotFoundError, StoreError, TransactionAbortedError
from core.repositories.base_repository import BaseRepository
from core.store.base import AtomicContext, DocumentStore, subcollection_path
from finance.models.transaction_model import (
    PROJECTABLE_FIELDS,
    TransactionField,
    TransactionModel,
    history_label,
    truncate_to_millis,
)
from finance.models.transaction_query import TransactionQuery
from finance.repositories.query_builder import build_transaction_query

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TransactionRepository(BaseRepository):
    """
    Repository para gerenciar transações e seu histórico de versões.

    Exemplo de uso:
        repo = TransactionRepository()
        repo.upsert('T1', {'account_id': 'A1', 'type': 'PURCHASE'})
        repo.upsert_with_history('T1', {'account_id': 'A1', 'type': 'REFUND'})
        repo.find_history('T1')
    """

    projectable_fields = tuple(field.value for field in PROJECTABLE_FIELDS)

    def __init__(self, store: Optional[DocumentStore] = None,
                 collection_name: Optional[str] = None,
                 history_name: Optional[str] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        """
        Args:
            store: DocumentStore (default: MongoDB configurado no ambiente)
            collection_name: Collection das transações (default: TRANSACTIONS_COLLECTION)
            history_name: Sub-collection do histórico (default: HISTORY_SUBCOLLECTION)
            clock: Relógio usado em last_updated (default: agora em UTC)
        """
        self.history_name = history_name or config.get_history_subcollection()
        self.clock = clock or _utc_now
        super().__init__(collection_name or config.get_transactions_collection(), store)

    def _ensure_indexes(self):
        """
        Cria índices necessários para otimizar queries.

        Índices:
        - id: leitura com projeção
        - [account_id, posted_time] (desc): busca por conta e período
        - type: busca por tipo
        - online_services: busca por serviço online
        """
        self.store.ensure_index(self.collection_name, [(TransactionField.ID.value, 1)])
        self.store.ensure_index(
            self.collection_name,
            [(TransactionField.ACCOUNT_ID.value, 1), (TransactionField.POSTED_TIME.value, -1)]
        )
        self.store.ensure_index(self.collection_name, [(TransactionField.TYPE.value, 1)])
        self.store.ensure_index(self.collection_name, [(TransactionField.ONLINE_SERVICES.value, 1)])

    def _prepare_document(self, document_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        return super()._prepare_document(document_id, TransactionModel.normalize(data))

    def history_collection(self, transaction_id: str) -> str:
        """Caminho da sub-collection de histórico da transação."""
        return subcollection_path(self.collection_name, transaction_id, self.history_name)

    def upsert_with_history(self, transaction_id: str, data: Mapping[str, Any],
                            timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Grava a transação e acrescenta uma entrada ao histórico, atomicamente.

        A versão é atribuída SOMENTE aqui; qualquer `version` recebido em
        `data` é substituído.

        Args:
            transaction_id: ID da transação
            data: Dados da transação
            timeout: Prazo em segundos (opcional)

        Returns:
            Dict com o documento principal gravado (com version e last_updated)

        Raises:
            InvalidArgumentError: Se o registro for inválido
            TransactionAbortedError: Se a transação desistir após os retries do banco
            StoreError: Se a entrada de histórico da nova versão já existir
        """
        record = self._prepare_document(transaction_id, data)
        main_collection = self.collection_name
        history_collection = self.history_collection(transaction_id)

        def versioned_upsert(context: AtomicContext) -> Dict[str, Any]:
            # Passo 1: última versão do histórico (o documento guarda uma a menos)
            current = context.get(main_collection, transaction_id)
            last_version = 0
            if current is not None:
                version = current.get(TransactionField.VERSION.value)
                if isinstance(version, int) and not isinstance(version, bool):
                    last_version = version + 1

            # Passo 2: incrementa
            new_version = last_version + 1
            label = history_label(new_version)
            if context.get(history_collection, label) is not None:
                raise StoreError(
                    'upsert_with_history',
                    reason=f'entrada de histórico {label} já existe',
                    id=transaction_id, label=label
                )

            document = dict(record)
            document[TransactionField.VERSION.value] = new_version - 1
            document[TransactionField.LAST_UPDATED.value] = truncate_to_millis(self.clock())

            # Passo 3: documento principal
            context.set(main_collection, transaction_id, document)

            # Passo 4: histórico
            context.set(history_collection, label, TransactionModel.history_snapshot(document))
            return document

        try:
            document = self.store.run_atomic(versioned_upsert, document_id=transaction_id, timeout=timeout)
        except (TransactionAbortedError, StoreError) as error:
            logger.error(f"[TRANSACTION_REPO] Falha no upsert com histórico de {transaction_id}: {error}")
            raise

        logger.info(
            f"[TRANSACTION_REPO] Documento {transaction_id} gravado com versão "
            f"{document[TransactionField.VERSION.value]}"
        )
        return document

    def find_history_entry(self, transaction_id: str, version: int,
                           timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Busca a entrada de histórico 'version_<version>'.

        Raises:
            NotFoundError: Se a entrada não existir
        """
        return self.store.get_document(
            self.history_collection(transaction_id), history_label(version), timeout=timeout
        )

    def find_history(self, transaction_id: str,
                     timeout: Optional[float] = None) -> Dict[str, Dict[str, Any]]:
        """
        Lê o histórico completo da transação, em ordem de versão.

        As entradas formam a sequência version_1..version_N sem buracos;
        a leitura para na primeira versão inexistente.

        Returns:
            Dict ordenado {'version_1': {...}, 'version_2': {...}, ...}
            (vazio se não houver histórico)
        """
        history: Dict[str, Dict[str, Any]] = {}
        version = 1
        while True:
            try:
                entry = self.find_history_entry(transaction_id, version, timeout=timeout)
            except NotFoundError:
                return history
            history[history_label(version)] = entry
            version += 1

    def search(self, query: TransactionQuery, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        """
        Busca transações.

        O cursor é consumido por completo. Se a iteração falhar no meio, a
        busca falha inteira (resultados parciais são descartados).

        Args:
            query: Filtros da busca (offset é ignorado)
            timeout: Prazo em segundos (opcional)

        Returns:
            Lista de transações

        Raises:
            InvalidArgumentError: Se start_time/end_time forem inválidos
            IterationFailureError: Se o cursor falhar
        """
        store_query = build_transaction_query(query)
        if query.offset:
            logger.debug(f"[TRANSACTION_REPO] offset={query.offset} ignorado (não suportado pelo banco)")

        results = []
        try:
            for document in self.store.query_documents(self.collection_name, store_query, timeout=timeout):
                results.append(document)
        except IterationFailureError as error:
            logger.error(f"[TRANSACTION_REPO] Erro ao buscar transações após {len(results)} documentos: {error}")
            raise
        return results
