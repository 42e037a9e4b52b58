"""
Repository base sobre o banco de documentos.

Localização: core/repositories/base_repository.py

Este é um repository base que pode ser estendido por outros repositories
para compartilhar funcionalidades comuns: leitura pontual, leitura com
projeção, upsert, remoção e leitura/escrita em lote.

Todos os métodos aceitam `timeout` (segundos), repassado ao store.
"""
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from core.exceptions import InvalidArgumentError, NotFoundError
from core.store.base import DocumentStore, check_document
from core.store.filters import Operator, StoreQuery

logger = logging.getLogger(__name__)


class BaseRepository:
    """
    Repository base com operações CRUD comuns.

    Exemplo de uso:
        class TransactionRepository(BaseRepository):
            projectable_fields = ('account_id', 'type')

            def __init__(self, store=None):
                super().__init__('transactions', store)
    """

    # Campo que guarda o ID dentro do documento
    id_field = 'id'

    # Campos aceitos em find_by_id_with_fields (vazio = nenhuma projeção permitida)
    projectable_fields: Tuple[str, ...] = ()

    def __init__(self, collection_name: str, store: Optional[DocumentStore] = None):
        """
        Inicializa o repository.

        Args:
            collection_name: Nome da collection
            store: DocumentStore (default: MongoDB configurado no ambiente)
        """
        if store is None:
            from core.database import get_document_store
            store = get_document_store()
        self.store = store
        self.collection_name = collection_name
        self._ensure_indexes()

    def _ensure_indexes(self):
        """
        Cria índices necessários.
        Deve ser sobrescrito nas classes filhas.
        """
        pass

    def _prepare_document(self, document_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Valida o registro e grava o ID no documento.

        Pode ser sobrescrito nas classes filhas para normalizar os dados.

        Raises:
            InvalidArgumentError: Se o registro for inválido ou tiver outro ID
        """
        check_document(document_id, data)
        document = dict(data)
        current_id = document.get(self.id_field)
        if current_id is not None and current_id != document_id:
            raise InvalidArgumentError(
                f'ID do registro ("{current_id}") difere do ID informado ("{document_id}")',
                field=self.id_field, value=current_id, id=document_id
            )
        document[self.id_field] = document_id
        return document

    def find_by_id(self, document_id: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Busca documento por ID.

        Args:
            document_id: ID do documento
            timeout: Prazo em segundos (opcional)

        Returns:
            Dict com dados do documento

        Raises:
            NotFoundError: Se o documento não existir
        """
        try:
            return self.store.get_document(self.collection_name, document_id, timeout=timeout)
        except NotFoundError:
            logger.debug(f"[REPOSITORY] {self.collection_name}/{document_id} não encontrado")
            raise

    def _validate_fields(self, fields: Iterable[Any]) -> List[str]:
        names = []
        for field in fields:
            name = getattr(field, 'value', field)
            if name not in self.projectable_fields:
                raise InvalidArgumentError(
                    f'Campo "{name}" não está entre os campos aceitos: {", ".join(self.projectable_fields)}',
                    field=str(name), value=name
                )
            names.append(name)
        return names

    def find_by_id_with_fields(self, document_id: str, fields: Sequence[Any],
                               timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Busca documento por ID devolvendo apenas alguns campos.

        Não melhora performance (o banco lê o documento inteiro), mas permite
        devolver só os campos pedidos. O ID é sempre incluído.
        Sem campos, equivale a find_by_id.

        Args:
            document_id: ID do documento
            fields: Campos desejados (devem estar em projectable_fields)
            timeout: Prazo em segundos (opcional)

        Returns:
            Dict com o ID e os campos pedidos que existirem no documento

        Raises:
            InvalidArgumentError: Se algum campo não for aceito
            NotFoundError: Se nenhum documento casar com o ID
        """
        if not fields:
            return self.find_by_id(document_id, timeout=timeout)

        names = self._validate_fields(fields)

        query = (StoreQuery()
                 .where(self.id_field, Operator.EQUAL, document_id)
                 .select(*names)
                 .limit(1))

        for document in self.store.query_documents(self.collection_name, query, timeout=timeout):
            document[self.id_field] = document_id
            return document

        logger.debug(f"[REPOSITORY] {self.collection_name}/{document_id} não encontrado (projeção)")
        raise NotFoundError(self.collection_name, document_id)

    def upsert(self, document_id: str, data: Mapping[str, Any],
               timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Cria ou sobrescreve o documento inteiro (sem versão, sem histórico).

        Args:
            document_id: ID do documento
            data: Dados do documento
            timeout: Prazo em segundos (opcional)

        Returns:
            Dict com os dados gravados
        """
        document = self._prepare_document(document_id, data)
        self.store.set_document(self.collection_name, document_id, document, timeout=timeout)
        return document

    def delete(self, document_id: str, timeout: Optional[float] = None) -> bool:
        """
        Deleta um documento.

        Returns:
            True se deletado com sucesso
        """
        return self.store.delete_document(self.collection_name, document_id, timeout=timeout)

    def find_many_by_ids(self, document_ids: Sequence[str],
                         timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        """
        Busca vários documentos em uma única leitura em lote.

        A ordem do resultado é a do banco, NÃO a de `document_ids`; quem
        precisar alinhar com a entrada deve reordenar pelo ID. IDs
        inexistentes são omitidos.

        Args:
            document_ids: IDs dos documentos
            timeout: Prazo em segundos (opcional)

        Returns:
            Lista de documentos encontrados
        """
        if not document_ids:
            return []
        return self.store.get_documents(self.collection_name, list(document_ids), timeout=timeout)

    def upsert_many(self, document_ids: Sequence[str], records: Sequence[Mapping[str, Any]],
                    timeout: Optional[float] = None) -> int:
        """
        Cria ou sobrescreve vários documentos com um único flush.

        Cada chamada usa um buffer novo. Se algum registro for inválido, a
        operação para imediatamente e nada é confirmado (o buffer é
        descartado sem flush).

        Args:
            document_ids: IDs dos documentos
            records: Registros, na mesma ordem dos IDs
            timeout: Prazo em segundos (opcional)

        Returns:
            Quantidade de documentos gravados

        Raises:
            InvalidArgumentError: Se as quantidades forem diferentes ou algum registro for inválido
        """
        if len(document_ids) != len(records):
            raise InvalidArgumentError(
                'A quantidade de ids não corresponde à quantidade de documentos',
                ids=len(document_ids), records=len(records)
            )

        writer = self.store.new_buffered_writer(self.collection_name)
        for document_id, data in zip(document_ids, records):
            writer.enqueue_set(document_id, self._prepare_document(document_id, data))

        # O flush é sempre manual
        written = writer.flush(timeout=timeout)
        logger.info(f"[REPOSITORY] {written} documentos gravados em {self.collection_name}")
        return written
