"""
Exceções da camada de acesso a dados.

Localização: core/exceptions.py

Todas as falhas levantadas pelos repositories e pelos stores derivam de
DataAccessError. Cada exceção carrega em `details` o id, campo ou limite
que causou o erro, para diagnóstico sem precisar repetir a operação.

Taxonomia:
- NotFoundError: busca pontual (ou com projeção) não encontrou documento.
  É um resultado esperado, não deve ser tratado como falha fatal.
- InvalidArgumentError: argumento inválido (campo de projeção desconhecido,
  quantidade de ids diferente da de registros, intervalo de tempo malformado).
- TransactionAbortedError: transação desistiu após esgotar as tentativas.
- IterationFailureError: erro ao percorrer o cursor de uma consulta.
"""
from typing import Any, Dict, Optional


class DataAccessError(Exception):
    """Exceção base da camada de acesso a dados."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(DataAccessError):
    """Configuração ausente ou inválida (variáveis de ambiente)."""


class NotFoundError(DataAccessError):
    """Documento não encontrado."""

    def __init__(self, collection: str, document_id: str):
        super().__init__(
            message=f'Documento "{document_id}" não encontrado em {collection}',
            details={'collection': collection, 'id': document_id}
        )


class InvalidArgumentError(DataAccessError, ValueError):
    """
    Argumento inválido.

    Também é um ValueError, para quem já trata validação dessa forma.
    """

    def __init__(self, message: str, field: Optional[str] = None,
                 value: Any = None, **details: Any):
        payload = dict(details)
        if field is not None:
            payload['field'] = field
            payload['value'] = value
        super().__init__(message=message, details=payload)
        self.field = field


class TransactionAbortedError(DataAccessError):
    """Transação abortada após esgotar a política de retry do store."""

    def __init__(self, document_id: str, reason: Optional[str] = None):
        message = f'Transação abortada para o documento "{document_id}"'
        if reason:
            message += f': {reason}'
        super().__init__(message=message, details={'id': document_id, 'reason': reason})


class IterationFailureError(DataAccessError):
    """Erro ao consumir o cursor de uma consulta (diferente de fim do cursor)."""

    def __init__(self, collection: str, reason: Optional[str] = None,
                 retrieved: int = 0):
        message = f'Falha ao iterar documentos de {collection}'
        if reason:
            message += f': {reason}'
        super().__init__(
            message=message,
            details={'collection': collection, 'reason': reason, 'retrieved': retrieved}
        )


class StoreError(DataAccessError):
    """Falha genérica reportada pelo banco de documentos."""

    def __init__(self, operation: str, reason: Optional[str] = None, **details: Any):
        message = f'Operação "{operation}" falhou no banco de documentos'
        if reason:
            message += f': {reason}'
        super().__init__(message=message, details={'operation': operation, 'reason': reason, **details})
        self.operation = operation


class OperationTimeoutError(StoreError):
    """Prazo (timeout) da operação esgotado antes da resposta do banco."""
