"""
Conexão com o MongoDB.

Localização: core/database.py

Mantém um único MongoClient por processo, criado na primeira chamada.
Os repositories usam `get_document_store()`; só código de infraestrutura
deve usar `get_database()` diretamente.
"""
import logging
from typing import Optional

from pymongo import MongoClient
from pymongo.database import Database

from core import config
from core.store.mongo_store import MongoDocumentStore

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
_store: Optional[MongoDocumentStore] = None


def get_client() -> MongoClient:
    """
    Retorna o MongoClient do processo, criando-o se necessário.

    Raises:
        ConfigurationError: Se as credenciais não estiverem configuradas
    """
    global _client
    if _client is None:
        _client = MongoClient(config.get_mongo_uri(), tz_aware=True)
        logger.info("[DATABASE] MongoClient criado")
    return _client


def get_database() -> Database:
    """Retorna o banco configurado em MONGO_DB_NAME."""
    return get_client()[config.get_db_name()]


def get_document_store() -> MongoDocumentStore:
    """Retorna o DocumentStore do MongoDB compartilhado pelo processo."""
    global _store
    if _store is None:
        _store = MongoDocumentStore(get_database(), client=get_client())
    return _store


def close_connection() -> None:
    """Fecha o MongoClient (se existir) e descarta o store."""
    global _client, _store
    if _client is not None:
        _client.close()
        logger.info("[DATABASE] MongoClient fechado")
    _client = None
    _store = None
