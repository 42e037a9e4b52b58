"""
Stores do core.

Localização: core/store/

Implementações do banco de documentos usado pelos repositories:
- MongoDocumentStore: MongoDB via pymongo (produção)
- InMemoryDocumentStore: memória (testes e desenvolvimento local)
"""
from .base import AtomicContext, BufferedWriter, DocumentStore, subcollection_path
from .filters import Filter, Operator, StoreQuery
from .memory_store import InMemoryDocumentStore
from .mongo_store import MongoDocumentStore

__all__ = [
    'AtomicContext', 'BufferedWriter', 'DocumentStore', 'subcollection_path',
    'Filter', 'Operator', 'StoreQuery',
    'InMemoryDocumentStore', 'MongoDocumentStore',
]
