"""
Repositories do core.

Localização: core/repositories/

Repositories são a camada de acesso a dados (Data Access Layer).
Eles encapsulam todas as operações com o banco de documentos, isolando a
lógica de acesso a dados do resto da aplicação.

Estrutura:
- Cada repository representa uma collection
- Métodos CRUD básicos (leitura, upsert, remoção, lote)
- Queries específicas do domínio nas classes filhas
- Validações básicas de dados
"""
from .base_repository import BaseRepository

__all__ = ['BaseRepository']
