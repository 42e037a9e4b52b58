"""
Parâmetros de busca de transações.

Localização: finance/models/transaction_query.py
"""
from dataclasses import dataclass, field
from typing import List


@dataclass
class TransactionQuery:
    """
    Filtros da busca de transações. Campos vazios não geram filtro.

    Attributes:
        account_id: Igualdade em account_id
        types: type IN types (respeite o limite de valores do banco)
        online_services: online_services contém qualquer um destes
        start_time: Início (inclusivo) em RFC 3339; só vale junto com end_time
        end_time: Fim (exclusivo) em RFC 3339; só vale junto com start_time
        limit: Máximo de resultados (0 = sem limite)
        offset: NÃO IMPLEMENTADO. O banco não suporta offset nativamente;
            o campo existe para compatibilidade futura e é ignorado.
    """

    account_id: str = ''
    types: List[str] = field(default_factory=list)
    online_services: List[str] = field(default_factory=list)
    start_time: str = ''
    end_time: str = ''
    limit: int = 0
    offset: int = 0
