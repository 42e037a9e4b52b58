"""
Vocabulário de filtros e consulta do banco de documentos.

Localização: core/store/filters.py

Existem limites no número de operadores e disjunções por consulta
(ex.: tamanho máximo da lista de um filtro `in`); respeitá-los é
responsabilidade de quem monta a consulta.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional, Tuple


class Operator(str, Enum):
    """Operadores de comparação aceitos pelo store."""

    EQUAL = '=='
    NOT_EQUAL = '!='
    LESS_THAN = '<'
    LESS_THAN_OR_EQUAL = '<='
    GREATER_THAN = '>'
    GREATER_THAN_OR_EQUAL = '>='
    # Campo contém um dos valores da lista
    IN = 'in'
    # Lista de exclusão: se o campo tiver um desses valores, fica de fora
    NOT_IN = 'not-in'
    # Campo array contém UM valor
    ARRAY_CONTAINS = 'array-contains'
    # Campo array contém qualquer um dos valores passados
    ARRAY_CONTAINS_ANY = 'array-contains-any'


# Operadores que exigem uma lista como valor
LIST_OPERATORS = (Operator.IN, Operator.NOT_IN, Operator.ARRAY_CONTAINS_ANY)


@dataclass(frozen=True)
class Filter:
    """Predicado simples: `field op value`."""

    field: str
    op: Operator
    value: Any

    def __post_init__(self):
        op = Operator(self.op)
        value = self.value
        if op in LIST_OPERATORS:
            if isinstance(value, (str, bytes)) or not hasattr(value, '__iter__'):
                raise ValueError(f"Operador '{op.value}' exige uma lista de valores")
            value = tuple(value)
        object.__setattr__(self, 'op', op)
        object.__setattr__(self, 'value', value)


@dataclass(frozen=True)
class StoreQuery:
    """
    Consulta imutável sobre uma collection.

    Os filtros ficam na ordem em que foram adicionados.

    Exemplo de uso:
        query = (StoreQuery()
                 .where('account_id', Operator.EQUAL, 'A1')
                 .limit(10))
    """

    filters: Tuple[Filter, ...] = ()
    max_results: Optional[int] = None
    fields: Optional[Tuple[str, ...]] = None

    def where(self, field_name: str, op: Operator, value: Any) -> 'StoreQuery':
        return replace(self, filters=self.filters + (Filter(field_name, op, value),))

    def limit(self, max_results: int) -> 'StoreQuery':
        if max_results <= 0:
            raise ValueError('limit deve ser maior que zero')
        return replace(self, max_results=max_results)

    def select(self, *fields: str) -> 'StoreQuery':
        return replace(self, fields=tuple(fields))
