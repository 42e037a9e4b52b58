"""
Modelo de transação de cartão.

Localização: finance/models/transaction_model.py

Schema da collection transactions:
{
  _id: String,                 // mesmo valor de id
  id: String,                  // chave estável, imutável após a criação
  account_id: String,
  card_number: String,
  type: String,                // ex.: 'PURCHASE', 'REFUND'
  online_services: [String],   // conjunto (ordem não importa, sem repetição)
  posted_time: ISODate,
  version: Number,             // atribuído somente pelo upsert com histórico
  last_updated: ISODate
}

Histórico (sub-collection transactions/<id>/history), um documento por
upsert com histórico, com chave 'version_<N>':
{
  account_id, card_number, online_services, posted_time, type
}
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from dateutil import parser as date_parser

from core.exceptions import InvalidArgumentError


class TransactionField(str, Enum):
    """Nomes dos campos gravados (o banco diferencia maiúsculas de minúsculas)."""

    ID = 'id'
    ACCOUNT_ID = 'account_id'
    CARD_NUMBER = 'card_number'
    TYPE = 'type'
    ONLINE_SERVICES = 'online_services'
    POSTED_TIME = 'posted_time'
    VERSION = 'version'
    LAST_UPDATED = 'last_updated'


# Campos que podem ser pedidos em uma leitura com projeção
PROJECTABLE_FIELDS = (
    TransactionField.ACCOUNT_ID,
    TransactionField.CARD_NUMBER,
    TransactionField.ONLINE_SERVICES,
    TransactionField.POSTED_TIME,
    TransactionField.TYPE,
)

# Campos copiados para cada entrada do histórico (version e last_updated ficam de fora)
HISTORY_FIELDS = PROJECTABLE_FIELDS

HISTORY_LABEL_PREFIX = 'version_'

_STRING_FIELDS = (
    TransactionField.ID,
    TransactionField.ACCOUNT_ID,
    TransactionField.CARD_NUMBER,
    TransactionField.TYPE,
)
_TIMESTAMP_FIELDS = (TransactionField.POSTED_TIME, TransactionField.LAST_UPDATED)
_KNOWN_FIELDS = {field.value for field in TransactionField}


def new_transaction_id() -> str:
    """Gera um ID novo (uuid4) para uma transação."""
    return str(uuid.uuid4())


def history_label(version: int) -> str:
    """Chave da entrada de histórico: history_label(3) -> 'version_3'."""
    return f'{HISTORY_LABEL_PREFIX}{version}'


def parse_rfc3339(value: str, field: str) -> datetime:
    """
    Converte uma string RFC 3339 (ex.: '2024-05-01T10:00:00Z') em datetime.

    O offset de fuso é obrigatório.

    Raises:
        InvalidArgumentError: Se a string não for RFC 3339
    """
    try:
        parsed = date_parser.isoparse(value)
    except (ValueError, OverflowError, TypeError) as error:
        raise InvalidArgumentError(
            f'{field} inválido: "{value}" não é um timestamp RFC 3339',
            field=field, value=value
        ) from error
    if parsed.tzinfo is None:
        raise InvalidArgumentError(
            f'{field} inválido: "{value}" não tem fuso horário (RFC 3339)',
            field=field, value=value
        )
    return parsed


def truncate_to_millis(value: datetime) -> datetime:
    """Descarta os microssegundos que o BSON não guarda (precisão de milissegundos)."""
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def _to_timestamp(value: Any, field: str) -> datetime:
    if isinstance(value, datetime):
        # Datas sem fuso são tratadas como UTC (mesmo comportamento do MongoDB)
        value = value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
        return truncate_to_millis(value)
    if isinstance(value, str):
        return truncate_to_millis(parse_rfc3339(value, field))
    raise InvalidArgumentError(
        f'{field} deve ser datetime ou string RFC 3339, recebido {type(value).__name__}',
        field=field, value=value
    )


def _to_service_list(value: Any) -> List[str]:
    field = TransactionField.ONLINE_SERVICES.value
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise InvalidArgumentError(
            f'{field} deve ser uma lista de strings', field=field, value=value
        )
    services = list(value)
    for service in services:
        if not isinstance(service, str):
            raise InvalidArgumentError(
                f'{field} deve conter apenas strings, recebido {service!r}',
                field=field, value=service
            )
    # Conjunto: remove repetidos mantendo a primeira ocorrência
    return list(dict.fromkeys(services))


class TransactionModel:
    """
    Estrutura de dados de uma transação.

    Exemplo de uso:
        data = TransactionModel.create_transaction_data(
            account_id='acct_001',
            card_number='4111111111111111',
            transaction_type='PURCHASE',
            online_services=['Amazon Web Services']
        )
    """

    @staticmethod
    def create_transaction_data(account_id: str, card_number: str,
                                transaction_type: str,
                                posted_time: Optional[datetime] = None,
                                online_services: Optional[Iterable[str]] = None,
                                transaction_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Cria a estrutura de dados de uma transação.

        Args:
            account_id: ID da conta
            card_number: Número do cartão
            transaction_type: Tipo ('PURCHASE', 'REFUND', ...)
            posted_time: Data de lançamento (default: agora, UTC)
            online_services: Serviços online associados (opcional)
            transaction_id: ID da transação (default: uuid novo)

        Returns:
            Dict com dados da transação
        """
        return TransactionModel.normalize({
            TransactionField.ID.value: transaction_id or new_transaction_id(),
            TransactionField.ACCOUNT_ID.value: account_id,
            TransactionField.CARD_NUMBER.value: card_number,
            TransactionField.TYPE.value: transaction_type,
            TransactionField.POSTED_TIME.value: posted_time or datetime.now(timezone.utc),
            TransactionField.ONLINE_SERVICES.value: list(online_services or []),
        })

    @staticmethod
    def normalize(data: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Valida e normaliza um registro antes da gravação.

        - campos desconhecidos são rejeitados
        - campos com valor None são omitidos
        - online_services vira lista sem repetições
        - timestamps aceitam datetime ou string RFC 3339
        - version deve ser inteiro não negativo

        Args:
            data: Registro recebido

        Returns:
            Novo dict normalizado

        Raises:
            InvalidArgumentError: Se o registro for inválido
        """
        if not isinstance(data, Mapping):
            raise InvalidArgumentError(
                f'Transação inválida: esperado dict, recebido {type(data).__name__}',
                field='record', value=type(data).__name__
            )

        unknown = [name for name in data if name not in _KNOWN_FIELDS]
        if unknown:
            raise InvalidArgumentError(
                f'Campos desconhecidos na transação: {", ".join(map(str, unknown))}',
                field=str(unknown[0]), value=unknown
            )

        normalized: Dict[str, Any] = {}
        for name, value in data.items():
            if value is None:
                continue
            if name in _STRING_FIELDS:
                if not isinstance(value, str):
                    raise InvalidArgumentError(
                        f'{name} deve ser string, recebido {type(value).__name__}',
                        field=name, value=value
                    )
                normalized[name] = value
            elif name in _TIMESTAMP_FIELDS:
                normalized[name] = _to_timestamp(value, name)
            elif name == TransactionField.ONLINE_SERVICES:
                normalized[name] = _to_service_list(value)
            elif name == TransactionField.VERSION:
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise InvalidArgumentError(
                        f'version deve ser inteiro não negativo, recebido {value!r}',
                        field=name, value=value
                    )
                normalized[name] = value
        return normalized

    @staticmethod
    def history_snapshot(data: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Projeção fixa gravada no histórico (sem version e last_updated).
        """
        return {
            field.value: data[field.value]
            for field in HISTORY_FIELDS
            if field.value in data
        }
