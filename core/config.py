"""
Configuração via variáveis de ambiente.

Localização: core/config.py

Lê o arquivo .env (se existir) com python-dotenv e expõe as configurações
usadas pelo acesso ao MongoDB e pelo logging.

Variáveis:
- MONGO_URI: URI completa (tem precedência sobre usuário/senha)
- MONGO_USER / MONGO_PASS / MONGO_HOST: montam a URI mongodb+srv
- MONGO_DB_NAME: nome do banco (default: financeiro_db)
- TRANSACTIONS_COLLECTION: collection das transações (default: transactions)
- HISTORY_SUBCOLLECTION: sub-collection do histórico (default: history)
- MEMORY_STORE_MAX_ATTEMPTS: tentativas do store em memória (default: 5)
- LOG_LEVEL: nível de log (default: INFO)
"""
import logging
import os
import urllib.parse

from dotenv import find_dotenv, load_dotenv

from core.exceptions import ConfigurationError

load_dotenv(find_dotenv())

DEFAULT_DB_NAME = 'financeiro_db'
DEFAULT_TRANSACTIONS_COLLECTION = 'transactions'
DEFAULT_HISTORY_SUBCOLLECTION = 'history'
DEFAULT_MAX_ATTEMPTS = 5


def get_mongo_uri() -> str:
    """
    Monta a URI de conexão do MongoDB.

    Returns:
        URI de conexão

    Raises:
        ConfigurationError: Se nem MONGO_URI nem MONGO_USER/MONGO_PASS estiverem definidos
    """
    uri = os.getenv('MONGO_URI')
    if uri:
        return uri

    user = os.getenv('MONGO_USER')
    password = os.getenv('MONGO_PASS')
    if not user or not password:
        raise ConfigurationError(
            'MONGO_URI ou MONGO_USER/MONGO_PASS não configurados',
            details={'keys': ['MONGO_URI', 'MONGO_USER', 'MONGO_PASS']}
        )

    host = os.getenv('MONGO_HOST', 'localhost')
    return "mongodb+srv://%s:%s@%s/?retryWrites=true&w=majority" % (
        urllib.parse.quote_plus(user),
        urllib.parse.quote_plus(password),
        host,
    )


def get_db_name() -> str:
    return os.getenv('MONGO_DB_NAME', DEFAULT_DB_NAME)


def get_transactions_collection() -> str:
    return os.getenv('TRANSACTIONS_COLLECTION', DEFAULT_TRANSACTIONS_COLLECTION)


def get_history_subcollection() -> str:
    return os.getenv('HISTORY_SUBCOLLECTION', DEFAULT_HISTORY_SUBCOLLECTION)


def get_memory_store_max_attempts() -> int:
    """
    Número máximo de tentativas de uma transação no store em memória.

    Raises:
        ConfigurationError: Se o valor não for um inteiro positivo
    """
    raw_value = os.getenv('MEMORY_STORE_MAX_ATTEMPTS', str(DEFAULT_MAX_ATTEMPTS))
    try:
        attempts = int(raw_value)
    except ValueError as error:
        raise ConfigurationError(
            f"MEMORY_STORE_MAX_ATTEMPTS inválido: esperado inteiro, recebido '{raw_value}'",
            details={'key': 'MEMORY_STORE_MAX_ATTEMPTS', 'value': raw_value}
        ) from error
    if attempts < 1:
        raise ConfigurationError(
            'MEMORY_STORE_MAX_ATTEMPTS deve ser maior que zero',
            details={'key': 'MEMORY_STORE_MAX_ATTEMPTS', 'value': raw_value}
        )
    return attempts


def setup_logging(level: str = None) -> None:
    """
    Configura o logging raiz da aplicação.

    Args:
        level: Nível de log (se None, usa LOG_LEVEL ou INFO)
    """
    level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s %(message)s'
    )
