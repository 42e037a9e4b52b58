"""
Fixtures compartilhadas dos testes.

Os repositories usam o InMemoryDocumentStore; o adaptador do MongoDB é
testado com objetos pymongo simulados (MagicMock).
"""
from datetime import datetime, timedelta, timezone

import pytest

from core.store.memory_store import InMemoryDocumentStore
from finance.repositories.transaction_repository import TransactionRepository

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Relógio controlado: avança 1 segundo a cada leitura."""

    def __init__(self, start: datetime = BASE_TIME):
        self.current = start

    def __call__(self) -> datetime:
        self.current = self.current + timedelta(seconds=1)
        return self.current


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repo(store, clock):
    return TransactionRepository(
        store=store,
        collection_name='transactions',
        history_name='history',
        clock=clock
    )


@pytest.fixture
def purchase():
    return {
        'account_id': 'A1',
        'card_number': '4111111111111111',
        'type': 'PURCHASE',
        'online_services': ['Amazon Web Services'],
        'posted_time': BASE_TIME,
    }
