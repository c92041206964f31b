"""Shared fixtures.

Unit tests run against an asyncpg-shaped fake pool: each query method of the
connection is an AsyncMock, so a test scripts the rows it needs with
``return_value`` / ``side_effect`` and asserts on the SQL that was sent.
"""

from contextlib import asynccontextmanager
from decimal import Decimal
from datetime import datetime, timezone
from typing import Any, Dict
from unittest.mock import AsyncMock

import pytest

class FakeTransaction:
    """Async context manager standing in for ``Connection.transaction()``."""

    def __init__(self, conn: 'FakeConnection'):
        self.conn = conn

    async def __aenter__(self):
        self.conn.transactions += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.conn.commits += 1
        else:
            self.conn.rollbacks += 1
        return False

class FakeConnection:
    """Connection whose query methods are AsyncMocks."""

    def __init__(self):
        self.fetchrow = AsyncMock(return_value=None)
        self.fetch = AsyncMock(return_value=[])
        self.fetchval = AsyncMock(return_value=None)
        self.execute = AsyncMock(return_value='DELETE 0')
        self.transactions = 0
        self.commits = 0
        self.rollbacks = 0

    def transaction(self, **kwargs):
        return FakeTransaction(self)

    def queries(self, method: str = 'execute'):
        """SQL text of every call made with one query method."""
        return [call.args[0] for call in getattr(self, method).call_args_list]

class FakePool:
    """Pool handing out a single FakeConnection."""

    def __init__(self, conn: FakeConnection = None):
        self.conn = conn or FakeConnection()

    @asynccontextmanager
    async def _acquire(self):
        yield self.conn

    def acquire(self):
        return self._acquire()

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

def product_row(**overrides) -> Dict[str, Any]:
    row = {
        'id': 1,
        'name': 'Wireless Headphones',
        'description': 'Noise cancelling',
        'price': Decimal('100.00'),
        'stock': 10,
        'image_url': None,
        'category': 'Electronics'
    }
    row.update(overrides)
    return row

def order_row(**overrides) -> Dict[str, Any]:
    row = {
        'id': 1,
        'user_id': 3,
        'total': Decimal('25.00'),
        'status': 'pending',
        'shipping_address': '1 Main Street',
        'delivery_date': NOW,
        'tracking_number': '+15551234',
        'middleman_id': None,
        'created_at': NOW,
        'updated_at': NOW
    }
    row.update(overrides)
    return row

@pytest.fixture
def conn():
    return FakeConnection()

@pytest.fixture
def pool(conn):
    return FakePool(conn)

@pytest.fixture
def make_product():
    return product_row

@pytest.fixture
def make_order():
    return order_row
