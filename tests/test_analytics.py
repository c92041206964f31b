"""Tests for dashboard aggregates."""

import pytest

from analytics import AnalyticsManager

@pytest.mark.asyncio
async def test_summary(pool, conn):
    conn.fetch.side_effect = [
        [{'role': 'admin', 'count': 1}, {'role': 'customer', 'count': 4}],
        [{'category': 'Electronics', 'count': 3}],
        [{'category': 'Electronics', 'orders': 2, 'units': 5}],
    ]

    summary = await AnalyticsManager(pool=pool).get_summary()

    assert summary['users'] == {
        'totalUsers': 5,
        'admins': 1,
        'middlemen': 0,
        'regularUsers': 4
    }
    assert summary['productsByCategory'] == [{'category': 'Electronics', 'count': 3}]
    assert summary['ordersByCategory'][0]['units'] == 5
    assert conn.transactions == 1

@pytest.mark.asyncio
async def test_cancelled_orders_are_not_counted(pool, conn):
    await AnalyticsManager(pool=pool).get_summary()

    assert "o.status <> 'cancelled'" in conn.queries('fetch')[2]
