"""Aggregate counts for the admin dashboard."""
import logging
from typing import Dict, List, Any

from database import get_pool

logger = logging.getLogger(__name__)

class AnalyticsManager:
    """Read-only aggregate queries over users, products and orders."""

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def users_by_role(self, conn) -> Dict[str, int]:
        rows = await conn.fetch('SELECT role, count(*) AS count FROM users GROUP BY role')
        counts = {row['role']: row['count'] for row in rows}
        return {
            'totalUsers': sum(counts.values()),
            'admins': counts.get('admin', 0),
            'middlemen': counts.get('middleman', 0),
            'regularUsers': counts.get('customer', 0)
        }

    async def products_by_category(self, conn) -> List[Dict[str, Any]]:
        rows = await conn.fetch(
            '''
            SELECT category, count(*) AS count
            FROM products
            GROUP BY category
            ORDER BY category
            '''
        )
        return [dict(row) for row in rows]

    async def orders_by_category(self, conn) -> List[Dict[str, Any]]:
        """Orders and units sold per product category, cancelled orders excluded."""
        rows = await conn.fetch(
            '''
            SELECT
                p.category,
                count(DISTINCT oi.order_id) AS orders,
                sum(oi.quantity) AS units
            FROM order_items oi
            JOIN orders o ON o.id = oi.order_id
            JOIN products p ON p.id = oi.product_id
            WHERE o.status <> 'cancelled'
            GROUP BY p.category
            ORDER BY p.category
            '''
        )
        return [dict(row) for row in rows]

    async def get_summary(self) -> Dict[str, Any]:
        """Get all dashboard aggregates in one snapshot."""
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction(readonly=True):
                return {
                    'users': await self.users_by_role(conn),
                    'productsByCategory': await self.products_by_category(conn),
                    'ordersByCategory': await self.orders_by_category(conn)
                }

__all__ = ['AnalyticsManager']
