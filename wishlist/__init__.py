"""Wishlist module.

A wishlist entry is a (user, product) pair. Adding the same product twice
leaves a single entry. Wishlist holders are the recipients of price-drop and
restock notifications.
"""
import logging
from typing import Dict, List, Any

from asyncpg.exceptions import ForeignKeyViolationError

from catalog import ProductNotFoundError
from database import get_pool
from validation import require_positive_id

logger = logging.getLogger(__name__)

class WishlistManager:
    """Manager class for handling wishlist operations."""

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def add(self, user_id: int, product_id: int) -> Dict[str, Any]:
        """Add a product to a user's wishlist.

        Idempotent: an existing entry is returned unchanged.

        Raises:
            ProductNotFoundError: If the product doesn't exist
        """
        user_id = require_positive_id(user_id, 'user_id')
        product_id = require_positive_id(product_id, 'product_id')
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        '''
                        INSERT INTO wishlists (user_id, product_id)
                        VALUES ($1, $2)
                        ON CONFLICT (user_id, product_id) DO NOTHING
                        ''',
                        user_id,
                        product_id
                    )
                    entry = await conn.fetchrow(
                        '''
                        SELECT id, user_id, product_id
                        FROM wishlists
                        WHERE user_id = $1 AND product_id = $2
                        ''',
                        user_id,
                        product_id
                    )
        except ForeignKeyViolationError:
            raise ProductNotFoundError(f"Product {product_id} not found")

        logger.debug(f"Product {product_id} on wishlist of user {user_id}")
        return dict(entry)

    async def list(self, user_id: int) -> List[Dict[str, Any]]:
        """List the wishlisted products of a user, newest entry first."""
        user_id = require_positive_id(user_id, 'user_id')
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT
                    w.id,
                    w.product_id,
                    p.name,
                    p.description,
                    p.price,
                    p.stock,
                    p.image_url,
                    p.category
                FROM wishlists w
                JOIN products p ON p.id = w.product_id
                WHERE w.user_id = $1
                ORDER BY w.id DESC
                ''',
                user_id
            )
        return [dict(row) for row in rows]

    async def remove(self, user_id: int, product_id: int) -> bool:
        """Remove a product from a user's wishlist.

        Returns:
            False if the product was not on the wishlist
        """
        user_id = require_positive_id(user_id, 'user_id')
        product_id = require_positive_id(product_id, 'product_id')
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            result = await conn.execute(
                'DELETE FROM wishlists WHERE user_id = $1 AND product_id = $2',
                user_id,
                product_id
            )
        return int(result.split()[-1]) > 0

__all__ = ['WishlistManager']
