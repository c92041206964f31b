"""Cart module for per-user shopping carts.

Each cart holds at most one row per product. Stock is not checked here; a cart
may reference a product that has since sold out and checkout re-validates it.
"""
import logging
from decimal import Decimal
from typing import Dict, List, Optional, Any

from asyncpg.exceptions import ForeignKeyViolationError

from catalog import ProductNotFoundError
from database import get_pool
from validation import InvalidArgumentError, require_positive_id, require_quantity

logger = logging.getLogger(__name__)

class CartManager:
    """Manager class for handling cart operations."""

    def __init__(self, pool=None):
        """Initialize the cart manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def get_cart(self, user_id: int) -> List[Dict[str, Any]]:
        """Get the cart of a user joined with current product data.

        Returns:
            List of cart rows, each with product name, current price, stock
            and the line subtotal at the current price
        """
        user_id = require_positive_id(user_id, 'user_id')
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT
                    c.product_id,
                    c.quantity,
                    c.added_at,
                    p.name,
                    p.price,
                    p.stock,
                    p.image_url,
                    p.category
                FROM cart_items c
                JOIN products p ON p.id = c.product_id
                WHERE c.user_id = $1
                ORDER BY c.added_at, c.id
                ''',
                user_id
            )

        items = []
        for row in rows:
            item = dict(row)
            item['subtotal'] = Decimal(item['price']) * item['quantity']
            items.append(item)
        return items

    async def add_item(self, user_id: int, product_id: int, quantity: int = 1) -> Dict[str, Any]:
        """Add a product to the cart, summing with any existing quantity.

        Raises:
            InvalidArgumentError: If quantity is below 1
            ProductNotFoundError: If the product doesn't exist
        """
        user_id = require_positive_id(user_id, 'user_id')
        product_id = require_positive_id(product_id, 'product_id')
        quantity = require_quantity(quantity)
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    '''
                    INSERT INTO cart_items (user_id, product_id, quantity)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (user_id, product_id)
                    DO UPDATE SET quantity = cart_items.quantity + EXCLUDED.quantity
                    RETURNING user_id, product_id, quantity
                    ''',
                    user_id,
                    product_id,
                    quantity
                )
        except ForeignKeyViolationError:
            raise ProductNotFoundError(f"Product {product_id} not found")

        logger.debug(f"Cart of user {user_id}: product {product_id} x{row['quantity']}")
        return dict(row)

    async def set_quantity(
        self,
        user_id: int,
        product_id: int,
        quantity: int
    ) -> Optional[Dict[str, Any]]:
        """Overwrite the quantity of a cart line.

        A quantity of 0 or less removes the line.

        Returns:
            The updated line, or None if it was removed
        """
        user_id = require_positive_id(user_id, 'user_id')
        product_id = require_positive_id(product_id, 'product_id')
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidArgumentError('quantity', 'must be an integer')

        if quantity <= 0:
            await self.remove_item(user_id, product_id)
            return None

        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    '''
                    INSERT INTO cart_items (user_id, product_id, quantity)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (user_id, product_id)
                    DO UPDATE SET quantity = EXCLUDED.quantity
                    RETURNING user_id, product_id, quantity
                    ''',
                    user_id,
                    product_id,
                    quantity
                )
        except ForeignKeyViolationError:
            raise ProductNotFoundError(f"Product {product_id} not found")
        return dict(row)

    async def remove_item(self, user_id: int, product_id: int) -> bool:
        """Remove one product from the cart. Returns False if it wasn't there."""
        user_id = require_positive_id(user_id, 'user_id')
        product_id = require_positive_id(product_id, 'product_id')
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            result = await conn.execute(
                'DELETE FROM cart_items WHERE user_id = $1 AND product_id = $2',
                user_id,
                product_id
            )
        return int(result.split()[-1]) > 0

    async def clear(self, user_id: int) -> bool:
        """Empty the cart. Returns False if it was already empty."""
        user_id = require_positive_id(user_id, 'user_id')
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            result = await conn.execute('DELETE FROM cart_items WHERE user_id = $1', user_id)
        return int(result.split()[-1]) > 0

__all__ = ['CartManager']
