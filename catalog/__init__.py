"""Catalog module for managing products and their price history.

This module provides functionality for:
- Creating, updating and deleting products
- Listing products, optionally by category
- Recording every price a product has had, oldest to newest

Price history is append-only. Creating a product records its first price and
every update that changes the price records the new one, in the same
transaction as the product write.
"""

import logging
from typing import Dict, List, Optional, Any

from asyncpg.exceptions import ForeignKeyViolationError

from database import get_pool
from validation import InvalidArgumentError, require_positive_id, require_price

logger = logging.getLogger(__name__)

# Fields an admin may change on a product
MUTABLE_FIELDS = {
    'name',
    'description',
    'price',
    'stock',
    'image_url',
    'category'
}

PRODUCT_COLUMNS = 'id, name, description, price, stock, image_url, category'

class CatalogError(Exception):
    """Base exception for catalog operations."""
    pass

class ProductNotFoundError(CatalogError):
    """Raised when a product is not found."""
    pass

class ProductInUseError(CatalogError):
    """Raised when deleting a product that existing orders reference."""
    pass

def _validate_stock(stock: Any) -> int:
    if isinstance(stock, bool) or not isinstance(stock, int):
        raise InvalidArgumentError('stock', 'must be an integer')
    if stock < 0:
        raise InvalidArgumentError('stock', 'must not be negative')
    return stock

def _validate_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(field, 'must not be empty')
    return value.strip()

class CatalogManager:
    """Manager class for handling catalog operations."""

    def __init__(self, pool=None, dispatcher=None):
        """Initialize the catalog manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
            dispatcher: Optional notification dispatcher told about committed changes
        """
        self.pool = pool
        self.dispatcher = dispatcher

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def create_product(
        self,
        name: str,
        price: Any,
        category: str,
        stock: int = 0,
        description: Optional[str] = None,
        image_url: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create a new product and record its initial price.

        Args:
            name: Product name
            price: Unit price, non-negative
            category: Category name
            stock: Units in stock, non-negative
            description: Optional description
            image_url: Optional image reference

        Returns:
            Dict containing the created product

        Raises:
            InvalidArgumentError: If any field is invalid
        """
        name = _validate_text(name, 'name')
        category = _validate_text(category, 'category')
        price = require_price(price)
        stock = _validate_stock(stock)
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                product = await conn.fetchrow(
                    f'''
                    INSERT INTO products (name, description, price, stock, image_url, category)
                    VALUES ($1, $2, $3, $4, $5, $6)
                    RETURNING {PRODUCT_COLUMNS}
                    ''',
                    name, description, price, stock, image_url, category
                )
                await conn.execute(
                    'INSERT INTO price_history (product_id, price) VALUES ($1, $2)',
                    product['id'],
                    price
                )

        logger.info(f"Created product {product['id']} ({name}) at {price}")
        return dict(product)

    async def get_product(self, product_id: int) -> Dict[str, Any]:
        """Get a product by ID.

        Raises:
            InvalidArgumentError: If the id is not a positive integer
            ProductNotFoundError: If the product doesn't exist
        """
        product_id = require_positive_id(product_id, 'product_id')
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            product = await conn.fetchrow(
                f'SELECT {PRODUCT_COLUMNS} FROM products WHERE id = $1',
                product_id
            )

        if not product:
            raise ProductNotFoundError(f"Product {product_id} not found")
        return dict(product)

    async def list_products(self, category: Optional[str] = None) -> List[Dict[str, Any]]:
        """List all products, or the products of one category."""
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            if category is None:
                rows = await conn.fetch(f'SELECT {PRODUCT_COLUMNS} FROM products ORDER BY id')
            else:
                rows = await conn.fetch(
                    f'SELECT {PRODUCT_COLUMNS} FROM products WHERE category = $1 ORDER BY id',
                    category
                )
        return [dict(row) for row in rows]

    async def list_by_category(self, category: str) -> List[Dict[str, Any]]:
        return await self.list_products(category=category)

    async def list_categories(self) -> List[str]:
        """List the distinct categories in use."""
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch('SELECT DISTINCT category FROM products ORDER BY category')
        return [row['category'] for row in rows]

    async def update_product(self, product_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Apply a partial update to a product.

        A price change appends the new price to the price history inside the
        same transaction. Once committed, the change is handed to the
        notification dispatcher.

        Args:
            product_id: The product to update
            updates: Dict of fields to change (see MUTABLE_FIELDS)

        Returns:
            Dict containing the updated product

        Raises:
            InvalidArgumentError: If a field is unknown or invalid
            ProductNotFoundError: If the product doesn't exist
        """
        product_id = require_positive_id(product_id, 'product_id')

        unknown = set(updates) - MUTABLE_FIELDS
        if unknown:
            raise InvalidArgumentError(
                ', '.join(sorted(unknown)), 'field cannot be updated'
            )

        values: Dict[str, Any] = {}
        for field, value in updates.items():
            if field == 'price':
                values[field] = require_price(value)
            elif field == 'stock':
                values[field] = _validate_stock(value)
            elif field in ('name', 'category'):
                values[field] = _validate_text(value, field)
            else:
                values[field] = value

        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                before = await conn.fetchrow(
                    f'SELECT {PRODUCT_COLUMNS} FROM products WHERE id = $1 FOR UPDATE',
                    product_id
                )
                if not before:
                    raise ProductNotFoundError(f"Product {product_id} not found")

                if not values:
                    return dict(before)

                if 'price' in values and values['price'] != before['price']:
                    await conn.execute(
                        'INSERT INTO price_history (product_id, price) VALUES ($1, $2)',
                        product_id,
                        values['price']
                    )
                    logger.info(
                        f"Price of product {product_id} changed from "
                        f"{before['price']} to {values['price']}"
                    )

                fields = sorted(values)
                assignments = ', '.join(
                    f"{field} = ${index}" for index, field in enumerate(fields, start=2)
                )
                after = await conn.fetchrow(
                    f'''
                    UPDATE products
                    SET {assignments}
                    WHERE id = $1
                    RETURNING {PRODUCT_COLUMNS}
                    ''',
                    product_id,
                    *[values[field] for field in fields]
                )

        before, after = dict(before), dict(after)
        if self.dispatcher:
            self.dispatcher.product_changed(before, after)
        return after

    async def delete_product(self, product_id: int) -> bool:
        """Delete a product with its price history, wishlist and cart rows.

        Returns:
            False if no product was deleted

        Raises:
            ProductInUseError: If orders reference the product
        """
        product_id = require_positive_id(product_id, 'product_id')
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute('DELETE FROM products WHERE id = $1', product_id)
        except ForeignKeyViolationError:
            raise ProductInUseError(f"Product {product_id} is referenced by existing orders")

        deleted = int(result.split()[-1]) > 0
        if deleted:
            logger.info(f"Deleted product {product_id}")
        return deleted

    async def get_price_history(self, product_id: int) -> List[Dict[str, Any]]:
        """Get the price history of a product, oldest first.

        Raises:
            ProductNotFoundError: If the product doesn't exist
        """
        product_id = require_positive_id(product_id, 'product_id')
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            exists = await conn.fetchval(
                'SELECT EXISTS(SELECT 1 FROM products WHERE id = $1)',
                product_id
            )
            if not exists:
                raise ProductNotFoundError(f"Product {product_id} not found")

            rows = await conn.fetch(
                '''
                SELECT id, product_id, price, date
                FROM price_history
                WHERE product_id = $1
                ORDER BY date, id
                ''',
                product_id
            )
        return [dict(row) for row in rows]

__all__ = [
    'CatalogManager',
    'CatalogError',
    'ProductNotFoundError',
    'ProductInUseError',
    'InvalidArgumentError',
    'MUTABLE_FIELDS'
]
