"""Orders module for checkout and order fulfilment.

This module handles:
- Placing orders: stock re-validation, order and item inserts, the stock
  decrement and clearing the cart, all in one transaction
- The order lifecycle (see ``orders.status``): admin approval with middleman
  assignment, middleman shipping and delivery, cancellation
- Order queries for customers, admins and middlemen

Item prices are frozen when the order is placed. The stock decrement is a
single conditional UPDATE, so concurrent checkouts can never drive stock below
zero; the pre-check before the transaction only gives an early answer.
"""
import logging
from collections import defaultdict
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Any

import backoff
from asyncpg.exceptions import TransactionRollbackError
from asyncpg.pool import Pool

from catalog import ProductNotFoundError
from config import settings_conf
from database import get_pool
from validation import InvalidArgumentError, require_positive_id, require_price, require_quantity
from .assignment import MiddlemanSelector, build_selector
from .status import (
    OrderStatus, OrderEvent, InvalidTransitionError, next_status, fulfilment_event
)

logger = logging.getLogger(__name__)

ORDER_COLUMNS = (
    'id, user_id, total, status, shipping_address, delivery_date, '
    'tracking_number, middleman_id, created_at, updated_at'
)

# Attempts for a checkout transaction aborted by a serialization conflict
MAX_COMMIT_TRIES = 5

class OrderError(Exception):
    """Base class for order-related errors."""
    pass

class OrderNotFoundError(OrderError):
    """Raised when an order is not found."""
    pass

class OrderAccessError(OrderError):
    """Raised when a user acts on an order that is not theirs."""
    pass

class InsufficientStockError(OrderError):
    """Raised when a product has less stock than an order requests."""
    def __init__(self, product_id: int, available: int, requested: int):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"available {available}, requested {requested}"
        )

class NoMiddlemanAvailableError(OrderError):
    """Raised when an order must be assigned but no middleman exists."""
    pass

def _validate_items(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not isinstance(items, list) or not items:
        raise InvalidArgumentError('items', 'must contain at least one item')

    validated = []
    for index, item in enumerate(items):
        try:
            product_id = item['product_id']
            quantity = item['quantity']
            price = item['price']
        except (KeyError, TypeError):
            raise InvalidArgumentError(
                f'items[{index}]', 'must have product_id, quantity and price'
            )
        validated.append({
            'product_id': require_positive_id(product_id, f'items[{index}].product_id'),
            'quantity': require_quantity(quantity, f'items[{index}].quantity'),
            'price': require_price(price, f'items[{index}].price')
        })
    return validated

def _requested_quantities(items: List[Dict[str, Any]]) -> Dict[int, int]:
    """Total quantity per product, in product id order."""
    requested = defaultdict(int)
    for item in items:
        requested[item['product_id']] += item['quantity']
    return dict(sorted(requested.items()))

class OrderManager:
    """Manages order operations and state transitions."""

    def __init__(
        self,
        pool: Optional[Pool] = None,
        dispatcher=None,
        selector: Optional[MiddlemanSelector] = None,
        delivery_days: Optional[int] = None
    ) -> None:
        """Initialize order manager.

        Args:
            pool: Optional database connection pool. If not provided, will get from database module.
            dispatcher: Optional notification dispatcher told about restocks from cancellations
            selector: Middleman selection policy, defaults to middleman_policy
            delivery_days: Default delivery window, defaults to delivery_days
        """
        self.pool = pool
        self.dispatcher = dispatcher
        self.selector = selector or build_selector(settings_conf['middleman_policy'])
        self.delivery_days = delivery_days or settings_conf['delivery_days']

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def _check_stock(self, requested: Dict[int, int]) -> None:
        """Fail early when a product is missing or short on stock."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                'SELECT id, stock FROM products WHERE id = ANY($1::INT8[])',
                list(requested)
            )
        stock = {row['id']: row['stock'] for row in rows}

        for product_id, quantity in requested.items():
            if product_id not in stock:
                raise ProductNotFoundError(f"Product {product_id} not found")
            if stock[product_id] < quantity:
                raise InsufficientStockError(product_id, stock[product_id], quantity)

    @backoff.on_exception(
        backoff.expo,
        TransactionRollbackError,
        max_tries=MAX_COMMIT_TRIES,
        max_time=10
    )
    async def _commit_order(
        self,
        user_id: int,
        items: List[Dict[str, Any]],
        requested: Dict[int, int],
        total: Decimal,
        shipping_address: str,
        contact: str,
        delivery_date: datetime
    ) -> Dict[str, Any]:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                order = await conn.fetchrow(
                    f'''
                    INSERT INTO orders (
                        user_id, total, status, shipping_address,
                        delivery_date, tracking_number
                    ) VALUES ($1, $2, $3, $4, $5, $6)
                    RETURNING {ORDER_COLUMNS}
                    ''',
                    user_id,
                    total,
                    OrderStatus.PENDING.value,
                    shipping_address,
                    delivery_date,
                    contact
                )

                order_items = []
                for item in items:
                    row = await conn.fetchrow(
                        '''
                        INSERT INTO order_items (order_id, product_id, quantity, price)
                        VALUES ($1, $2, $3, $4)
                        RETURNING id, product_id, quantity, price
                        ''',
                        order['id'],
                        item['product_id'],
                        item['quantity'],
                        item['price']
                    )
                    order_items.append(dict(row))

                # Products are decremented in id order
                for product_id, quantity in requested.items():
                    remaining = await conn.fetchval(
                        '''
                        UPDATE products
                        SET stock = stock - $2
                        WHERE id = $1 AND stock >= $2
                        RETURNING stock
                        ''',
                        product_id,
                        quantity
                    )
                    if remaining is None:
                        available = await conn.fetchval(
                            'SELECT stock FROM products WHERE id = $1',
                            product_id
                        )
                        if available is None:
                            raise ProductNotFoundError(f"Product {product_id} not found")
                        raise InsufficientStockError(product_id, available, quantity)

                await conn.execute('DELETE FROM cart_items WHERE user_id = $1', user_id)

        result = dict(order)
        result['items'] = order_items
        return result

    async def place_order(
        self,
        user_id: int,
        items: List[Dict[str, Any]],
        shipping_address: str,
        contact: str,
        delivery_date: Optional[datetime] = None,
        expected_total: Optional[Any] = None
    ) -> Dict[str, Any]:
        """Place an order and empty the buyer's cart.

        Args:
            user_id: The buyer
            items: List of dicts with product_id, quantity and the unit price
                the buyer saw; these prices are frozen into the order
            shipping_address: Where to deliver
            contact: Buyer contact, recorded as the tracking number
            delivery_date: Optional delivery date, defaults to now + delivery_days
            expected_total: Optional total the client computed; must match

        Returns:
            Dict containing the created order with its items

        Raises:
            InvalidArgumentError: If any argument is invalid
            ProductNotFoundError: If a product doesn't exist
            InsufficientStockError: If a product lacks stock
        """
        user_id = require_positive_id(user_id, 'user_id')
        items = _validate_items(items)
        if not isinstance(shipping_address, str) or not shipping_address.strip():
            raise InvalidArgumentError('shipping_address', 'must not be empty')
        if not isinstance(contact, str) or not contact.strip():
            raise InvalidArgumentError('contact', 'must not be empty')

        total = sum(
            (item['price'] * item['quantity'] for item in items),
            Decimal('0.00')
        )
        if expected_total is not None and require_price(expected_total, 'total') != total:
            raise InvalidArgumentError(
                'total', f'does not match the items (expected {total})'
            )

        if delivery_date is None:
            delivery_date = datetime.now(timezone.utc) + timedelta(days=self.delivery_days)

        requested = _requested_quantities(items)
        await self.ensure_pool()

        await self._check_stock(requested)

        try:
            order = await self._commit_order(
                user_id,
                items,
                requested,
                total,
                shipping_address.strip(),
                contact.strip(),
                delivery_date
            )
        except InsufficientStockError as e:
            logger.warning(f"Checkout for user {user_id} lost a stock race: {e}")
            raise

        logger.info(
            f"Placed order {order['id']} for user {user_id}: "
            f"{len(items)} items, total {total}"
        )
        return order

    async def _lock_order(self, conn, order_id: int):
        order = await conn.fetchrow(
            f'SELECT {ORDER_COLUMNS} FROM orders WHERE id = $1 FOR UPDATE',
            order_id
        )
        if not order:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order

    async def _set_status(self, conn, order_id: int, current: OrderStatus, event: OrderEvent):
        """Apply an event with a compare-and-set on the current status."""
        new_status = next_status(current, event)
        row = await conn.fetchrow(
            f'''
            UPDATE orders
            SET status = $3, updated_at = now()
            WHERE id = $1 AND status = $2
            RETURNING {ORDER_COLUMNS}
            ''',
            order_id,
            OrderStatus(current).value,
            new_status.value
        )
        if not row:
            actual = await conn.fetchval('SELECT status FROM orders WHERE id = $1', order_id)
            if actual is None:
                raise OrderNotFoundError(f"Order {order_id} not found")
            raise InvalidTransitionError(actual, event)
        return row

    async def _assign_middleman(self, conn, order_id: int) -> Optional[int]:
        """Stamp a middleman on an order that has none.

        Returns:
            The order's middleman id, or None when no middleman exists
        """
        existing = await conn.fetchval(
            'SELECT middleman_id FROM orders WHERE id = $1',
            order_id
        )
        if existing is not None:
            return existing

        middleman_id = await self.selector.select(conn)
        if middleman_id is None:
            return None

        assigned = await conn.fetchval(
            '''
            UPDATE orders
            SET middleman_id = $2, updated_at = now()
            WHERE id = $1 AND middleman_id IS NULL
            RETURNING middleman_id
            ''',
            order_id,
            middleman_id
        )
        if assigned is None:
            # Someone else assigned it first
            assigned = await conn.fetchval(
                'SELECT middleman_id FROM orders WHERE id = $1',
                order_id
            )
        return assigned

    async def approve_order(self, order_id: int) -> Dict[str, Any]:
        """Approve a pending order and assign it a middleman.

        Approval and assignment commit together; without a middleman the
        order stays pending.

        Raises:
            OrderNotFoundError: If the order doesn't exist
            InvalidTransitionError: If the order is not pending
            NoMiddlemanAvailableError: If there is no middleman to assign
        """
        order_id = require_positive_id(order_id, 'order_id')
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                order = await self._lock_order(conn, order_id)
                await self._set_status(conn, order_id, order['status'], OrderEvent.APPROVE)

                middleman_id = await self._assign_middleman(conn, order_id)
                if middleman_id is None:
                    raise NoMiddlemanAvailableError(
                        f"No middleman available to fulfil order {order_id}"
                    )

                order = await conn.fetchrow(
                    f'SELECT {ORDER_COLUMNS} FROM orders WHERE id = $1',
                    order_id
                )

        logger.info(f"Order {order_id} approved and assigned to middleman {middleman_id}")
        return dict(order)

    async def assign_middleman(self, order_id: int) -> int:
        """Assign a middleman to an order that has none.

        An order that already has a middleman keeps it.

        Returns:
            The middleman id of the order

        Raises:
            OrderNotFoundError: If the order doesn't exist
            NoMiddlemanAvailableError: If there is no middleman to assign
        """
        order_id = require_positive_id(order_id, 'order_id')
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await self._lock_order(conn, order_id)
                middleman_id = await self._assign_middleman(conn, order_id)

        if middleman_id is None:
            raise NoMiddlemanAvailableError(
                f"No middleman available to fulfil order {order_id}"
            )
        return middleman_id

    async def advance_status(self, order_id: int, middleman_id: int) -> OrderStatus:
        """Move an assigned order one fulfilment step forward.

        processing becomes shipped, shipped becomes delivered.

        Returns:
            The new status

        Raises:
            OrderNotFoundError: If the order doesn't exist
            OrderAccessError: If the order is assigned to another middleman
            InvalidTransitionError: If the order is in any other status
        """
        order_id = require_positive_id(order_id, 'order_id')
        middleman_id = require_positive_id(middleman_id, 'middleman_id')
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                order = await self._lock_order(conn, order_id)
                if order['middleman_id'] != middleman_id:
                    raise OrderAccessError(
                        f"Order {order_id} is not assigned to middleman {middleman_id}"
                    )
                event = fulfilment_event(order['status'])
                updated = await self._set_status(conn, order_id, order['status'], event)

        new_status = OrderStatus(updated['status'])
        logger.info(f"Order {order_id} {order['status']} -> {new_status.value} by middleman {middleman_id}")
        return new_status

    async def cancel_order(self, order_id: int) -> Dict[str, Any]:
        """Cancel an order that is not yet delivered and restore its stock.

        Products moving from zero stock back to some stock trigger restock
        notifications after commit.

        Raises:
            OrderNotFoundError: If the order doesn't exist
            InvalidTransitionError: If the order is delivered or already cancelled
        """
        order_id = require_positive_id(order_id, 'order_id')
        await self.ensure_pool()

        changes = []
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                order = await self._lock_order(conn, order_id)
                updated = await self._set_status(conn, order_id, order['status'], OrderEvent.CANCEL)

                lines = await conn.fetch(
                    '''
                    SELECT product_id, sum(quantity) AS quantity
                    FROM order_items
                    WHERE order_id = $1
                    GROUP BY product_id
                    ORDER BY product_id
                    ''',
                    order_id
                )
                for line in lines:
                    after = await conn.fetchrow(
                        '''
                        UPDATE products
                        SET stock = stock + $2
                        WHERE id = $1
                        RETURNING id, name, price, stock
                        ''',
                        line['product_id'],
                        line['quantity']
                    )
                    if after:
                        after = dict(after)
                        before = dict(after, stock=after['stock'] - line['quantity'])
                        changes.append((before, after))

        logger.info(f"Order {order_id} cancelled, stock restored for {len(changes)} products")
        if self.dispatcher:
            for before, after in changes:
                self.dispatcher.product_changed(before, after)
        return dict(updated)

    async def delete_order(self, order_id: int) -> bool:
        """Hard delete an order and its items.

        Returns:
            False if the order didn't exist
        """
        order_id = require_positive_id(order_id, 'order_id')
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute('DELETE FROM order_items WHERE order_id = $1', order_id)
                result = await conn.execute('DELETE FROM orders WHERE id = $1', order_id)

        deleted = int(result.split()[-1]) > 0
        if deleted:
            logger.info(f"Deleted order {order_id}")
        return deleted

    async def _attach_items(self, conn, orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Load the items of several orders with their product details."""
        if not orders:
            return orders

        rows = await conn.fetch(
            '''
            SELECT
                oi.id,
                oi.order_id,
                oi.product_id,
                oi.quantity,
                oi.price,
                p.name,
                p.category,
                p.image_url
            FROM order_items oi
            LEFT JOIN products p ON p.id = oi.product_id
            WHERE oi.order_id = ANY($1::INT8[])
            ORDER BY oi.id
            ''',
            [order['id'] for order in orders]
        )

        items_by_order = defaultdict(list)
        for row in rows:
            item = dict(row)
            items_by_order[item.pop('order_id')].append(item)

        for order in orders:
            order['items'] = items_by_order.get(order['id'], [])
        return orders

    async def get_order(self, order_id: int) -> Dict[str, Any]:
        """Get an order with its items.

        Raises:
            OrderNotFoundError: If the order doesn't exist
        """
        order_id = require_positive_id(order_id, 'order_id')
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            order = await conn.fetchrow(
                f'SELECT {ORDER_COLUMNS} FROM orders WHERE id = $1',
                order_id
            )
            if not order:
                raise OrderNotFoundError(f"Order {order_id} not found")
            orders = await self._attach_items(conn, [dict(order)])
        return orders[0]

    async def get_orders(self, user_id: int) -> List[Dict[str, Any]]:
        """Get the orders of a user, newest first."""
        user_id = require_positive_id(user_id, 'user_id')
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f'''
                SELECT {ORDER_COLUMNS}
                FROM orders
                WHERE user_id = $1
                ORDER BY created_at DESC, id DESC
                ''',
                user_id
            )
            return await self._attach_items(conn, [dict(row) for row in rows])

    async def get_all_orders_with_details(self) -> List[Dict[str, Any]]:
        """Get every order with buyer and middleman names and item details."""
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT
                    o.id, o.user_id, o.total, o.status, o.shipping_address,
                    o.delivery_date, o.tracking_number, o.middleman_id,
                    o.created_at, o.updated_at,
                    u.username,
                    m.username AS middleman_username
                FROM orders o
                JOIN users u ON u.id = o.user_id
                LEFT JOIN users m ON m.id = o.middleman_id
                ORDER BY o.created_at DESC, o.id DESC
                '''
            )
            return await self._attach_items(conn, [dict(row) for row in rows])

    async def get_assigned_orders(self, middleman_id: int) -> List[Dict[str, Any]]:
        """Get the approved orders assigned to a middleman.

        Pending orders are never included.
        """
        middleman_id = require_positive_id(middleman_id, 'middleman_id')
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT
                    o.id, o.user_id, o.total, o.status, o.shipping_address,
                    o.delivery_date, o.tracking_number, o.middleman_id,
                    o.created_at, o.updated_at,
                    u.username
                FROM orders o
                JOIN users u ON u.id = o.user_id
                WHERE o.middleman_id = $1 AND o.status <> $2
                ORDER BY o.created_at DESC, o.id DESC
                ''',
                middleman_id,
                OrderStatus.PENDING.value
            )
            return await self._attach_items(conn, [dict(row) for row in rows])

__all__ = [
    'OrderManager',
    'OrderError',
    'OrderNotFoundError',
    'OrderAccessError',
    'InsufficientStockError',
    'NoMiddlemanAvailableError',
    'InvalidTransitionError',
    'OrderStatus',
    'OrderEvent'
]
