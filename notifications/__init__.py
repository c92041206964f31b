"""Notifications module for wishlist alerts.

This module detects price drops and restocks on products and notifies every
user holding the product in their wishlist. A committed change carries its own
old and new price, so two changes landing close together are reported
separately. There is no stored "already notified" flag; each change event must
be handed over exactly once (see ``product_changed``).
"""
import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set

from config import settings_conf
from database import get_pool
from .channels import (
    NotificationChannel, NotificationError, LoggingChannel, SmsGatewayChannel,
    EmailChannel, RecipientRouter, build_channel
)

logger = logging.getLogger(__name__)

PRICE_DROP_TEMPLATE = (
    "Price drop alert: {name} is now ${new_price:.2f} (was ${old_price:.2f}). "
    "You save ${saving:.2f} ({percent}%). {url}"
)
RESTOCK_TEMPLATE = (
    "Back in stock: {name} is available again at ${price:.2f}. {url}"
)

def percentage_drop(old_price: Decimal, new_price: Decimal) -> Decimal:
    """Percentage decrease from old_price to new_price, to two decimals."""
    old_price = Decimal(old_price)
    new_price = Decimal(new_price)
    if old_price <= 0:
        return Decimal('0.00')
    return ((old_price - new_price) / old_price * 100).quantize(Decimal('0.01'))

def recipient_for(user: Dict[str, Any]) -> Optional[str]:
    """Address used to reach a user: phone first, then email."""
    return user.get('phone') or user.get('email')

class NotificationDispatcher:
    """Fans product events out to wishlist holders."""

    def __init__(
        self,
        pool=None,
        channel: Optional[NotificationChannel] = None,
        app_url: Optional[str] = None
    ):
        """Initialize the dispatcher.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
            channel: Channel used for delivery, defaults to the configured one
            app_url: Base URL used to link to products
        """
        self.pool = pool
        self.channel = channel or build_channel(settings_conf)
        self.app_url = (app_url or settings_conf['app_url']).rstrip('/')
        self._tasks: Set[asyncio.Task] = set()

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    def product_url(self, product_id: int) -> str:
        return f"{self.app_url}/products/{product_id}"

    async def _wishlist_holders(self, conn, product_id: int) -> List[Dict[str, Any]]:
        rows = await conn.fetch(
            '''
            SELECT DISTINCT u.id, u.username, u.email, u.phone
            FROM wishlists w
            JOIN users u ON u.id = w.user_id
            WHERE w.product_id = $1
            ORDER BY u.id
            ''',
            product_id
        )
        return [dict(row) for row in rows]

    async def _send_all(self, users: List[Dict[str, Any]], message: str) -> int:
        """Send one message per user. Returns the number delivered."""
        sent = 0
        for user in users:
            recipient = recipient_for(user)
            if not recipient:
                logger.warning(f"User {user['id']} has no phone or email, skipping notification")
                continue
            try:
                await self.channel.send(recipient, message)
                sent += 1
            except NotificationError as e:
                logger.error(f"Failed to notify user {user['id']}: {e}")
        return sent

    async def check_price_drop_and_notify(
        self,
        product_id: int,
        old_price: Optional[Decimal] = None,
        new_price: Optional[Decimal] = None
    ) -> int:
        """Notify wishlist holders of a price drop.

        With old_price and new_price the drop is the one committed by the
        caller. Without them the two most recent price history entries of the
        product are compared.

        Returns:
            Number of notifications sent
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            if old_price is None or new_price is None:
                history = await conn.fetch(
                    '''
                    SELECT price, date
                    FROM price_history
                    WHERE product_id = $1
                    ORDER BY date DESC, id DESC
                    LIMIT 2
                    ''',
                    product_id
                )

                # Need at least two price points to detect a drop
                if len(history) < 2:
                    return 0
                new_price = history[0]['price']
                old_price = history[1]['price']

            if new_price >= old_price:
                return 0

            product = await conn.fetchrow(
                'SELECT id, name FROM products WHERE id = $1',
                product_id
            )
            if not product:
                return 0

            users = await self._wishlist_holders(conn, product_id)

        message = PRICE_DROP_TEMPLATE.format(
            name=product['name'],
            new_price=new_price,
            old_price=old_price,
            saving=old_price - new_price,
            percent=percentage_drop(old_price, new_price),
            url=self.product_url(product_id)
        )
        sent = await self._send_all(users, message)
        logger.info(
            f"Price drop on product {product_id} ({old_price} -> {new_price}): "
            f"notified {sent} of {len(users)} wishlist holders"
        )
        return sent

    async def notify_restock(self, product_id: int) -> int:
        """Notify wishlist holders that a product is back in stock.

        Returns:
            Number of notifications sent
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            product = await conn.fetchrow(
                'SELECT id, name, price, stock FROM products WHERE id = $1',
                product_id
            )
            if not product or product['stock'] <= 0:
                return 0

            users = await self._wishlist_holders(conn, product_id)

        message = RESTOCK_TEMPLATE.format(
            name=product['name'],
            price=product['price'],
            url=self.product_url(product_id)
        )
        sent = await self._send_all(users, message)
        logger.info(f"Product {product_id} restocked: notified {sent} of {len(users)} wishlist holders")
        return sent

    async def handle_product_change(
        self,
        before: Dict[str, Any],
        after: Dict[str, Any]
    ) -> Dict[str, int]:
        """Run the notifications triggered by one product change.

        Price drops and restocks are detected independently. Errors are
        logged and never raised.

        Returns:
            Dict with the number of price_drop and restock notifications sent
        """
        product_id = after['id']
        result = {'price_drop': 0, 'restock': 0}

        try:
            if after['price'] < before['price']:
                result['price_drop'] = await self.check_price_drop_and_notify(
                    product_id, old_price=before['price'], new_price=after['price']
                )

            if before['stock'] <= 0 < after['stock']:
                result['restock'] = await self.notify_restock(product_id)
        except Exception:
            logger.exception(f"Failed to send notifications for product {product_id}")

        return result

    def product_changed(self, before: Dict[str, Any], after: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Schedule notifications for a committed product change.

        Returns:
            The background task, or None when the change triggers nothing
        """
        price_dropped = after['price'] < before['price']
        restocked = before['stock'] <= 0 < after['stock']
        if not (price_dropped or restocked):
            return None

        task = asyncio.create_task(
            self.handle_product_change(before, after),
            name=f"notify-product-{after['id']}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for all scheduled notification tasks to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

# Create global instance
dispatcher = NotificationDispatcher()

__all__ = [
    'NotificationDispatcher',
    'NotificationChannel',
    'NotificationError',
    'LoggingChannel',
    'SmsGatewayChannel',
    'EmailChannel',
    'RecipientRouter',
    'build_channel',
    'dispatcher',
    'percentage_drop',
    'recipient_for'
]
