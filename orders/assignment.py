"""Middleman selection policies.

A selector picks the middleman for an order being approved. It runs on the
connection of the approving transaction and returns a user id, or None when no
middleman exists.
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class MiddlemanSelector:
    """Base class for selection policies."""

    name = None

    async def select(self, conn) -> Optional[int]:
        raise NotImplementedError


class FirstAvailableSelector(MiddlemanSelector):
    """Always the middleman with the lowest id."""

    name = 'first_available'

    async def select(self, conn) -> Optional[int]:
        return await conn.fetchval(
            "SELECT id FROM users WHERE role = 'middleman' ORDER BY id LIMIT 1"
        )


class RoundRobinSelector(MiddlemanSelector):
    """Cycles through middlemen in id order.

    The cursor lives in the process; it starts at the first middleman whose id
    is greater than the last one handed out.
    """

    name = 'round_robin'

    def __init__(self):
        self.last_id = 0

    async def select(self, conn) -> Optional[int]:
        middleman_id = await conn.fetchval(
            '''
            SELECT id FROM users
            WHERE role = 'middleman' AND id > $1
            ORDER BY id
            LIMIT 1
            ''',
            self.last_id
        )
        if middleman_id is None:
            # Wrap around
            middleman_id = await conn.fetchval(
                "SELECT id FROM users WHERE role = 'middleman' ORDER BY id LIMIT 1"
            )
        if middleman_id is not None:
            self.last_id = middleman_id
        return middleman_id


class LeastLoadedSelector(MiddlemanSelector):
    """The middleman with the fewest open (processing or shipped) orders."""

    name = 'least_loaded'

    async def select(self, conn) -> Optional[int]:
        return await conn.fetchval(
            '''
            SELECT u.id
            FROM users u
            LEFT JOIN orders o
                ON o.middleman_id = u.id
                AND o.status IN ('processing', 'shipped')
            WHERE u.role = 'middleman'
            GROUP BY u.id
            ORDER BY count(o.id), u.id
            LIMIT 1
            '''
        )


SELECTORS = {
    selector.name: selector
    for selector in (FirstAvailableSelector, RoundRobinSelector, LeastLoadedSelector)
}


def build_selector(policy: str) -> MiddlemanSelector:
    """Create the selector for a configured policy name."""
    try:
        selector = SELECTORS[policy]()
    except KeyError:
        raise ValueError(
            f"Unknown middleman policy '{policy}', expected one of: {', '.join(sorted(SELECTORS))}"
        )
    logger.debug(f"Using {policy} middleman selection")
    return selector
