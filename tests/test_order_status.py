"""Tests for the order state machine and middleman selection."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from orders.assignment import (
    FirstAvailableSelector,
    RoundRobinSelector,
    LeastLoadedSelector,
    build_selector
)
from orders.status import (
    OrderStatus,
    OrderEvent,
    InvalidTransitionError,
    next_status,
    fulfilment_event
)

@pytest.mark.parametrize('status,event,expected', [
    ('pending', 'approve', 'processing'),
    ('processing', 'ship', 'shipped'),
    ('shipped', 'deliver', 'delivered'),
    ('pending', 'cancel', 'cancelled'),
    ('processing', 'cancel', 'cancelled'),
    ('shipped', 'cancel', 'cancelled'),
])
def test_defined_transitions(status, event, expected):
    assert next_status(status, event) == OrderStatus(expected)

@pytest.mark.parametrize('status,event', [
    ('pending', 'ship'),
    ('pending', 'deliver'),
    ('processing', 'approve'),
    ('processing', 'deliver'),
    ('shipped', 'ship'),
    ('delivered', 'deliver'),
    ('delivered', 'cancel'),
    ('cancelled', 'approve'),
])
def test_undefined_transitions_rejected(status, event):
    with pytest.raises(InvalidTransitionError):
        next_status(status, event)

def test_delivered_only_reachable_through_full_path():
    """Walk every event sequence from pending; delivered always follows shipped."""
    reached = {OrderStatus.PENDING: [[]]}
    frontier = [(OrderStatus.PENDING, [])]
    while frontier:
        status, path = frontier.pop()
        for event in OrderEvent:
            try:
                new_status = next_status(status, event)
            except InvalidTransitionError:
                continue
            new_path = path + [event]
            reached.setdefault(new_status, []).append(new_path)
            frontier.append((new_status, new_path))

    assert reached[OrderStatus.DELIVERED] == [
        [OrderEvent.APPROVE, OrderEvent.SHIP, OrderEvent.DELIVER]
    ]

def test_fulfilment_event():
    assert fulfilment_event('processing') == OrderEvent.SHIP
    assert fulfilment_event('shipped') == OrderEvent.DELIVER

@pytest.mark.parametrize('status', ['pending', 'delivered', 'cancelled'])
def test_fulfilment_event_rejects_other_statuses(status):
    with pytest.raises(InvalidTransitionError):
        fulfilment_event(status)

def test_invalid_transition_message():
    error = InvalidTransitionError('delivered', 'deliver')
    assert str(error) == "Cannot deliver an order that is delivered"

@pytest.mark.asyncio
async def test_first_available_selector():
    conn = MagicMock()
    conn.fetchval = AsyncMock(return_value=4)

    assert await FirstAvailableSelector().select(conn) == 4

@pytest.mark.asyncio
async def test_round_robin_wraps_around():
    selector = RoundRobinSelector()
    conn = MagicMock()
    # next after 0 -> 4, next after 4 -> 9, next after 9 -> none, wrap -> 4
    conn.fetchval = AsyncMock(side_effect=[4, 9, None, 4])

    assert await selector.select(conn) == 4
    assert await selector.select(conn) == 9
    assert await selector.select(conn) == 4
    assert conn.fetchval.call_args_list[2].args[1] == 9

@pytest.mark.asyncio
async def test_round_robin_without_middlemen():
    selector = RoundRobinSelector()
    conn = MagicMock()
    conn.fetchval = AsyncMock(return_value=None)

    assert await selector.select(conn) is None
    assert selector.last_id == 0

@pytest.mark.asyncio
async def test_least_loaded_counts_open_orders():
    conn = MagicMock()
    conn.fetchval = AsyncMock(return_value=6)

    assert await LeastLoadedSelector().select(conn) == 6
    sql = conn.fetchval.call_args.args[0]
    assert "o.status IN ('processing', 'shipped')" in sql
    assert 'ORDER BY count(o.id), u.id' in sql

def test_build_selector():
    assert isinstance(build_selector('round_robin'), RoundRobinSelector)
    with pytest.raises(ValueError):
        build_selector('random')
