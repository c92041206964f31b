"""Tests for the cart module."""

from decimal import Decimal

import pytest
from asyncpg.exceptions import ForeignKeyViolationError

from cart import CartManager
from catalog import ProductNotFoundError
from validation import InvalidArgumentError

@pytest.fixture
def cart(pool):
    return CartManager(pool=pool)

@pytest.mark.asyncio
async def test_add_item_merges_quantities(cart, conn):
    """Adding a product already in the cart sums the quantity in one upsert."""
    conn.fetchrow.return_value = {'user_id': 3, 'product_id': 7, 'quantity': 5}

    line = await cart.add_item(3, 7, 2)

    assert line['quantity'] == 5
    sql = conn.fetchrow.call_args.args[0]
    assert 'ON CONFLICT (user_id, product_id)' in sql
    assert 'cart_items.quantity + EXCLUDED.quantity' in sql
    assert conn.fetchrow.call_args.args[1:] == (3, 7, 2)

@pytest.mark.asyncio
@pytest.mark.parametrize('quantity', [0, -1, 1.5, True])
async def test_add_item_rejects_bad_quantity(cart, conn, quantity):
    with pytest.raises(InvalidArgumentError):
        await cart.add_item(3, 7, quantity)
    conn.fetchrow.assert_not_called()

@pytest.mark.asyncio
async def test_add_unknown_product(cart, conn):
    conn.fetchrow.side_effect = ForeignKeyViolationError('products')
    with pytest.raises(ProductNotFoundError):
        await cart.add_item(3, 99, 1)

@pytest.mark.asyncio
async def test_set_quantity_overwrites(cart, conn):
    conn.fetchrow.return_value = {'user_id': 3, 'product_id': 7, 'quantity': 4}

    line = await cart.set_quantity(3, 7, 4)

    assert line['quantity'] == 4
    assert 'quantity = EXCLUDED.quantity' in conn.fetchrow.call_args.args[0]

@pytest.mark.asyncio
@pytest.mark.parametrize('quantity', [0, -2])
async def test_set_quantity_zero_removes_line(cart, conn, quantity):
    conn.execute.return_value = 'DELETE 1'

    assert await cart.set_quantity(3, 7, quantity) is None

    conn.fetchrow.assert_not_called()
    sql = conn.execute.call_args.args[0]
    assert sql.startswith('DELETE FROM cart_items')
    assert conn.execute.call_args.args[1:] == (3, 7)

@pytest.mark.asyncio
async def test_get_cart_includes_subtotals(cart, conn):
    conn.fetch.return_value = [
        {'product_id': 1, 'quantity': 1, 'added_at': None, 'name': 'A',
         'price': Decimal('10.00'), 'stock': 0, 'image_url': None, 'category': 'X'},
        {'product_id': 2, 'quantity': 3, 'added_at': None, 'name': 'B',
         'price': Decimal('5.00'), 'stock': 8, 'image_url': None, 'category': 'X'},
    ]

    items = await cart.get_cart(3)

    assert [item['subtotal'] for item in items] == [Decimal('10.00'), Decimal('15.00')]
    # Out of stock products stay in the cart
    assert items[0]['stock'] == 0

@pytest.mark.asyncio
async def test_remove_and_clear(cart, conn):
    conn.execute.return_value = 'DELETE 0'
    assert await cart.remove_item(3, 7) is False

    conn.execute.return_value = 'DELETE 2'
    assert await cart.clear(3) is True
    assert conn.execute.call_args.args == ('DELETE FROM cart_items WHERE user_id = $1', 3)
