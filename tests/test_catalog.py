"""Tests for the catalog module."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from asyncpg.exceptions import ForeignKeyViolationError

from catalog import (
    CatalogManager,
    ProductNotFoundError,
    ProductInUseError,
    InvalidArgumentError
)

@pytest.fixture
def dispatcher():
    return MagicMock()

@pytest.fixture
def catalog(pool, dispatcher):
    return CatalogManager(pool=pool, dispatcher=dispatcher)

@pytest.mark.asyncio
async def test_create_product_records_initial_price(catalog, conn, make_product):
    """Creating a product appends its first price history entry in the same transaction."""
    conn.fetchrow.return_value = make_product(price=Decimal('19.99'), stock=5)

    product = await catalog.create_product(
        name='Yoga Mat',
        price='19.99',
        category='Sports',
        stock=5
    )

    assert product['price'] == Decimal('19.99')
    assert conn.commits == 1

    history_calls = [
        call for call in conn.execute.call_args_list
        if 'INSERT INTO price_history' in call.args[0]
    ]
    assert len(history_calls) == 1
    assert history_calls[0].args[1:] == (1, Decimal('19.99'))

@pytest.mark.asyncio
@pytest.mark.parametrize('fields', [
    {'name': 'Mat', 'price': '-1', 'category': 'Sports'},
    {'name': '', 'price': '1', 'category': 'Sports'},
    {'name': 'Mat', 'price': '1', 'category': 'Sports', 'stock': -2},
    {'name': 'Mat', 'price': 'cheap', 'category': 'Sports'},
])
async def test_create_product_rejects_invalid_fields(catalog, conn, fields):
    with pytest.raises(InvalidArgumentError):
        await catalog.create_product(**fields)
    conn.fetchrow.assert_not_called()

@pytest.mark.asyncio
@pytest.mark.parametrize('product_id', [0, -3, 'abc', 1.5])
async def test_get_product_rejects_bad_ids(catalog, product_id):
    with pytest.raises(InvalidArgumentError):
        await catalog.get_product(product_id)

@pytest.mark.asyncio
async def test_get_product_not_found(catalog, conn):
    conn.fetchrow.return_value = None
    with pytest.raises(ProductNotFoundError):
        await catalog.get_product(42)

@pytest.mark.asyncio
async def test_list_by_category_filters(catalog, conn, make_product):
    conn.fetch.return_value = [make_product(id=2, category='Sports')]

    products = await catalog.list_by_category('Sports')

    assert [p['id'] for p in products] == [2]
    assert conn.fetch.call_args.args[1] == 'Sports'
    assert 'WHERE category = $1' in conn.fetch.call_args.args[0]

@pytest.mark.asyncio
async def test_update_price_appends_history_and_notifies(catalog, conn, dispatcher, make_product):
    """A price change writes history before the update and reports before/after."""
    before = make_product(price=Decimal('100.00'))
    after = make_product(price=Decimal('80.00'))
    conn.fetchrow.side_effect = [before, after]

    result = await catalog.update_product(1, {'price': 80})

    assert result['price'] == Decimal('80.00')
    assert conn.commits == 1

    history_calls = [
        call for call in conn.execute.call_args_list
        if 'INSERT INTO price_history' in call.args[0]
    ]
    assert len(history_calls) == 1
    assert history_calls[0].args[1:] == (1, Decimal('80.00'))

    update_sql = conn.fetchrow.call_args_list[1].args[0]
    assert 'UPDATE products' in update_sql
    assert 'price = $2' in update_sql

    dispatcher.product_changed.assert_called_once_with(before, after)

@pytest.mark.asyncio
async def test_update_without_price_change_keeps_history(catalog, conn, make_product):
    before = make_product(price=Decimal('100.00'), stock=0)
    after = make_product(price=Decimal('100.00'), stock=4)
    conn.fetchrow.side_effect = [before, after]

    await catalog.update_product(1, {'price': '100.00', 'stock': 4})

    assert not any('price_history' in sql for sql in conn.queries('execute'))

@pytest.mark.asyncio
async def test_update_unknown_field_rejected(catalog, conn):
    with pytest.raises(InvalidArgumentError):
        await catalog.update_product(1, {'id': 5})
    conn.fetchrow.assert_not_called()

@pytest.mark.asyncio
async def test_update_missing_product(catalog, conn, dispatcher):
    conn.fetchrow.return_value = None

    with pytest.raises(ProductNotFoundError):
        await catalog.update_product(9, {'price': 10})

    assert conn.rollbacks == 1
    dispatcher.product_changed.assert_not_called()

@pytest.mark.asyncio
async def test_delete_product(catalog, conn):
    conn.execute.return_value = 'DELETE 1'
    assert await catalog.delete_product(1) is True

    conn.execute.return_value = 'DELETE 0'
    assert await catalog.delete_product(1) is False

@pytest.mark.asyncio
async def test_delete_ordered_product(catalog, conn):
    conn.execute.side_effect = ForeignKeyViolationError('order_items references products')

    with pytest.raises(ProductInUseError):
        await catalog.delete_product(1)

@pytest.mark.asyncio
async def test_price_history_oldest_first(catalog, conn):
    conn.fetchval.return_value = True
    conn.fetch.return_value = [
        {'id': 1, 'product_id': 1, 'price': Decimal('100.00'), 'date': None},
        {'id': 2, 'product_id': 1, 'price': Decimal('80.00'), 'date': None},
    ]

    history = await catalog.get_price_history(1)

    assert [h['price'] for h in history] == [Decimal('100.00'), Decimal('80.00')]
    assert 'ORDER BY date, id' in conn.fetch.call_args.args[0]

@pytest.mark.asyncio
async def test_price_history_unknown_product(catalog, conn):
    conn.fetchval.return_value = False
    with pytest.raises(ProductNotFoundError):
        await catalog.get_price_history(1)
