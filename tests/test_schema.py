"""Tests for schema rendering and version loading."""

import pytest

from database.lib.schema_manager import SchemaManager, column_sql, table_constraints_sql
from database.schema.v1 import schema as v1
from database.schema.v2 import schema as v2

def table(schema, name):
    return next(t for t in schema["tables"] if t["name"] == name)

def test_column_sql():
    col = {'name': 'stock', 'type': 'INT8', 'nullable': False, 'default': '0', 'check': 'stock >= 0'}

    assert column_sql(col) == 'stock INT8 DEFAULT 0 NOT NULL CHECK (stock >= 0)'

def test_composite_unique():
    wishlists = table(v1, 'wishlists')

    constraints = table_constraints_sql(wishlists)

    assert 'PRIMARY KEY (id)' in constraints
    assert 'UNIQUE (user_id, product_id)' in constraints

def test_versions_are_loaded_in_order():
    versions = SchemaManager(pool=None)._load_schema_files()

    assert list(versions) == sorted(versions)
    assert versions[1] is v1
    assert versions[2] is v2

@pytest.mark.asyncio
async def test_foreign_keys_cascade(conn):
    await SchemaManager(pool=None)._add_constraints(conn, table(v1, 'price_history'))

    statements = conn.queries('execute')
    assert any(
        'REFERENCES products(id) ON DELETE CASCADE' in sql for sql in statements
    )
