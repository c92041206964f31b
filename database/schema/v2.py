"""Schema v2 - Replace user role flags with a single role column.

The is_admin / is_middleman booleans become one of 'customer', 'admin' or
'middleman'. Also indexes orders by assigned middleman.
"""
import copy

from .v1 import schema as v1_schema

_tables = copy.deepcopy(v1_schema['tables'])

for _table in _tables:
    if _table['name'] == 'users':
        _table['columns'] = [
            col for col in _table['columns']
            if col['name'] not in ('is_admin', 'is_middleman')
        ]
        _table['columns'].insert(5, {
            'name': 'role',
            'type': 'TEXT',
            'nullable': False,
            'default': "'customer'",
            'check': "role IN ('customer', 'admin', 'middleman')"
        })
        _table['indexes'] = [
            {'name': 'idx_users_role', 'columns': ['role']}
        ]
    elif _table['name'] == 'orders':
        _table['indexes'].append(
            {'name': 'idx_orders_middleman', 'columns': ['middleman_id', 'status']}
        )

schema = {
    'version': 2,
    'tables': _tables,
    'migrations': [
        "ALTER TABLE users ADD COLUMN IF NOT EXISTS role TEXT NOT NULL DEFAULT 'customer'",
        "UPDATE users SET role = 'middleman' WHERE is_middleman",
        "UPDATE users SET role = 'admin' WHERE is_admin",
        "ALTER TABLE users DROP COLUMN IF EXISTS is_admin",
        "ALTER TABLE users DROP COLUMN IF EXISTS is_middleman",
        "ALTER TABLE users ADD CONSTRAINT users_role_check CHECK (role IN ('customer', 'admin', 'middleman'))",
        "CREATE INDEX IF NOT EXISTS idx_users_role ON users(role)",
        "CREATE INDEX IF NOT EXISTS idx_orders_middleman ON orders(middleman_id, status)"
    ]
}
