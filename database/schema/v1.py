"""Schema v1 - Initial storefront schema.

This version includes tables for:
- Users with admin / middleman flags
- Products and their price history
- Wishlists and carts
- Orders and order items
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'users',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'username', 'type': 'TEXT', 'nullable': False, 'unique': True},
                {'name': 'password', 'type': 'TEXT', 'nullable': False},
                {'name': 'email', 'type': 'TEXT'},
                {'name': 'phone', 'type': 'TEXT'},
                {'name': 'is_admin', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'is_middleman', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ]
        },
        {
            'name': 'products',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'name', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT'},
                {'name': 'price', 'type': 'DECIMAL(12,2)', 'nullable': False, 'check': 'price >= 0'},
                {'name': 'stock', 'type': 'INT8', 'nullable': False, 'default': '0', 'check': 'stock >= 0'},
                {'name': 'image_url', 'type': 'TEXT'},
                {'name': 'category', 'type': 'TEXT', 'nullable': False}
            ],
            'indexes': [
                {'name': 'idx_products_category', 'columns': ['category']}
            ]
        },
        {
            'name': 'price_history',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'product_id', 'type': 'INT8', 'nullable': False},
                {'name': 'price', 'type': 'DECIMAL(12,2)', 'nullable': False},
                {'name': 'date', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'clock_timestamp()'}
            ],
            'foreign_keys': [
                {'columns': ['product_id'], 'references': 'products(id)', 'on_delete': 'CASCADE'}
            ],
            'indexes': [
                {'name': 'idx_price_history_product', 'columns': ['product_id', 'date']}
            ]
        },
        {
            'name': 'wishlists',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'user_id', 'type': 'INT8', 'nullable': False},
                {'name': 'product_id', 'type': 'INT8', 'nullable': False}
            ],
            'unique': [['user_id', 'product_id']],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)', 'on_delete': 'CASCADE'},
                {'columns': ['product_id'], 'references': 'products(id)', 'on_delete': 'CASCADE'}
            ],
            'indexes': [
                {'name': 'idx_wishlists_product', 'columns': ['product_id']}
            ]
        },
        {
            'name': 'cart_items',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'user_id', 'type': 'INT8', 'nullable': False},
                {'name': 'product_id', 'type': 'INT8', 'nullable': False},
                {'name': 'quantity', 'type': 'INT8', 'nullable': False, 'default': '1', 'check': 'quantity >= 1'},
                {'name': 'added_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'unique': [['user_id', 'product_id']],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)', 'on_delete': 'CASCADE'},
                {'columns': ['product_id'], 'references': 'products(id)', 'on_delete': 'CASCADE'}
            ]
        },
        {
            'name': 'orders',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'user_id', 'type': 'INT8', 'nullable': False},
                {'name': 'total', 'type': 'DECIMAL(12,2)', 'nullable': False},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'pending'"},
                {'name': 'shipping_address', 'type': 'TEXT'},
                {'name': 'delivery_date', 'type': 'TIMESTAMPTZ', 'nullable': False},
                {'name': 'tracking_number', 'type': 'TEXT', 'nullable': False},
                {'name': 'middleman_id', 'type': 'INT8'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)'},
                {'columns': ['middleman_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_orders_user', 'columns': ['user_id']},
                {'name': 'idx_orders_status', 'columns': ['status']}
            ]
        },
        {
            'name': 'order_items',
            'columns': [
                {'name': 'id', 'type': 'BIGSERIAL', 'primary_key': True},
                {'name': 'order_id', 'type': 'INT8', 'nullable': False},
                {'name': 'product_id', 'type': 'INT8', 'nullable': False},
                {'name': 'quantity', 'type': 'INT8', 'nullable': False},
                {'name': 'price', 'type': 'DECIMAL(12,2)', 'nullable': False}
            ],
            'foreign_keys': [
                {'columns': ['order_id'], 'references': 'orders(id)', 'on_delete': 'CASCADE'},
                {'columns': ['product_id'], 'references': 'products(id)'}
            ],
            'indexes': [
                {'name': 'idx_order_items_order', 'columns': ['order_id']}
            ]
        }
    ]
}
