"""REST API module for the storefront.

This module provides HTTP endpoints for:
- Browsing products and their price history
- Managing the catalog (admins)
- Wishlists and carts
- OTP confirmed checkout
- Order approval (admins) and fulfilment (middlemen)
- Dashboard analytics and user management
- Registration, login and bearer sessions
"""

from .main import app

__all__ = ['app']
