"""Shared manager instances for the routers.

Routers receive managers through these providers so they can be swapped with
``app.dependency_overrides``.
"""
from analytics import AnalyticsManager
from cart import CartManager
from catalog import CatalogManager
from notifications import dispatcher
from orders import OrderManager
from otp import OtpGate, gate
from users import UserManager
from wishlist import WishlistManager

catalog_manager = CatalogManager(dispatcher=dispatcher)
cart_manager = CartManager()
wishlist_manager = WishlistManager()
order_manager = OrderManager(dispatcher=dispatcher)
user_manager = UserManager()
analytics_manager = AnalyticsManager()

def get_catalog() -> CatalogManager:
    return catalog_manager

def get_cart() -> CartManager:
    return cart_manager

def get_wishlist() -> WishlistManager:
    return wishlist_manager

def get_orders() -> OrderManager:
    return order_manager

def get_users() -> UserManager:
    return user_manager

def get_analytics() -> AnalyticsManager:
    return analytics_manager

def get_gate() -> OtpGate:
    return gate
