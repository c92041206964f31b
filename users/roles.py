"""User roles and the capabilities each role grants."""
from enum import Enum
from typing import FrozenSet


class Role(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    MIDDLEMAN = "middleman"


class Capability(str, Enum):
    SHOP = "shop"
    MANAGE_CATALOG = "manage_catalog"
    MANAGE_ORDERS = "manage_orders"
    MANAGE_USERS = "manage_users"
    VIEW_ANALYTICS = "view_analytics"
    FULFIL_ORDERS = "fulfil_orders"


ROLE_CAPABILITIES = {
    Role.CUSTOMER: frozenset({Capability.SHOP}),
    Role.ADMIN: frozenset({
        Capability.SHOP,
        Capability.MANAGE_CATALOG,
        Capability.MANAGE_ORDERS,
        Capability.MANAGE_USERS,
        Capability.VIEW_ANALYTICS,
    }),
    Role.MIDDLEMAN: frozenset({Capability.SHOP, Capability.FULFIL_ORDERS}),
}


def capabilities_for(role) -> FrozenSet[Capability]:
    """Return the capabilities granted to a role (by enum or value)."""
    return ROLE_CAPABILITIES[Role(role)]


def has_capability(role, capability: Capability) -> bool:
    return capability in capabilities_for(role)
