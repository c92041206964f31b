"""Orders API endpoints."""

from typing import Dict, Any

from fastapi import APIRouter, Depends, Response, status, Security

from auth import get_current_user, require_capability
from orders import (
    OrderManager, OrderNotFoundError, OrderAccessError,
    NoMiddlemanAvailableError, InvalidTransitionError
)
from users import Capability, has_capability
from validation import InvalidArgumentError
from ..deps import get_orders
from ..errors import bad_request, forbidden, not_found, conflict, server_error

# Paths are spelled out: admin and middleman views live outside /orders
router = APIRouter(tags=["Orders"])

order_admin = require_capability(Capability.MANAGE_ORDERS)
middleman = require_capability(Capability.FULFIL_ORDERS)

def _can_view(user: Dict[str, Any], order: Dict[str, Any]) -> bool:
    return (
        order['user_id'] == user['id']
        or order['middleman_id'] == user['id']
        or has_capability(user['role'], Capability.MANAGE_ORDERS)
    )

""" Customer Endpoints """
@router.get("/orders")
async def get_my_orders(
    orders: OrderManager = Depends(get_orders),
    user: Dict[str, Any] = Security(get_current_user)
):
    """Get the orders of the current user, newest first."""
    try:
        return await orders.get_orders(user['id'])
    except Exception:
        raise server_error(f"get orders of user {user['id']}")

""" Middleman Endpoints """
@router.get("/orders/statuschange/{order_id}")
async def advance_order_status(
    order_id: int,
    orders: OrderManager = Depends(get_orders),
    user: Dict[str, Any] = Security(middleman)
):
    """Advance an assigned order one step: processing to shipped, shipped to delivered."""
    try:
        new_status = await orders.advance_status(order_id, user['id'])
        return {"id": order_id, "status": new_status.value}
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except OrderNotFoundError:
        raise not_found("Order not found")
    except OrderAccessError:
        raise forbidden("Order is not assigned to you")
    except InvalidTransitionError as e:
        raise bad_request(str(e))
    except Exception:
        raise server_error(f"advance order {order_id}")

@router.get("/Approvedorders")
async def get_approved_orders(
    orders: OrderManager = Depends(get_orders),
    user: Dict[str, Any] = Security(middleman)
):
    """Get the approved orders assigned to the current middleman."""
    try:
        return await orders.get_assigned_orders(user['id'])
    except Exception:
        raise server_error(f"get orders of middleman {user['id']}")

""" Admin Endpoints """
@router.get("/ordersforadmin")
async def get_all_orders(
    orders: OrderManager = Depends(get_orders),
    admin: Dict[str, Any] = Security(order_admin)
):
    """Get every order with buyer and item details."""
    try:
        return await orders.get_all_orders_with_details()
    except Exception:
        raise server_error("get all orders")

@router.put("/orders/{order_id}/approve")
async def approve_order(
    order_id: int,
    orders: OrderManager = Depends(get_orders),
    admin: Dict[str, Any] = Security(order_admin)
):
    """Approve a pending order and assign a middleman to it."""
    try:
        return await orders.approve_order(order_id)
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except OrderNotFoundError:
        raise not_found("Order not found")
    except InvalidTransitionError as e:
        raise bad_request(str(e))
    except NoMiddlemanAvailableError as e:
        raise conflict(str(e))
    except Exception:
        raise server_error(f"approve order {order_id}")

@router.put("/orders/{order_id}/cancel")
async def cancel_order(
    order_id: int,
    orders: OrderManager = Depends(get_orders),
    admin: Dict[str, Any] = Security(order_admin)
):
    """Cancel an order that has not been delivered and restock its items."""
    try:
        return await orders.cancel_order(order_id)
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except OrderNotFoundError:
        raise not_found("Order not found")
    except InvalidTransitionError as e:
        raise bad_request(str(e))
    except Exception:
        raise server_error(f"cancel order {order_id}")

@router.delete("/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(
    order_id: int,
    orders: OrderManager = Depends(get_orders),
    admin: Dict[str, Any] = Security(order_admin)
):
    """Delete an order and its items."""
    try:
        deleted = await orders.delete_order(order_id)
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except Exception:
        raise server_error(f"delete order {order_id}")

    if not deleted:
        raise not_found("Order not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

""" Shared Endpoints """
@router.get("/orders/{order_id}")
async def get_order(
    order_id: int,
    orders: OrderManager = Depends(get_orders),
    user: Dict[str, Any] = Security(get_current_user)
):
    """Get one order. Customers only see their own orders."""
    try:
        order = await orders.get_order(order_id)
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except OrderNotFoundError:
        raise not_found("Order not found")
    except Exception:
        raise server_error(f"get order {order_id}")

    if not _can_view(user, order):
        raise forbidden("Not authorized to view this order")
    return order

__all__ = ['router']
