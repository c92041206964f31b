"""Cart API endpoints."""

from typing import Dict, Any

from fastapi import APIRouter, Depends, Response, status, Security
from pydantic import BaseModel, ConfigDict, Field

from auth import require_capability
from cart import CartManager
from catalog import ProductNotFoundError
from users import Capability
from validation import InvalidArgumentError
from ..deps import get_cart
from ..errors import bad_request, not_found, server_error

router = APIRouter(
    prefix="/cart",
    tags=["Cart"]
)

shopper = require_capability(Capability.SHOP)

class AddToCartRequest(BaseModel):
    """Request model for adding a product to the cart."""
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(alias="productId")
    quantity: int = 1

class SetQuantityRequest(BaseModel):
    """Request model for changing a cart line. A quantity of 0 removes it."""
    quantity: int

@router.get("")
async def get_cart_items(
    cart: CartManager = Depends(get_cart),
    user: Dict[str, Any] = Security(shopper)
):
    """Get the current user's cart."""
    try:
        return await cart.get_cart(user['id'])
    except Exception:
        raise server_error("get cart")

@router.post("", status_code=status.HTTP_201_CREATED)
async def add_to_cart(
    request: AddToCartRequest,
    cart: CartManager = Depends(get_cart),
    user: Dict[str, Any] = Security(shopper)
):
    """Add a product to the cart, summing with the quantity already there."""
    try:
        return await cart.add_item(user['id'], request.product_id, request.quantity)
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except ProductNotFoundError:
        raise not_found("Product not found")
    except Exception:
        raise server_error("add to cart")

@router.api_route("/{product_id}", methods=["PUT", "PATCH"])
async def set_cart_quantity(
    product_id: int,
    request: SetQuantityRequest,
    cart: CartManager = Depends(get_cart),
    user: Dict[str, Any] = Security(shopper)
):
    """Set the quantity of a product in the cart."""
    try:
        line = await cart.set_quantity(user['id'], product_id, request.quantity)
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except ProductNotFoundError:
        raise not_found("Product not found")
    except Exception:
        raise server_error("update cart")

    if line is None:
        return {"product_id": product_id, "quantity": 0, "removed": True}
    return line

@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_from_cart(
    product_id: int,
    cart: CartManager = Depends(get_cart),
    user: Dict[str, Any] = Security(shopper)
):
    """Remove a product from the cart."""
    try:
        removed = await cart.remove_item(user['id'], product_id)
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except Exception:
        raise server_error("remove from cart")

    if not removed:
        raise not_found("Product not in cart")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cart(
    cart: CartManager = Depends(get_cart),
    user: Dict[str, Any] = Security(shopper)
):
    """Empty the cart."""
    try:
        await cart.clear(user['id'])
    except Exception:
        raise server_error("clear cart")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

__all__ = ['router']
