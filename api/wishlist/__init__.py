"""Wishlist API endpoints."""

from typing import Dict, Any

from fastapi import APIRouter, Depends, Response, status, Security
from pydantic import BaseModel, ConfigDict, Field

from auth import require_capability
from catalog import ProductNotFoundError
from users import Capability
from validation import InvalidArgumentError
from wishlist import WishlistManager
from ..deps import get_wishlist
from ..errors import bad_request, not_found, server_error

router = APIRouter(
    prefix="/wishlist",
    tags=["Wishlist"]
)

shopper = require_capability(Capability.SHOP)

class WishlistRequest(BaseModel):
    """Request model for adding a product to the wishlist."""
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(alias="productId")

@router.post("", status_code=status.HTTP_201_CREATED)
async def add_to_wishlist(
    request: WishlistRequest,
    wishlist: WishlistManager = Depends(get_wishlist),
    user: Dict[str, Any] = Security(shopper)
):
    """Add a product to the wishlist. Adding it twice is harmless."""
    try:
        return await wishlist.add(user['id'], request.product_id)
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except ProductNotFoundError:
        raise not_found("Product not found")
    except Exception:
        raise server_error("add to wishlist")

@router.get("")
async def get_wishlist_items(
    wishlist: WishlistManager = Depends(get_wishlist),
    user: Dict[str, Any] = Security(shopper)
):
    """Get the wishlisted products of the current user."""
    try:
        return await wishlist.list(user['id'])
    except Exception:
        raise server_error("get wishlist")

@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_from_wishlist(
    product_id: int,
    wishlist: WishlistManager = Depends(get_wishlist),
    user: Dict[str, Any] = Security(shopper)
):
    """Remove a product from the wishlist."""
    try:
        removed = await wishlist.remove(user['id'], product_id)
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except Exception:
        raise server_error("remove from wishlist")

    if not removed:
        raise not_found("Product not in wishlist")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

__all__ = ['router']
