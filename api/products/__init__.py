"""Product catalog API endpoints."""

from decimal import Decimal
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, Depends, Query, Response, status, Security
from pydantic import BaseModel, ConfigDict, Field

from auth import require_capability
from catalog import CatalogManager, ProductNotFoundError, ProductInUseError
from users import Capability
from validation import InvalidArgumentError
from ..deps import get_catalog
from ..errors import bad_request, not_found, server_error

router = APIRouter(
    prefix="/products",
    tags=["Products"]
)

class CreateProductRequest(BaseModel):
    """Request model for creating a product."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: Optional[str] = None
    price: Decimal = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    category: str
    image_url: Optional[str] = Field(default=None, alias="imageUrl")

class UpdateProductRequest(BaseModel):
    """Request model for updating a product. Omitted fields are unchanged."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    category: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")

""" Public Endpoints - No Authentication Required """
@router.get("")
async def list_products(
    category: Optional[str] = Query(None),
    catalog: CatalogManager = Depends(get_catalog)
) -> List[Dict[str, Any]]:
    """List all products, optionally filtered by category."""
    try:
        if category:
            return await catalog.list_by_category(category)
        return await catalog.list_products()
    except Exception:
        raise server_error("list products")

@router.get("/{product_id}")
async def get_product(product_id: int, catalog: CatalogManager = Depends(get_catalog)):
    """Get a product by ID."""
    try:
        return await catalog.get_product(product_id)
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except ProductNotFoundError:
        raise not_found("Product not found")
    except Exception:
        raise server_error(f"get product {product_id}")

@router.get("/{product_id}/price-history")
async def get_price_history(product_id: int, catalog: CatalogManager = Depends(get_catalog)):
    """Get the price history of a product, oldest first."""
    try:
        return await catalog.get_price_history(product_id)
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except ProductNotFoundError:
        raise not_found("Product not found")
    except Exception:
        raise server_error(f"get price history of product {product_id}")

""" Admin Endpoints """
@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(
    request: CreateProductRequest,
    catalog: CatalogManager = Depends(get_catalog),
    admin: Dict[str, Any] = Security(require_capability(Capability.MANAGE_CATALOG))
):
    """Create a new product."""
    try:
        return await catalog.create_product(
            name=request.name,
            price=request.price,
            category=request.category,
            stock=request.stock,
            description=request.description,
            image_url=request.image_url
        )
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except Exception:
        raise server_error("create product")

@router.put("/{product_id}")
async def update_product(
    product_id: int,
    request: UpdateProductRequest,
    catalog: CatalogManager = Depends(get_catalog),
    admin: Dict[str, Any] = Security(require_capability(Capability.MANAGE_CATALOG))
):
    """Update a product.

    A price change is recorded in the price history. Wishlist holders are
    notified of price drops and restocks in the background.
    """
    try:
        return await catalog.update_product(product_id, request.model_dump(exclude_unset=True))
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except ProductNotFoundError:
        raise not_found("Product not found")
    except Exception:
        raise server_error(f"update product {product_id}")

@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: int,
    catalog: CatalogManager = Depends(get_catalog),
    admin: Dict[str, Any] = Security(require_capability(Capability.MANAGE_CATALOG))
):
    """Delete a product."""
    try:
        deleted = await catalog.delete_product(product_id)
    except InvalidArgumentError as e:
        raise bad_request(str(e))
    except ProductInUseError as e:
        raise bad_request(str(e))
    except Exception:
        raise server_error(f"delete product {product_id}")

    if not deleted:
        raise not_found("Product not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

__all__ = ['router']
