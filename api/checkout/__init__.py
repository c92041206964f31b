"""Checkout API endpoints.

Checkout is two calls: ``/send-otp`` sends a code to the buyer's phone and
``/place-order`` verifies that code and places the order.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, Depends, HTTPException, status, Security
from pydantic import BaseModel, ConfigDict, Field

from auth import require_capability
from catalog import ProductNotFoundError
from orders import OrderManager, InsufficientStockError
from otp import OtpGate, OtpError, InvalidOtpError, OtpDeliveryError
from users import Capability
from validation import InvalidArgumentError
from ..deps import get_gate, get_orders
from ..errors import bad_request, not_found, server_error

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Checkout"])

shopper = require_capability(Capability.SHOP)

class SendOtpRequest(BaseModel):
    """Request model for sending a checkout code."""
    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(alias="phoneNumber")

class CheckoutItem(BaseModel):
    """One line of an order, with the unit price the buyer agreed to."""
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(alias="productId")
    quantity: int = Field(ge=1)
    price: Decimal = Field(ge=0)

class OrderDetails(BaseModel):
    """The order being confirmed."""
    model_config = ConfigDict(populate_by_name=True)

    items: List[CheckoutItem] = Field(min_length=1)
    total_amount: Optional[Decimal] = Field(default=None, alias="totalAmount")
    shipping_address: str = Field(alias="shippingAddress")
    delivery_date: Optional[datetime] = Field(default=None, alias="deliveryDate")

class PlaceOrderRequest(BaseModel):
    """Request model for placing an order."""
    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(alias="phoneNumber")
    otp: str
    order_details: OrderDetails = Field(alias="orderDetails")

@router.post("/send-otp")
async def send_otp(
    request: SendOtpRequest,
    gate: OtpGate = Depends(get_gate),
    user: Dict[str, Any] = Security(shopper)
):
    """Send a checkout verification code to a phone number."""
    try:
        await gate.issue_challenge(request.phone_number)
        return {"message": "OTP sent"}
    except OtpDeliveryError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not send verification code, try again later"
        )
    except OtpError as e:
        raise bad_request(str(e))
    except Exception:
        raise server_error("send OTP")

@router.post("/place-order", status_code=status.HTTP_201_CREATED)
async def place_order(
    request: PlaceOrderRequest,
    gate: OtpGate = Depends(get_gate),
    orders: OrderManager = Depends(get_orders),
    user: Dict[str, Any] = Security(shopper)
):
    """Verify the checkout code and place the order.

    The code is consumed even if the order then fails on stock.
    """
    try:
        gate.verify_challenge(request.phone_number, request.otp)
    except InvalidOtpError:
        logger.warning(f"Invalid OTP from user {user['id']}")
        raise bad_request({"error": "invalid_otp", "message": "Invalid OTP"})

    details = request.order_details
    try:
        return await orders.place_order(
            user['id'],
            [item.model_dump() for item in details.items],
            shipping_address=details.shipping_address,
            contact=request.phone_number,
            delivery_date=details.delivery_date,
            expected_total=details.total_amount
        )
    except InsufficientStockError as e:
        raise bad_request({
            "error": "insufficient_stock",
            "product_id": e.product_id,
            "available": e.available,
            "requested": e.requested,
            "message": str(e)
        })
    except ProductNotFoundError as e:
        raise not_found(str(e))
    except InvalidArgumentError as e:
        raise bad_request({
            "error": "validation_error",
            "field": e.field,
            "message": e.reason
        })
    except Exception:
        raise server_error(f"place order for user {user['id']}")

__all__ = ['router']
