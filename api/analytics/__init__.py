"""Analytics API endpoints."""

from typing import Dict, Any

from fastapi import APIRouter, Depends, Security

from analytics import AnalyticsManager
from auth import require_capability
from users import Capability
from ..deps import get_analytics
from ..errors import server_error

router = APIRouter(
    prefix="/analytics",
    tags=["Analytics"]
)

@router.get("")
async def get_analytics_summary(
    analytics: AnalyticsManager = Depends(get_analytics),
    admin: Dict[str, Any] = Security(require_capability(Capability.VIEW_ANALYTICS))
):
    """Get user, product and order counts for the dashboard."""
    try:
        return await analytics.get_summary()
    except Exception:
        raise server_error("compute analytics")

__all__ = ['router']
