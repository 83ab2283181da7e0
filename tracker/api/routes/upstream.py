"""Upstream quota observability."""
from fastapi import APIRouter, Depends

from tracker.api.dependencies import get_henrik_api
from tracker.services.core.henrik_api_service import HenrikApiService

router = APIRouter(prefix="/upstream", tags=["upstream"])


@router.get("/quota")
async def get_quota(api: HenrikApiService = Depends(get_henrik_api)):
    """Last observed HenrikDev rate-limit bucket. Advisory only."""
    snapshot = api.get_quota_status()
    return dict(snapshot.to_dict(), is_low=snapshot.is_low)
