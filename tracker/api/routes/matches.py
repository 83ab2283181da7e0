"""Match detail routes."""
from fastapi import APIRouter, Depends

from tracker.api.dependencies import get_match_detail_service
from tracker.api.serializers import match_detail_to_dict
from tracker.services.match_detail_service import MatchDetailService

router = APIRouter(prefix="/matches", tags=["matches"])


@router.get("/{match_id}")
async def get_match(
    match_id: str,
    service: MatchDetailService = Depends(get_match_detail_service),
):
    """Match metadata with the full roster, fetched from upstream if incomplete."""
    detail = await service.get_match(match_id)
    return match_detail_to_dict(detail)
