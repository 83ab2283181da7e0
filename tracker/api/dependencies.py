"""FastAPI dependency providers for the shared upstream client and services."""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from tracker.core.database import get_db
from tracker.services.core.henrik_api_service import HenrikApiService
from tracker.services.match_detail_service import MatchDetailService
from tracker.services.match_service import MatchService
from tracker.services.player_service import PlayerService


def get_henrik_api(request: Request) -> HenrikApiService:
    """The process-wide client created in the application lifespan."""
    api = getattr(request.app.state, "henrik_api", None)
    if api is None:
        api = HenrikApiService()
        request.app.state.henrik_api = api
    return api


def get_player_service(
    db: Session = Depends(get_db),
    api: HenrikApiService = Depends(get_henrik_api),
) -> PlayerService:
    return PlayerService(db, api)


def get_match_service(
    db: Session = Depends(get_db),
    api: HenrikApiService = Depends(get_henrik_api),
) -> MatchService:
    return MatchService(db, api)


def get_match_detail_service(
    db: Session = Depends(get_db),
    api: HenrikApiService = Depends(get_henrik_api),
) -> MatchDetailService:
    return MatchDetailService(db, api)
