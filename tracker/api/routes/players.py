"""
Player lookup, search and match history routes.

Static paths are registered before ``/{name}/{tag}`` so they are not
captured as a name and tag.
"""
from fastapi import APIRouter, Depends, Query

from tracker.api.dependencies import get_match_service, get_player_service
from tracker.api.serializers import match_history_to_dict, player_to_dict
from tracker.core.constants import SEARCH_SUGGESTION_LIMIT, SEARCH_SUGGESTION_MAX
from tracker.services.match_service import MatchService
from tracker.services.player_service import PlayerService
from tracker.services.stats import summarize

router = APIRouter(prefix="/players", tags=["players"])


@router.get("/search")
async def search_players(
    q: str = Query(..., min_length=1, description="Fragment of a name, tag or name#tag"),
    limit: int = Query(SEARCH_SUGGESTION_LIMIT, ge=1, le=SEARCH_SUGGESTION_MAX),
    service: PlayerService = Depends(get_player_service),
):
    """
    Search stored players for autocomplete.

    Read-only; never calls upstream.
    Example: /api/v1/players/search?q=ten
    """
    players = service.search_suggestions(q, limit=limit)
    return {"query": q, "count": len(players), "players": [player_to_dict(p) for p in players]}


@router.get("/by-puuid/{puuid}/matches")
async def get_player_matches(
    puuid: str,
    refresh: bool = Query(False, description="Refetch recent matches regardless of cache age"),
    service: MatchService = Depends(get_match_service),
):
    """Match history for a stored player, newest first."""
    history = await service.get_matches_for(puuid, force_refresh=refresh)
    return {"puuid": puuid, "count": len(history), "matches": [match_history_to_dict(m) for m in history]}


@router.get("/by-puuid/{puuid}")
async def get_player_by_puuid(
    puuid: str,
    refresh: bool = Query(False),
    service: PlayerService = Depends(get_player_service),
):
    """Stored player by puuid. Aggregates cover stored matches only; no match fetch."""
    player = await service.get_player_by_puuid(puuid, force_refresh=refresh)
    return player_to_dict(player, stats=service.get_stats_summary(player.puuid))


@router.get("/{name}/{tag}")
async def get_player(
    name: str,
    tag: str,
    refresh: bool = Query(False, description="Refetch identity, rank and recent matches regardless of cache age"),
    service: PlayerService = Depends(get_player_service),
    match_service: MatchService = Depends(get_match_service),
):
    """
    Get a player by Riot name and tag, with career aggregates.

    Aggregates are computed over the match history after it is brought up
    to date, so the first lookup of a player already counts their backfill.

    Example: /api/v1/players/TenZ/0505?refresh=true
    """
    player = await service.get_player(name, tag, force_refresh=refresh)
    history = await match_service.get_matches_for(player.puuid, force_refresh=refresh)
    return player_to_dict(player, stats=summarize(entry.stats for entry in history))
