"""Convert ORM rows and service results to JSON-ready dicts."""
from typing import Optional

from tracker.models import MatchPlayer, Player
from tracker.repositories import MatchWithPlayer
from tracker.services.match_detail_service import MatchDetail
from tracker.services.stats import PlayerStatsSummary, kd_ratio
from tracker.utils.timezone import isoformat_utc


def player_to_dict(player: Player, stats: Optional[PlayerStatsSummary] = None) -> dict:
    """Convert Player model to dictionary."""
    data = {
        "puuid": player.puuid,
        "name": player.name,
        "tag": player.tag,
        "region": player.region,
        "account_level": player.account_level,
        "card": player.card,
        "title": player.title,
        "current_tier": {"id": player.current_tier, "name": player.current_tier_name},
        "current_rr": player.current_rr,
        "is_partial_fetch": player.is_partial_fetch,
        "last_fetch_at": isoformat_utc(player.last_fetch_at),
    }

    if stats is not None:
        data["stats"] = {
            "total_matches": stats.total_matches,
            "wins": stats.wins,
            "kills": stats.kills,
            "deaths": stats.deaths,
            "assists": stats.assists,
            "kd_ratio": stats.kd_ratio,
            "win_rate": stats.win_rate,
        }

    return data


def participant_to_dict(line: MatchPlayer) -> dict:
    return {
        "puuid": line.puuid,
        "name": line.name,
        "tag": line.tag,
        "team": line.team,
        "has_won": line.has_won,
        "character_id": line.character_id,
        "tier": {"id": line.tier, "name": line.tier_name},
        "kills": line.kills,
        "deaths": line.deaths,
        "assists": line.assists,
        "score": line.score,
        "kd_ratio": kd_ratio(line.kills, line.deaths),
        "damage_dealt": line.damage_dealt,
        "damage_taken": line.damage_taken,
    }


def match_history_to_dict(entry: MatchWithPlayer) -> dict:
    match = entry.match
    data = {
        "match_id": match.match_id,
        "map": {"id": match.map_id, "name": match.map_name},
        "mode": match.mode,
        "started_at": isoformat_utc(match.started_at),
        "season_id": match.season_id,
        "team_red_score": match.team_red_score,
        "team_blue_score": match.team_blue_score,
        "region": match.region,
        "source": match.source,
        "player": participant_to_dict(entry.stats),
        "mmr": None,
    }
    if entry.mmr is not None:
        data["mmr"] = {
            "tier": {"id": entry.mmr.tier, "name": entry.mmr.tier_name},
            "ranking_in_tier": entry.mmr.ranking_in_tier,
            "mmr_change": entry.mmr.mmr_change,
            "elo": entry.mmr.elo,
            "source": entry.mmr.source,
        }
    return data


def match_detail_to_dict(detail: MatchDetail) -> dict:
    match = detail.match
    return {
        "match_id": match.match_id,
        "map": {"id": match.map_id, "name": match.map_name},
        "mode": match.mode,
        "started_at": isoformat_utc(match.started_at),
        "season_id": match.season_id,
        "region": match.region,
        "cluster": match.cluster,
        "version": match.version,
        "team_red_score": match.team_red_score,
        "team_blue_score": match.team_blue_score,
        "rounds_played": detail.rounds_played,
        "is_complete": detail.is_complete,
        "players": [participant_to_dict(p) for p in detail.players],
    }
