"""
Source reconciler: turns upstream payloads into canonical rows.

Three upstream shapes describe the same facts differently:

- Bulk historical (stored matches + stored rank history): one summary per
  match for the target player, joined to rank history by match id.
- Live incremental (v4 matches + rank history): full rosters and per-team
  results, joined to rank history by match id.
- Single-match detail (v2): every participant, with map and agent given by
  display name.

The reconciler is pure: it never touches the store or the network. Rows it
cannot pair are dropped, and within one batch the last row for a key wins.
"""
from typing import Dict, Optional, Sequence

from tracker.core.constants import (
    COMPETITIVE_MODE,
    MATCH_SOURCE_STORED,
    MATCH_SOURCE_V2,
    MATCH_SOURCE_V4,
    MMR_SOURCE_HISTORY,
    MMR_SOURCE_STORED,
)
from tracker.core.logging import get_logger
from tracker.services.core.payloads import (
    MatchV2Response,
    MMRHistoryResponse,
    StoredMatchesResponse,
    StoredMMRHistoryResponse,
    V4Match,
    V4MatchesResponse,
)
from tracker.services.sync.reference_data import agent_id_for, map_id_for
from tracker.services.sync.types import (
    MatchPlayerRow,
    MatchRow,
    MMRRecord,
    PlayerRow,
    ReconciledBatch,
    SourceShape,
)
from tracker.utils.timezone import from_unix, to_naive_utc

logger = get_logger(__name__)

RED = "red"
BLUE = "blue"


def team_won(team: str, red_score: int, blue_score: int) -> bool:
    """A side won when its round score is strictly higher. Draws are losses for both."""
    side = (team or "").lower()
    if side == RED:
        return red_score > blue_score
    if side == BLUE:
        return blue_score > red_score
    return False


def _dedupe(rows, key):
    unique = {}
    for row in rows:
        unique[key(row)] = row
    return list(unique.values())


class SourceReconciler:
    """
    Maps one upstream response set to a ReconciledBatch.

    Usage:
        batch = SourceReconciler().reconcile(
            SourceShape.BULK_HISTORICAL, (matches, mmr_history), puuid, name, tag
        )
    """

    def reconcile(
        self,
        shape: SourceShape,
        responses: Sequence,
        puuid: Optional[str] = None,
        name: str = "",
        tag: str = "",
    ) -> ReconciledBatch:
        """
        Dispatch on the response shape.

        Args:
            shape: Which upstream shape ``responses`` holds
            responses: (matches, rank_history) for the history shapes, (detail,) for detail
            puuid: Target player (history shapes only)
            name: Target player's name for participation rows
            tag: Target player's tag for participation rows
        """
        shape = SourceShape(shape)
        if shape is SourceShape.BULK_HISTORICAL:
            matches, mmr_history = responses
            batch = self.reconcile_stored(matches, mmr_history, puuid, name, tag)
        elif shape is SourceShape.LIVE_INCREMENTAL:
            matches, mmr_history = responses
            batch = self.reconcile_live(matches, mmr_history, puuid, name, tag)
        else:
            (detail,) = responses
            batch = self.reconcile_detail(detail)

        logger.debug("Reconciled upstream batch", extra={"shape": shape.value, **batch.counts()})
        return batch

    # ========================================================================
    # Bulk historical
    # ========================================================================

    def reconcile_stored(
        self,
        matches: StoredMatchesResponse,
        mmr_history: StoredMMRHistoryResponse,
        puuid: str,
        name: str,
        tag: str,
    ) -> ReconciledBatch:
        mmr_by_match = {item.match_id: item for item in mmr_history.data}
        batch = ReconciledBatch()

        for stored in matches.data:
            meta = stored.meta
            mmr = mmr_by_match.get(meta.id)
            if mmr is None:
                continue

            red, blue = stored.teams.red, stored.teams.blue
            batch.matches.append(MatchRow(
                match_id=meta.id,
                map_id=meta.map.id,
                map_name=meta.map.name,
                mode=COMPETITIVE_MODE,
                started_at=to_naive_utc(meta.started_at),
                season_id=meta.season.id,
                team_red_score=red,
                team_blue_score=blue,
                region=meta.region,
                cluster=meta.cluster,
                version=meta.version,
                source=MATCH_SOURCE_STORED,
            ))
            batch.participations.append(MatchPlayerRow(
                match_id=meta.id,
                puuid=puuid,
                name=name,
                tag=tag,
                tier=mmr.tier.id,
                tier_name=mmr.tier.name,
                kills=stored.stats.kills,
                deaths=stored.stats.deaths,
                assists=stored.stats.assists,
                score=stored.stats.score,
                team=stored.stats.team,
                has_won=team_won(stored.stats.team, red, blue),
                character_id=stored.stats.character.id,
                damage_dealt=stored.stats.damage.made,
                damage_taken=stored.stats.damage.received,
            ))
            batch.mmr_records.append(MMRRecord(
                match_id=meta.id,
                puuid=puuid,
                tier=mmr.tier.id,
                tier_name=mmr.tier.name,
                ranking_in_tier=mmr.ranking_in_tier,
                mmr_change=mmr.last_mmr_change,
                elo=mmr.elo,
                date=to_naive_utc(mmr.date),
                source=MMR_SOURCE_STORED,
            ))

        return self._finalize(batch)

    # ========================================================================
    # Live incremental
    # ========================================================================

    @staticmethod
    def _team_results(match: V4Match):
        """Per-match team id -> won and team id -> rounds won."""
        won: Dict[str, bool] = {}
        rounds: Dict[str, int] = {}
        for team in match.teams:
            key = team.team_id.lower()
            won[key] = team.won
            rounds[key] = team.rounds.won
        return won, rounds

    def reconcile_live(
        self,
        matches: V4MatchesResponse,
        mmr_history: MMRHistoryResponse,
        puuid: str,
        name: str,
        tag: str,
    ) -> ReconciledBatch:
        mmr_by_match = {item.match_id: item for item in mmr_history.data}
        batch = ReconciledBatch()

        for match in matches.data:
            meta = match.metadata
            mmr = mmr_by_match.get(meta.match_id)
            if mmr is None:
                continue
            player = match.find_player(puuid)
            if player is None:
                logger.debug("Target player missing from match roster", extra={"match_id": meta.match_id})
                continue

            won, rounds = self._team_results(match)
            started_at = to_naive_utc(meta.started_at)

            batch.matches.append(MatchRow(
                match_id=meta.match_id,
                map_id=meta.map.id,
                map_name=meta.map.name,
                mode=COMPETITIVE_MODE,
                started_at=started_at,
                season_id=meta.season.id,
                team_red_score=rounds.get(RED, 0),
                team_blue_score=rounds.get(BLUE, 0),
                region=meta.region,
                cluster=meta.cluster,
                version=meta.game_version,
                source=MATCH_SOURCE_V4,
            ))
            batch.participations.append(MatchPlayerRow(
                match_id=meta.match_id,
                puuid=puuid,
                name=name,
                tag=tag,
                tier=mmr.currenttier,
                tier_name=mmr.currenttierpatched,
                kills=player.stats.kills,
                deaths=player.stats.deaths,
                assists=player.stats.assists,
                score=player.stats.score,
                team=player.team_id,
                has_won=won.get(player.team_id.lower(), False),
                character_id=player.agent.id,
                damage_dealt=player.stats.damage.dealt,
                damage_taken=player.stats.damage.received,
            ))
            batch.mmr_records.append(MMRRecord(
                match_id=meta.match_id,
                puuid=puuid,
                tier=mmr.currenttier,
                tier_name=mmr.currenttierpatched,
                ranking_in_tier=mmr.ranking_in_tier,
                mmr_change=mmr.mmr_change_to_last_game,
                elo=mmr.elo,
                date=started_at,
                source=MMR_SOURCE_HISTORY,
            ))

        return self._finalize(batch)

    # ========================================================================
    # Single-match detail
    # ========================================================================

    def reconcile_detail(self, detail: MatchV2Response) -> ReconciledBatch:
        data = detail.data
        meta = data.metadata
        red, blue = data.teams.red.rounds_won, data.teams.blue.rounds_won
        batch = ReconciledBatch()

        batch.matches.append(MatchRow(
            match_id=meta.matchid,
            map_id=map_id_for(meta.map),
            map_name=meta.map,
            mode=meta.mode,
            started_at=from_unix(meta.game_start),
            season_id=meta.season_id,
            team_red_score=red,
            team_blue_score=blue,
            region=meta.region,
            cluster=meta.cluster,
            version=meta.game_version,
            source=MATCH_SOURCE_V2,
        ))

        for p in data.players.all_players:
            batch.players.append(PlayerRow(
                puuid=p.puuid,
                name=p.name,
                tag=p.tag,
                region=meta.region,
                account_level=p.level,
                card=p.player_card,
                title=p.player_title,
                current_tier=p.currenttier,
                current_tier_name=p.currenttier_patched,
            ))
            batch.participations.append(MatchPlayerRow(
                match_id=meta.matchid,
                puuid=p.puuid,
                name=p.name,
                tag=p.tag,
                tier=p.currenttier,
                tier_name=p.currenttier_patched,
                kills=p.stats.kills,
                deaths=p.stats.deaths,
                assists=p.stats.assists,
                score=p.stats.score,
                team=p.team,
                has_won=team_won(p.team, red, blue),
                character_id=agent_id_for(p.character),
                damage_dealt=p.damage_made,
                damage_taken=p.damage_received,
            ))

        return self._finalize(batch)

    @staticmethod
    def _finalize(batch: ReconciledBatch) -> ReconciledBatch:
        batch.players = _dedupe(batch.players, lambda r: r.puuid)
        batch.matches = _dedupe(batch.matches, lambda r: r.match_id)
        batch.participations = _dedupe(batch.participations, lambda r: (r.match_id, r.puuid))
        return batch
