"""
Typed views of the HenrikDev API responses the tracker consumes.

Only the fields the reconciler reads are declared; anything else in the
payload is ignored. Upstream sends ``null`` for absent values in places,
so nulls fall back to the field default instead of failing validation.
"""
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class UpstreamModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class NamedRef(UpstreamModel):
    id: str = ""
    name: str = ""


class TierRef(UpstreamModel):
    id: int = 0
    name: str = ""


class SeasonRef(UpstreamModel):
    id: str = ""
    short: str = ""


# ============================================================================
# v2 account
# ============================================================================

class AccountData(UpstreamModel):
    puuid: str
    region: str = ""
    account_level: int = 0
    name: str = ""
    tag: str = ""
    card: str = ""
    title: str = ""


class AccountResponse(UpstreamModel):
    data: AccountData


# ============================================================================
# v1 stored matches / stored mmr history (bulk historical)
# ============================================================================

class StoredMatchMeta(UpstreamModel):
    id: str
    map: NamedRef = Field(default_factory=NamedRef)
    started_at: datetime
    season: SeasonRef = Field(default_factory=SeasonRef)
    region: str = ""
    cluster: str = ""
    version: str = ""


class StoredDamage(UpstreamModel):
    made: int = 0
    received: int = 0


class StoredMatchStats(UpstreamModel):
    tier: int = 0
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    score: int = 0
    team: str = ""
    character: NamedRef = Field(default_factory=NamedRef)
    damage: StoredDamage = Field(default_factory=StoredDamage)


class StoredMatchTeams(UpstreamModel):
    red: int = 0
    blue: int = 0


class StoredMatch(UpstreamModel):
    meta: StoredMatchMeta
    stats: StoredMatchStats = Field(default_factory=StoredMatchStats)
    teams: StoredMatchTeams = Field(default_factory=StoredMatchTeams)


class StoredMatchesResponse(UpstreamModel):
    data: List[StoredMatch] = Field(default_factory=list)


class StoredMMRHistoryItem(UpstreamModel):
    match_id: str
    tier: TierRef = Field(default_factory=TierRef)
    ranking_in_tier: int = 0
    last_mmr_change: int = 0
    elo: int = 0
    date: datetime


class StoredMMRHistoryResponse(UpstreamModel):
    data: List[StoredMMRHistoryItem] = Field(default_factory=list)


# ============================================================================
# v4 matches / v1 mmr history (live incremental)
# ============================================================================

class V4MatchMetadata(UpstreamModel):
    match_id: str
    region: str = ""
    cluster: str = ""
    map: NamedRef = Field(default_factory=NamedRef)
    started_at: datetime
    season: SeasonRef = Field(default_factory=SeasonRef)
    game_version: str = ""


class V4Damage(UpstreamModel):
    dealt: int = 0
    received: int = 0


class V4PlayerStats(UpstreamModel):
    score: int = 0
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    damage: V4Damage = Field(default_factory=V4Damage)


class V4Customization(UpstreamModel):
    card: str = ""
    title: str = ""


class V4Player(UpstreamModel):
    puuid: str
    name: str = ""
    tag: str = ""
    agent: NamedRef = Field(default_factory=NamedRef)
    stats: V4PlayerStats = Field(default_factory=V4PlayerStats)
    tier: TierRef = Field(default_factory=TierRef)
    account_level: int = 0
    customization: V4Customization = Field(default_factory=V4Customization)
    team_id: str = ""


class V4TeamRounds(UpstreamModel):
    won: int = 0
    lost: int = 0


class V4Team(UpstreamModel):
    team_id: str
    won: bool = False
    rounds: V4TeamRounds = Field(default_factory=V4TeamRounds)


class V4Match(UpstreamModel):
    metadata: V4MatchMetadata
    players: List[V4Player] = Field(default_factory=list)
    teams: List[V4Team] = Field(default_factory=list)

    def find_player(self, puuid: str) -> Optional[V4Player]:
        for player in self.players:
            if player.puuid == puuid:
                return player
        return None


class V4MatchesResponse(UpstreamModel):
    data: List[V4Match] = Field(default_factory=list)


class MMRHistoryItem(UpstreamModel):
    match_id: str
    currenttier: int = 0
    currenttierpatched: str = ""
    ranking_in_tier: int = 0
    mmr_change_to_last_game: int = 0
    elo: int = 0
    date: str = ""


class MMRHistoryResponse(UpstreamModel):
    name: str = ""
    tag: str = ""
    data: List[MMRHistoryItem] = Field(default_factory=list)


# ============================================================================
# v3 current mmr
# ============================================================================

class CurrentRank(UpstreamModel):
    tier: TierRef = Field(default_factory=TierRef)
    rr: int = 0


class MMRData(UpstreamModel):
    current: CurrentRank = Field(default_factory=CurrentRank)


class MMRResponse(UpstreamModel):
    data: MMRData = Field(default_factory=MMRData)


# ============================================================================
# v2 match detail
# ============================================================================

class MatchV2Metadata(UpstreamModel):
    matchid: str
    map: str = ""
    game_version: str = ""
    region: str = ""
    cluster: str = ""
    mode: str = ""
    season_id: str = ""
    rounds_played: int = 0
    game_start: int = 0


class MatchV2Stats(UpstreamModel):
    score: int = 0
    kills: int = 0
    deaths: int = 0
    assists: int = 0


class MatchV2Player(UpstreamModel):
    puuid: str
    name: str = ""
    tag: str = ""
    team: str = ""
    level: int = 0
    character: str = ""
    currenttier: int = 0
    currenttier_patched: str = ""
    player_card: str = ""
    player_title: str = ""
    stats: MatchV2Stats = Field(default_factory=MatchV2Stats)
    damage_made: int = 0
    damage_received: int = 0


class MatchV2Players(UpstreamModel):
    all_players: List[MatchV2Player] = Field(default_factory=list)


class MatchV2TeamResult(UpstreamModel):
    rounds_won: int = 0


class MatchV2Teams(UpstreamModel):
    red: MatchV2TeamResult = Field(default_factory=MatchV2TeamResult)
    blue: MatchV2TeamResult = Field(default_factory=MatchV2TeamResult)


class MatchV2Data(UpstreamModel):
    metadata: MatchV2Metadata
    players: MatchV2Players = Field(default_factory=MatchV2Players)
    teams: MatchV2Teams = Field(default_factory=MatchV2Teams)


class MatchV2Response(UpstreamModel):
    data: MatchV2Data
