"""Transient row types produced by reconciliation and consumed by the persister."""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SourceShape(str, Enum):
    """The three upstream response shapes the reconciler understands."""

    BULK_HISTORICAL = "stored"
    LIVE_INCREMENTAL = "v4"
    MATCH_DETAIL = "v2"


@dataclass
class PlayerRow:
    puuid: str
    name: str
    tag: str
    region: str = ""
    account_level: int = 0
    card: str = ""
    title: str = ""
    current_tier: int = 0
    current_tier_name: str = ""
    current_rr: int = 0
    is_partial_fetch: bool = True
    last_fetch_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MatchRow:
    match_id: str
    map_id: str
    map_name: str
    mode: str
    started_at: datetime
    season_id: str
    team_red_score: int
    team_blue_score: int
    region: str
    cluster: str
    version: str
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MatchPlayerRow:
    match_id: str
    puuid: str
    name: str
    tag: str
    tier: int
    tier_name: str
    kills: int
    deaths: int
    assists: int
    score: int
    team: str
    has_won: bool
    character_id: str
    damage_dealt: int
    damage_taken: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MMRRecord:
    match_id: str
    puuid: str
    tier: int
    tier_name: str
    ranking_in_tier: int
    mmr_change: int
    elo: int
    date: datetime
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReconciledBatch:
    """Everything one reconciliation pass wants written, in write order."""

    players: List[PlayerRow] = field(default_factory=list)
    matches: List[MatchRow] = field(default_factory=list)
    participations: List[MatchPlayerRow] = field(default_factory=list)
    mmr_records: List[MMRRecord] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.players or self.matches or self.participations or self.mmr_records)

    def counts(self) -> Dict[str, int]:
        return {
            "players": len(self.players),
            "matches": len(self.matches),
            "participations": len(self.participations),
            "mmr_records": len(self.mmr_records),
        }
