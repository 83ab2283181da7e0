"""
Database models for the Valorant stats tracker.

Four canonical tables, independent of which upstream shape produced a row:
players, matches, match_players (participation) and mmr_history.
"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Boolean, Index
from sqlalchemy.orm import relationship, declarative_base

from tracker.utils.timezone import utcnow

Base = declarative_base()


class Player(Base):
    """Player identity plus current rank, keyed by the platform puuid."""
    __tablename__ = "players"

    puuid = Column(String(100), primary_key=True)
    name = Column(String(64), nullable=False, index=True)
    tag = Column(String(16), nullable=False)
    region = Column(String(8), nullable=False, default="")
    account_level = Column(Integer, nullable=False, default=0)
    card = Column(String(64), nullable=False, default="")
    title = Column(String(64), nullable=False, default="")
    current_tier = Column(Integer, nullable=False, default=0)
    current_tier_name = Column(String(32), nullable=False, default="")
    current_rr = Column(Integer, nullable=False, default=0)  # rank points within tier (0-100)
    is_partial_fetch = Column(Boolean, nullable=False, default=True)
    last_fetch_at = Column(DateTime, nullable=True)  # identity/rank freshness
    matches_fetched_at = Column(DateTime, nullable=True)  # match-history freshness
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index('ix_players_name_tag', 'name', 'tag'),
    )


class Match(Base):
    """Match metadata. ``source`` records which upstream shape wrote it last."""
    __tablename__ = "matches"

    match_id = Column(String(64), primary_key=True)
    map_id = Column(String(64), nullable=False, default="")
    map_name = Column(String(64), nullable=False, default="")
    mode = Column(String(32), nullable=False, default="")
    started_at = Column(DateTime, nullable=False, index=True)
    season_id = Column(String(64), nullable=False, default="")
    team_red_score = Column(Integer, nullable=False, default=0)
    team_blue_score = Column(Integer, nullable=False, default=0)
    region = Column(String(8), nullable=False, default="")
    cluster = Column(String(64), nullable=False, default="")
    version = Column(String(64), nullable=False, default="")
    source = Column(String(16), nullable=False)  # stored, v4, v2
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    participants = relationship("MatchPlayer", back_populates="match", cascade="all, delete-orphan")


class MatchPlayer(Base):
    """One player's line in one match."""
    __tablename__ = "match_players"

    match_id = Column(String(64), ForeignKey("matches.match_id", ondelete="CASCADE"), primary_key=True)
    puuid = Column(String(100), primary_key=True, index=True)
    name = Column(String(64), nullable=False, default="")
    tag = Column(String(16), nullable=False, default="")
    tier = Column(Integer, nullable=False, default=0)
    tier_name = Column(String(32), nullable=False, default="")
    kills = Column(Integer, nullable=False)
    deaths = Column(Integer, nullable=False)
    assists = Column(Integer, nullable=False)
    score = Column(Integer, nullable=False)
    team = Column(String(8), nullable=False)  # Red or Blue
    has_won = Column(Boolean, nullable=False)
    character_id = Column(String(64), nullable=False, default="")
    damage_dealt = Column(Integer, nullable=False, default=0)
    damage_taken = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    match = relationship("Match", back_populates="participants")


class MMRHistory(Base):
    """
    Rank change recorded against a match.

    Append-only: the generated id is the key, so reconciling the same match
    again adds a record instead of replacing one.
    """
    __tablename__ = "mmr_history"

    id = Column(String(36), primary_key=True)
    match_id = Column(String(64), nullable=False)
    puuid = Column(String(100), nullable=False)
    tier = Column(Integer, nullable=False, default=0)
    tier_name = Column(String(32), nullable=False, default="")
    ranking_in_tier = Column(Integer, nullable=False, default=0)  # RR after the match
    mmr_change = Column(Integer, nullable=False, default=0)  # signed RR delta
    elo = Column(Integer, nullable=False, default=0)  # hidden rating
    date = Column(DateTime, nullable=False)
    source = Column(String(32), nullable=False)  # stored-mmr-history, mmr-history
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index('ix_mmr_history_puuid_match', 'puuid', 'match_id'),
    )
