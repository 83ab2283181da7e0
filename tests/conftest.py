"""Shared pytest fixtures for valorant-stats-tracker tests."""
import os
import sys
from datetime import timedelta
from pathlib import Path
from typing import AsyncGenerator, Generator, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy.orm import sessionmaker, Session
from httpx import AsyncClient, ASGITransport

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("HENRIK_API_KEY", "HDEV-test-key")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("LAST_FETCH_DELAY", "0")

from tracker.utils.timezone import utcnow  # noqa: E402
from tracker.services.core.payloads import (  # noqa: E402
    AccountResponse,
    MatchV2Response,
    MMRHistoryResponse,
    MMRResponse,
    StoredMatchesResponse,
    StoredMMRHistoryResponse,
    V4MatchesResponse,
)

TARGET_PUUID = "puuid-target-0001"
TARGET_NAME = "TenZ"
TARGET_TAG = "0505"
REGION = "na"


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """File-backed SQLite database per test, with production pragmas."""
    from tracker.core.database import create_db_engine, init_db

    engine = create_db_engine(f"sqlite:///{tmp_path / 'tracker-test.db'}")
    init_db(bind=engine)

    yield engine

    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(bind=db_engine, autoflush=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create fresh test database session."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def stored_player(db_session: Session):
    """A fully fetched player whose identity was stamped a minute ago."""
    from tracker.models import Player

    player = Player(
        puuid=TARGET_PUUID,
        name=TARGET_NAME,
        tag=TARGET_TAG,
        region=REGION,
        account_level=412,
        card="card-1",
        title="title-1",
        current_tier=24,
        current_tier_name="Immortal 1",
        current_rr=37,
        is_partial_fetch=False,
        last_fetch_at=utcnow() - timedelta(minutes=1),
    )
    db_session.add(player)
    db_session.commit()
    return player


# =============================================================================
# UPSTREAM PAYLOAD FACTORIES
# =============================================================================

def make_account(puuid: str = TARGET_PUUID, name: str = TARGET_NAME, tag: str = TARGET_TAG,
                 region: str = REGION, level: int = 412) -> AccountResponse:
    return AccountResponse.model_validate({
        "status": 200,
        "data": {
            "puuid": puuid,
            "region": region,
            "account_level": level,
            "name": name,
            "tag": tag,
            "card": "card-1",
            "title": "title-1",
        },
    })


def make_mmr(tier: int = 24, tier_name: str = "Immortal 1", rr: int = 37) -> MMRResponse:
    return MMRResponse.model_validate({
        "status": 200,
        "data": {"current": {"tier": {"id": tier, "name": tier_name}, "rr": rr}},
    })


def make_stored_match(match_id: str, started_at: str = "2024-05-01T18:00:00Z", team: str = "Red",
                      red: int = 13, blue: int = 11, kills: int = 20, deaths: int = 15) -> dict:
    return {
        "meta": {
            "id": match_id,
            "map": {"id": "7eaecc1b-4337-bbf6-6ab9-04b8f06b3319", "name": "Ascent"},
            "started_at": started_at,
            "season": {"id": "season-1", "short": "e8a3"},
            "region": REGION,
            "cluster": "Virginia",
            "version": "release-08.08",
        },
        "stats": {
            "tier": 24,
            "kills": kills,
            "deaths": deaths,
            "assists": 4,
            "score": 5400,
            "team": team,
            "character": {"id": "add6443a-41bd-e414-f6ad-e58d267f4e95", "name": "Jett"},
            "damage": {"made": 3100, "received": 2500},
        },
        "teams": {"red": red, "blue": blue},
    }


def make_stored_mmr(match_id: str, date: str = "2024-05-01T18:40:00Z", change: int = 18) -> dict:
    return {
        "match_id": match_id,
        "tier": {"id": 24, "name": "Immortal 1"},
        "ranking_in_tier": 37,
        "last_mmr_change": change,
        "elo": 2137,
        "date": date,
    }


def make_stored_history(match_ids: List[str], mmr_ids: Optional[List[str]] = None):
    """(StoredMatchesResponse, StoredMMRHistoryResponse) for the given ids."""
    mmr_ids = match_ids if mmr_ids is None else mmr_ids
    matches = StoredMatchesResponse.model_validate({
        "status": 200,
        "data": [make_stored_match(m, started_at=f"2024-05-{i + 1:02d}T18:00:00Z") for i, m in enumerate(match_ids)],
    })
    mmr = StoredMMRHistoryResponse.model_validate({
        "status": 200,
        "data": [make_stored_mmr(m) for m in mmr_ids],
    })
    return matches, mmr


def make_v4_match(match_id: str, puuid: str = TARGET_PUUID, started_at: str = "2024-06-01T20:00:00Z",
                  player_team: str = "Blue", red_rounds: int = 9, blue_rounds: int = 13) -> dict:
    players = [{
        "puuid": puuid,
        "name": TARGET_NAME,
        "tag": TARGET_TAG,
        "agent": {"id": "add6443a-41bd-e414-f6ad-e58d267f4e95", "name": "Jett"},
        "stats": {"score": 6100, "kills": 24, "deaths": 12, "assists": 6,
                  "damage": {"dealt": 3900, "received": 2100}},
        "tier": {"id": 24, "name": "Immortal 1"},
        "account_level": 412,
        "customization": {"card": "card-1", "title": "title-1"},
        "team_id": player_team,
    }]
    for i in range(9):
        players.append({
            "puuid": f"{match_id}-other-{i}",
            "name": f"Other{i}",
            "tag": "NA1",
            "team_id": "Red" if i < 5 else player_team,
            "stats": {"score": 3000, "kills": 10, "deaths": 14, "assists": 3},
        })
    return {
        "metadata": {
            "match_id": match_id,
            "region": REGION,
            "cluster": "Virginia",
            "map": {"id": "2c9d57ec-4431-9c5e-2939-8f9ef6dd5cba", "name": "Bind"},
            "started_at": started_at,
            "season": {"id": "season-2", "short": "e9a1"},
            "game_version": "release-09.00",
        },
        "players": players,
        "teams": [
            {"team_id": "Red", "won": red_rounds > blue_rounds, "rounds": {"won": red_rounds, "lost": blue_rounds}},
            {"team_id": "Blue", "won": blue_rounds > red_rounds, "rounds": {"won": blue_rounds, "lost": red_rounds}},
        ],
    }


def make_mmr_history_item(match_id: str, change: int = -14) -> dict:
    return {
        "currenttier": 24,
        "currenttierpatched": "Immortal 1",
        "match_id": match_id,
        "ranking_in_tier": 23,
        "mmr_change_to_last_game": change,
        "elo": 2123,
        "date": "Saturday, June 1, 2024 8:40 PM",
    }


def make_live_history(match_ids: List[str], mmr_ids: Optional[List[str]] = None):
    """(V4MatchesResponse, MMRHistoryResponse) for the given ids."""
    mmr_ids = match_ids if mmr_ids is None else mmr_ids
    matches = V4MatchesResponse.model_validate({
        "status": 200,
        "data": [make_v4_match(m, started_at=f"2024-06-{i + 1:02d}T20:00:00Z") for i, m in enumerate(match_ids)],
    })
    mmr = MMRHistoryResponse.model_validate({
        "status": 200,
        "name": TARGET_NAME,
        "tag": TARGET_TAG,
        "data": [make_mmr_history_item(m) for m in mmr_ids],
    })
    return matches, mmr


def make_match_v2_dict(match_id: str, roster_size: int = 10, red: int = 13, blue: int = 7,
                       map_name: str = "Lotus") -> dict:
    players = []
    for i in range(roster_size):
        players.append({
            "puuid": TARGET_PUUID if i == 0 else f"{match_id}-p{i}",
            "name": TARGET_NAME if i == 0 else f"Player{i}",
            "tag": TARGET_TAG if i == 0 else "EUW",
            "team": "Red" if i % 2 == 0 else "Blue",
            "level": 100 + i,
            "character": "Sova" if i % 2 == 0 else "Omen",
            "currenttier": 20,
            "currenttier_patched": "Diamond 3",
            "player_card": f"card-{i}",
            "player_title": f"title-{i}",
            "stats": {"score": 4000 + i, "kills": 15 + i, "deaths": 12, "assists": 5},
            "damage_made": 2800,
            "damage_received": 2600,
        })
    return {
        "status": 200,
        "data": {
            "metadata": {
                "map": map_name,
                "game_version": "release-09.01",
                "region": REGION,
                "cluster": "Frankfurt",
                "mode": "Competitive",
                "season_id": "season-2",
                "matchid": match_id,
                "rounds_played": red + blue,
                "game_start": 1717272000,
            },
            "players": {"all_players": players},
            "teams": {"red": {"rounds_won": red}, "blue": {"rounds_won": blue}},
        },
    }


def make_match_v2(match_id: str, **kwargs) -> MatchV2Response:
    return MatchV2Response.model_validate(make_match_v2_dict(match_id, **kwargs))


# =============================================================================
# UPSTREAM CLIENT STUB
# =============================================================================

@pytest.fixture
def mock_api():
    """HenrikApiService stand-in with every fetch as an AsyncMock."""
    from tracker.services.core.henrik_api_service import QuotaTracker

    api = Mock()
    for method in (
        "get_account",
        "get_mmr",
        "get_stored_matches",
        "get_stored_mmr_history",
        "get_v4_matches",
        "get_mmr_history",
        "get_match_v2",
    ):
        setattr(api, method, AsyncMock(name=method))
    quota = QuotaTracker()
    api.get_quota_status = Mock(side_effect=quota.snapshot)
    api.quota = quota
    return api


# =============================================================================
# HTTP CLIENT
# =============================================================================

@pytest.fixture(scope="function")
async def async_client(session_factory, mock_api) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for testing FastAPI endpoints."""
    from tracker.main import app
    from tracker.core.database import get_db
    from tracker.api.dependencies import get_henrik_api
    from tracker.services.player_service import drain_settle_tasks

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_henrik_api] = lambda: mock_api

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    await drain_settle_tasks(timeout=5)
    app.dependency_overrides.clear()
