"""Tests for MatchDetailService roster completion."""
import pytest
from sqlalchemy.orm import Session

from tracker.core.exceptions import NotFoundError, UpstreamError
from tracker.models import Player
from tracker.services.match_detail_service import MatchDetailService

from conftest import TARGET_PUUID, make_match_v2


@pytest.fixture
def service(db_session, mock_api):
    return MatchDetailService(db_session, mock_api)


class TestGetMatch:

    @pytest.mark.asyncio
    async def test_unknown_match_is_fetched_and_stored(self, service, mock_api, db_session: Session):
        """Should fetch detail for a match with no stored roster."""
        mock_api.get_match_v2.return_value = make_match_v2("m-1", red=13, blue=7)

        detail = await service.get_match("m-1")

        assert detail.is_complete
        assert len(detail.players) == 10
        assert detail.rounds_played == 20
        assert detail.match.map_name == "Lotus"
        assert detail.match.source == "v2"
        mock_api.get_match_v2.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_complete_roster_skips_upstream(self, service, mock_api):
        """Should serve a stored 10-player roster without fetching."""
        mock_api.get_match_v2.return_value = make_match_v2("m-1")
        await service.get_match("m-1")
        mock_api.get_match_v2.reset_mock()

        detail = await service.get_match("m-1")

        assert detail.is_complete
        mock_api.get_match_v2.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_incomplete_roster_fetched_once_per_request(self, service, mock_api):
        """Should return a still-incomplete roster after exactly one fetch."""
        mock_api.get_match_v2.return_value = make_match_v2("m-short", roster_size=8)

        detail = await service.get_match("m-short")

        assert len(detail.players) == 8
        assert not detail.is_complete
        mock_api.get_match_v2.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_roster_grouped_by_team_and_won_flag(self, service, mock_api):
        """Should group participants by team and mark the higher-scoring side as winners."""
        mock_api.get_match_v2.return_value = make_match_v2("m-1", red=13, blue=7)

        detail = await service.get_match("m-1")

        teams = [p.team for p in detail.players]
        assert teams == sorted(teams)
        assert all(p.has_won == (p.team == "Red") for p in detail.players)

    @pytest.mark.asyncio
    async def test_unseen_players_stored_as_partial(self, service, mock_api, db_session: Session):
        """Should create partial player rows for every unseen participant."""
        mock_api.get_match_v2.return_value = make_match_v2("m-1")

        await service.get_match("m-1")

        players = db_session.query(Player).all()
        assert len(players) == 10
        assert all(p.is_partial_fetch and p.last_fetch_at is None for p in players)

    @pytest.mark.asyncio
    async def test_known_player_keeps_rank_and_freshness(self, service, mock_api, db_session: Session, stored_player):
        """Should update identity only for a fully fetched participant."""
        stamp = stored_player.last_fetch_at
        mock_api.get_match_v2.return_value = make_match_v2("m-1")

        await service.get_match("m-1")

        db_session.expire_all()
        player = db_session.get(Player, TARGET_PUUID)
        assert player.is_partial_fetch is False
        assert player.last_fetch_at == stamp
        assert player.current_tier == 24
        assert player.account_level == 100

    @pytest.mark.asyncio
    async def test_upstream_404_is_not_found(self, service, mock_api):
        """Should map an upstream 404 to NotFoundError."""
        mock_api.get_match_v2.side_effect = UpstreamError(404, "not found")

        with pytest.raises(NotFoundError):
            await service.get_match("missing")

    @pytest.mark.asyncio
    async def test_upstream_failure_propagates(self, service, mock_api):
        """Should surface non-404 upstream failures."""
        mock_api.get_match_v2.side_effect = UpstreamError(500, "boom")

        with pytest.raises(UpstreamError):
            await service.get_match("m-err")
