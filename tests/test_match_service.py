"""Tests for MatchService backfill, live refresh and history reads."""
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from tracker.core.exceptions import NotFoundError, UpstreamError, UpstreamTimeoutError
from tracker.models import Match, MatchPlayer, MMRHistory, Player
from tracker.services.match_detail_service import MatchDetailService
from tracker.services.match_service import MatchService
from tracker.utils.timezone import utcnow

from conftest import REGION, TARGET_PUUID, make_live_history, make_match_v2, make_stored_history


@pytest.fixture
def service(db_session, mock_api):
    return MatchService(db_session, mock_api)


def _stub_history(mock_api, stored_ids, live_ids, live_mmr_ids=None):
    stored_matches, stored_mmr = make_stored_history(stored_ids)
    live_matches, live_mmr = make_live_history(live_ids, live_mmr_ids)
    mock_api.get_stored_matches.return_value = stored_matches
    mock_api.get_stored_mmr_history.return_value = stored_mmr
    mock_api.get_v4_matches.return_value = live_matches
    mock_api.get_mmr_history.return_value = live_mmr


class TestBackfill:
    """The stored history is fetched once per player, ever."""

    @pytest.mark.asyncio
    async def test_first_request_backfills_then_refreshes_live(self, service, mock_api, stored_player):
        """Should write stored and live matches on the first request."""
        _stub_history(mock_api, ["s1", "s2"], ["l1"])

        history = await service.get_matches_for(TARGET_PUUID)

        assert {h.match.match_id for h in history} == {"s1", "s2", "l1"}
        mock_api.get_stored_matches.assert_awaited_once()
        assert mock_api.get_stored_matches.await_args.args == (REGION, TARGET_PUUID)
        mock_api.get_v4_matches.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_backfill_runs_once(self, service, mock_api, stored_player):
        """Should not fetch the stored history again once it has been written."""
        _stub_history(mock_api, ["s1"], ["l1"])

        await service.get_matches_for(TARGET_PUUID)
        await service.get_matches_for(TARGET_PUUID, force_refresh=True)

        mock_api.get_stored_matches.assert_awaited_once()
        mock_api.get_stored_mmr_history.assert_awaited_once()
        assert mock_api.get_v4_matches.await_count == 2

    @pytest.mark.asyncio
    async def test_backfill_failure_writes_nothing(self, service, mock_api, db_session: Session, stored_player):
        """Should leave the store empty when one backfill leg fails."""
        _stub_history(mock_api, ["s1", "s2"], ["l1"])
        mock_api.get_stored_mmr_history.side_effect = UpstreamError(503, "maintenance")

        with pytest.raises(UpstreamError):
            await service.get_matches_for(TARGET_PUUID)

        assert db_session.query(Match).count() == 0
        assert db_session.query(MatchPlayer).count() == 0
        assert db_session.query(MMRHistory).count() == 0
        mock_api.get_v4_matches.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_match_detail_lines_do_not_skip_backfill(self, service, mock_api, db_session: Session, stored_player):
        """Should still backfill a player whose only lines came from a match detail."""
        mock_api.get_match_v2.return_value = make_match_v2("other-match")
        await MatchDetailService(db_session, mock_api).get_match("other-match")
        _stub_history(mock_api, ["s1"], ["l1"])

        history = await service.get_matches_for(TARGET_PUUID)

        mock_api.get_stored_matches.assert_awaited_once()
        assert {h.match.match_id for h in history} == {"s1", "l1", "other-match"}


class TestLiveRefresh:

    @pytest.mark.asyncio
    async def test_fresh_history_skips_upstream(self, service, mock_api, db_session: Session, stored_player):
        """Should serve stored matches without live fetches inside the TTL."""
        _stub_history(mock_api, ["s1"], ["l1"])
        await service.get_matches_for(TARGET_PUUID)
        mock_api.get_v4_matches.reset_mock()
        mock_api.get_mmr_history.reset_mock()

        history = await service.get_matches_for(TARGET_PUUID)

        assert len(history) == 2
        mock_api.get_v4_matches.assert_not_awaited()
        mock_api.get_mmr_history.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_partial_player_refreshes_inside_ttl(self, service, mock_api, db_session: Session, stored_player):
        """Should refresh live matches for a partial player even with a recent stamp."""
        _stub_history(mock_api, ["s1"], ["l1"])
        await service.get_matches_for(TARGET_PUUID)

        player = db_session.get(Player, TARGET_PUUID)
        player.is_partial_fetch = True
        player.matches_fetched_at = utcnow() - timedelta(seconds=10)
        db_session.commit()
        mock_api.get_v4_matches.reset_mock()
        mock_api.get_mmr_history.reset_mock()

        await service.get_matches_for(TARGET_PUUID)

        mock_api.get_v4_matches.assert_awaited_once()
        mock_api.get_mmr_history.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stale_history_refreshes(self, service, mock_api, db_session: Session, stored_player):
        """Should fetch live matches once matches_fetched_at is older than the TTL."""
        _stub_history(mock_api, ["s1"], ["l1"])
        await service.get_matches_for(TARGET_PUUID)

        player = db_session.get(Player, TARGET_PUUID)
        player.matches_fetched_at = utcnow() - timedelta(hours=2)
        db_session.commit()
        _stub_history(mock_api, ["s1"], ["l1", "l2"])

        history = await service.get_matches_for(TARGET_PUUID)

        assert {h.match.match_id for h in history} == {"s1", "l1", "l2"}

    @pytest.mark.asyncio
    async def test_live_refresh_stamps_match_freshness(self, service, mock_api, db_session: Session, stored_player):
        """Should stamp matches_fetched_at without touching last_fetch_at."""
        before = stored_player.last_fetch_at
        _stub_history(mock_api, ["s1"], ["l1"])

        await service.get_matches_for(TARGET_PUUID)

        db_session.expire_all()
        player = db_session.get(Player, TARGET_PUUID)
        assert player.matches_fetched_at is not None
        assert player.last_fetch_at == before

    @pytest.mark.asyncio
    async def test_live_failure_keeps_previous_rows(self, service, mock_api, db_session: Session, stored_player):
        """Should keep earlier matches and the old stamp when a live leg times out."""
        _stub_history(mock_api, ["s1"], ["l1"])
        await service.get_matches_for(TARGET_PUUID)
        db_session.expire_all()
        stamp = db_session.get(Player, TARGET_PUUID).matches_fetched_at

        _stub_history(mock_api, ["s1"], ["l1", "l2"])
        mock_api.get_mmr_history.side_effect = UpstreamTimeoutError("slow")

        with pytest.raises(UpstreamTimeoutError):
            await service.get_matches_for(TARGET_PUUID, force_refresh=True)

        db_session.expire_all()
        assert db_session.get(Match, "l2") is None
        assert db_session.get(Player, TARGET_PUUID).matches_fetched_at == stamp

    @pytest.mark.asyncio
    async def test_matches_without_rank_record_are_dropped(self, service, mock_api, stored_player):
        """Should skip live matches that have no rank history entry."""
        _stub_history(mock_api, ["s1"], ["l1", "l2"], live_mmr_ids=["l1"])

        history = await service.get_matches_for(TARGET_PUUID)

        assert {h.match.match_id for h in history} == {"s1", "l1"}


class TestHistoryRead:

    @pytest.mark.asyncio
    async def test_newest_first_with_rank(self, service, mock_api, stored_player):
        """Should order matches by start time descending and attach rank records."""
        _stub_history(mock_api, ["s1", "s2", "s3"], ["l1"])

        history = await service.get_matches_for(TARGET_PUUID)

        assert [h.match.match_id for h in history] == ["l1", "s3", "s2", "s1"]
        assert all(h.stats.puuid == TARGET_PUUID for h in history)
        assert history[0].mmr.mmr_change == -14
        assert history[1].mmr.mmr_change == 18

    @pytest.mark.asyncio
    async def test_unknown_player(self, service, mock_api):
        """Should raise NotFoundError without calling upstream."""
        with pytest.raises(NotFoundError):
            await service.get_matches_for("missing")

        mock_api.get_stored_matches.assert_not_awaited()
