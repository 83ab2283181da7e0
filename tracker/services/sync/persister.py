"""
Batch persister: writes a ReconciledBatch in one transaction.

Write order is players, matches, participations, then rank records, each
chunked at DB_BATCH_SIZE rows per statement. Any failure rolls back the
whole batch; nothing from a failed batch is visible afterwards.
"""
from datetime import datetime
from typing import Callable, List, Optional, Sequence, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tracker.core.constants import DB_BATCH_SIZE
from tracker.core.exceptions import PersistenceError
from tracker.core.logging import get_logger
from tracker.repositories import MatchRepository, MMRHistoryRepository, PlayerRepository
from tracker.services.sync.types import PlayerRow, ReconciledBatch
from tracker.utils.timezone import utcnow

logger = get_logger(__name__)

T = TypeVar("T")


def chunked(rows: Sequence[T], size: int) -> List[Sequence[T]]:
    return [rows[i:i + size] for i in range(0, len(rows), size)]


class BatchPersister:
    """
    Transactional writer for reconciled rows.

    Args:
        db: Session the batch is written through; committed or rolled back here
        batch_size: Rows per upsert statement
    """

    def __init__(self, db: Session, batch_size: int = DB_BATCH_SIZE):
        self.db = db
        self.batch_size = batch_size
        self.players = PlayerRepository(db)
        self.matches = MatchRepository(db)
        self.mmr_history = MMRHistoryRepository(db)

    def _write_chunks(self, rows: Sequence[T], write: Callable[[List[T]], None]) -> None:
        for chunk in chunked(rows, self.batch_size):
            write(list(chunk))

    def _commit_or_rollback(self, label: str, work: Callable[[], None], **log_fields) -> None:
        try:
            work()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"{label} rolled back: {e}", extra=log_fields)
            raise PersistenceError(f"{label} failed: {e.__class__.__name__}") from e

    def persist_batch(
        self,
        batch: ReconciledBatch,
        stamp_matches_for: Optional[str] = None,
        stamped_at: Optional[datetime] = None,
    ) -> None:
        """
        Write every row of ``batch`` atomically.

        Args:
            batch: Rows from the reconciler
            stamp_matches_for: puuid whose match-history freshness is stamped
                in the same transaction
            stamped_at: Stamp value (default: now)

        Raises:
            PersistenceError: The transaction failed and was rolled back
        """
        if batch.is_empty() and stamp_matches_for is None:
            return

        def work():
            self._write_chunks(batch.players, self.players.upsert_identities)
            self._write_chunks(batch.matches, self.matches.upsert_matches)
            self._write_chunks(batch.participations, self.matches.upsert_participations)
            self._write_chunks(batch.mmr_records, self.mmr_history.append)
            if stamp_matches_for is not None:
                self.players.set_matches_fetched_at(stamp_matches_for, stamped_at or utcnow())

        self._commit_or_rollback("Batch write", work, **batch.counts())
        logger.info("Persisted batch", extra=batch.counts())

    def persist_player(self, player: PlayerRow) -> None:
        """Write a full identity + rank refresh and clear the partial flag."""
        self._commit_or_rollback(
            "Player write", lambda: self.players.upsert_profile(player), puuid=player.puuid
        )
        logger.info("Persisted player profile", extra={"puuid": player.puuid})
