"""
Base repository class for data access layer.

The repository pattern provides:
1. Separation of data access logic from business logic
2. Single place for query logic (easier to maintain)
3. Easier testing (can mock repositories)
4. Consistent interface for data operations

Repositories never commit. Transaction boundaries belong to the caller
(the batch persister for writes, the session dependency for reads).

Example:
    class PlayerRepository(BaseRepository[Player]):
        def find_by_name_tag(self, name: str, tag: str) -> Optional[Player]:
            return self.where_first(Player.name == name, Player.tag == tag)
"""
from abc import ABC
from typing import TypeVar, Generic, Type, Optional, List, Any, Dict, Iterable
from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

T = TypeVar("T")


class BaseRepository(Generic[T], ABC):
    """
    Base repository class providing common data access methods.

    Attributes:
        model_type: The SQLAlchemy model class this repository manages
        db: The database session
    """

    def __init__(self, model_type: Type[T], db: Session):
        self.model_type = model_type
        self.db = db

    # ========================================================================
    # Reads
    # ========================================================================

    def find_by_id(self, id: Any) -> Optional[T]:
        """Find a single record by primary key (tuple for composite keys)."""
        return self.db.get(self.model_type, id)

    def where(self, *criterion, order_by: Iterable[Any] = ()) -> List[T]:
        """Filter records using SQLAlchemy expressions."""
        stmt = select(self.model_type).where(*criterion)
        if order_by:
            stmt = stmt.order_by(*order_by)
        return list(self.db.scalars(stmt).all())

    def where_first(self, *criterion) -> Optional[T]:
        """Filter records using SQLAlchemy expressions and return first match."""
        return self.db.scalars(select(self.model_type).where(*criterion).limit(1)).first()

    # ========================================================================
    # Batch Writes
    # ========================================================================

    def upsert_rows(
        self,
        rows: List[Dict[str, Any]],
        index_elements: List[str],
        update_columns: Optional[Iterable[str]] = None,
        model: Optional[Type[Any]] = None,
    ) -> None:
        """
        Insert rows, updating the listed columns on primary-key conflict.

        One statement per call; callers chunk. Key columns and created_at are
        never overwritten.

        Args:
            rows: Column dicts for this model
            index_elements: Conflict target (the identity columns)
            update_columns: Columns to refresh on conflict (default: all non-key)
            model: Target table when it differs from the repository model
        """
        if not rows:
            return

        model = model or self.model_type
        stmt = sqlite_insert(model).values(rows)
        if update_columns is None:
            update_columns = [
                c.name for c in model.__table__.columns
                if c.name not in index_elements and c.name != "created_at"
            ]
        set_ = {name: stmt.excluded[name] for name in update_columns}
        if set_:
            stmt = stmt.on_conflict_do_update(index_elements=index_elements, set_=set_)
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=index_elements)
        self.db.execute(stmt)

    def insert_rows(self, rows: List[Dict[str, Any]]) -> None:
        """Plain multi-row insert (append-only tables)."""
        if rows:
            self.db.execute(sqlite_insert(self.model_type).values(rows))
