"""ECOMMIND — Idempotent Canonical Loader.

Upserts mapped rows on their natural key: existing rows are updated in
place, missing rows inserted. Replaying a batch never creates duplicates.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Type

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from ecommind.core.errors import StorageError
from ecommind.core.logging import get_logger
from ecommind.models.canonical_models import NATURAL_KEYS
from ecommind.models.etl_models import UpsertStats

logger = get_logger("etl.loader")


def upsert_rows(
    session: Session, model: Type[SQLModel], rows: List[Dict[str, Any]]
) -> UpsertStats:
    """Upsert a batch and commit it. Raises StorageError on any DB failure."""
    stats = UpsertStats()
    if not rows:
        return stats
    key_fields = NATURAL_KEYS[model]

    try:
        for row in rows:
            conditions = [getattr(model, f) == row[f] for f in key_fields]
            existing = session.exec(select(model).where(*conditions)).first()
            if existing:
                for field, value in row.items():
                    setattr(existing, field, value)
                if hasattr(existing, "updated_at"):
                    existing.updated_at = datetime.now(timezone.utc)
                session.add(existing)
                stats.updated += 1
            else:
                session.add(model(**row))
                stats.inserted += 1
            # Flush so a duplicate key later in the same batch resolves to an update
            session.flush()
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise StorageError(f"Upsert into {model.__tablename__} failed: {e}") from e

    logger.info(
        f"Upserted {len(rows)} rows into {model.__tablename__} "
        f"({stats.inserted} new, {stats.updated} updated)"
    )
    return stats
