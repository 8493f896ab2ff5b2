"""
repositories.py — Thin data-access objects over one SQLAlchemy session.

NoteStore and AttractionStore are the storage collaborators the suggestion
pipeline and the attraction commit path talk to.  Methods are synchronous;
async callers run them through run_in_threadpool.  A store must not be used
from two threads at once because the underlying Session is not thread-safe.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import DatabaseError
from models import Attraction, TravelNote
from schemas import Image

logger = logging.getLogger(__name__)


def _escape_like(value: str) -> str:
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


class NoteStore:

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, note_id: str) -> TravelNote | None:
        return self.session.get(TravelNote, note_id)

    def is_owned_by(self, note_id: str, user_id: str) -> bool:
        row = self.session.execute(
            select(TravelNote.id).where(TravelNote.id == note_id, TravelNote.user_id == user_id)
        ).first()
        return row is not None


class AttractionStore:

    def __init__(self, session: Session):
        self.session = session

    def find_by_name_like(self, fragment: str, limit: int) -> list[Attraction]:
        """Case-insensitive substring match on name, oldest first."""
        pattern = f'%{_escape_like(fragment)}%'
        return list(self.session.scalars(
            select(Attraction)
            .where(Attraction.name.ilike(pattern, escape='\\'))
            .order_by(Attraction.created_at)
            .limit(limit)
        ))

    def find_images_by_names(self, names: list[str]) -> dict[str, Image]:
        """Stored photos for exact attraction names, one per name."""
        if not names:
            return {}
        rows = self.session.scalars(
            select(Attraction)
            .where(Attraction.name.in_(names), Attraction.image.is_not(None))
            .order_by(Attraction.created_at)
        )
        images: dict[str, Image] = {}
        for row in rows:
            if row.name in images:
                continue
            image = row.image_dict()
            if image is not None:
                images[row.name] = Image.model_validate(image)
        return images

    def insert_many(self, note_id: str, records: list[dict]) -> list[Attraction]:
        """Insert all records for note_id in a single commit."""
        attractions = [Attraction(travel_note_id=note_id, **record) for record in records]
        try:
            self.session.add_all(attractions)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error('Attraction insert failed for note %s: %s', note_id[:8], exc)
            raise DatabaseError('Failed to create attractions', exc) from exc
        return attractions

    def delete_one(self, attraction_id: str, note_id: str) -> int:
        """Delete one attraction of note_id; returns the number of rows removed."""
        try:
            deleted = (
                self.session.query(Attraction)
                .filter_by(id=attraction_id, travel_note_id=note_id)
                .delete(synchronize_session=False)
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error('Attraction delete failed (%s): %s', attraction_id[:8], exc)
            raise DatabaseError('Failed to delete attraction', exc) from exc
        return deleted
