"""
services.py — Attraction commit path: add and remove attractions on a note.

Both operations start with the same ownership check, answered from the
OwnershipCache when possible and from the note table otherwise.  A missing
note and a note owned by someone else raise the same NotFoundOrForbiddenError.
"""

import asyncio
import logging

from starlette.concurrency import run_in_threadpool

from cache import OwnershipCache
from errors import NotFoundOrForbiddenError
from images import ImageClient
from repositories import AttractionStore, NoteStore
from schemas import AttractionCreate, Image

logger = logging.getLogger(__name__)


class AttractionService:

    def __init__(self, note_store: NoteStore, attraction_store: AttractionStore,
                 ownership_cache: OwnershipCache, image_client: ImageClient):
        self._notes       = note_store
        self._attractions = attraction_store
        self._ownership   = ownership_cache
        self._images      = image_client

    async def verify_ownership(self, note_id: str, user_id: str) -> bool:
        cached = self._ownership.get_access(user_id, note_id)
        if cached is not None:
            return cached
        has_access = await run_in_threadpool(self._notes.is_owned_by, note_id, user_id)
        self._ownership.put_access(user_id, note_id, has_access)
        return has_access

    async def _require_ownership(self, note_id: str, user_id: str) -> None:
        if not await self.verify_ownership(note_id, user_id):
            logger.info('Ownership check failed: user=%s note=%s', user_id[:8], note_id[:8])
            raise NotFoundOrForbiddenError()

    async def add_attractions(self, note_id: str, user_id: str,
                              attractions: list[AttractionCreate]) -> list[dict]:
        """Persist the selected attractions and return them in public shape."""
        await self._require_ownership(note_id, user_id)

        async def _with_image(attraction: AttractionCreate) -> dict:
            record = attraction.model_dump()
            if not record.get('image'):
                image = await self._images.find_image(attraction.name)
                if image is not None:
                    record.update(_image_columns(image))
            return record

        records = await asyncio.gather(*[_with_image(a) for a in attractions])
        created = await run_in_threadpool(self._attractions.insert_many, note_id, list(records))
        logger.info('Added %d attraction(s) to note %s', len(created), note_id[:8])
        return [a.to_dict() for a in created]

    async def remove_attraction(self, note_id: str, user_id: str, attraction_id: str) -> None:
        await self._require_ownership(note_id, user_id)
        deleted = await run_in_threadpool(self._attractions.delete_one, attraction_id, note_id)
        if not deleted:
            logger.info('Remove attraction: %s not found on note %s', attraction_id[:8], note_id[:8])
        self._ownership.invalidate_access(user_id, note_id)


def _image_columns(image: Image) -> dict:
    return {
        'image':                  image.url,
        'image_photographer':     image.photographer,
        'image_photographer_url': image.photographer_url,
        'image_source':           image.source,
    }
