"""
attractions.py — Attraction suggestion and selection router (FastAPI)

Routes (all require authentication):
  GET    /travel-notes/{note_id}/attractions/generate   — AI suggestions (cached)
  POST   /travel-notes/{note_id}/attractions            — add selected attractions
  DELETE /travel-notes/{note_id}/attractions/{id}       — remove one attraction

Suggestions are cached per (note, user) for 15 minutes.  ?refresh=true skips
the cached list, asks the model for different attractions than the ones it
held, and replaces the entry.  The whole cache-miss path runs under a 55 s
deadline; running out of time is reported as 504, not as a generic 500.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from auth import check_user_rate_limit, get_current_user
from cache import SuggestionCache
from config import (
    GENERATION_DEADLINE_SECONDS,
    SUGGESTION_COUNT,
    is_feature_enabled,
    missing_credentials,
)
from database import run_in_session
from dependencies import (
    get_attraction_service,
    get_note_store,
    get_suggestion_cache,
    get_suggestion_generator,
)
from errors import (
    ApiError,
    ConfigurationError,
    ForbiddenError,
    NotFoundError,
    OperationTimeoutError,
    ValidationError,
)
from models import User
from repositories import NoteStore
from schemas import AttractionsBulkCreate
from services import AttractionService
from suggestions import SuggestionGenerator

logger = logging.getLogger(__name__)

attractions_router = APIRouter(prefix='/travel-notes', tags=['attractions'])


def _require_id(value: str, label: str) -> str:
    value = value.strip()
    if not value:
        raise ValidationError(f'{label} is required')
    return value


# ── Routes ────────────────────────────────────────────────────────────────────

@attractions_router.get('/{note_id}/attractions/generate')
async def generate_suggestions(
    note_id: str,
    refresh: bool = Query(default=False),
    current_user: User = Depends(get_current_user),
    cache: SuggestionCache = Depends(get_suggestion_cache),
    note_store: NoteStore = Depends(get_note_store),
    generator: SuggestionGenerator = Depends(get_suggestion_generator),
):
    """GET /travel-notes/{id}/attractions/generate — suggestions for the owner's note."""
    note_id = _require_id(note_id, 'Travel note ID')

    if not is_feature_enabled('attraction-suggestions'):
        raise ForbiddenError('Attraction suggestions are not available')

    missing = missing_credentials()
    if missing:
        logger.error('Suggestion endpoint misconfigured: missing %s', ', '.join(missing))
        raise ConfigurationError(f'Server configuration error: {", ".join(missing)} missing')

    previous = cache.get_suggestions(note_id, current_user.id)
    if previous is not None and not refresh:
        logger.info('Suggestions: cache hit note=%s user=%s', note_id[:8], current_user.id[:8])
        return {'suggestions': previous, 'fromCache': True}

    allowed, retry_after = check_user_rate_limit(current_user.id, 'generate')
    if not allowed:
        logger.warning('Rate limit hit: user_id=%s generate retry_after=%ds',
                       current_user.id[:8], retry_after)
        raise HTTPException(
            status_code=429,
            detail=f'Too many requests. Please wait {retry_after} seconds before trying again.',
        )

    exclude_names = [s['name'] for s in previous] if previous else []

    async def _generate_for_note():
        note = await run_in_session(note_store.get_by_id, note_id)
        if note is None:
            raise NotFoundError('Travel note not found')
        if note.user_id != current_user.id:
            raise ForbiddenError('Access denied')
        return await generator.generate(note, SUGGESTION_COUNT, exclude_names)

    try:
        suggestions = await asyncio.wait_for(_generate_for_note(), GENERATION_DEADLINE_SECONDS)
    except asyncio.TimeoutError:
        logger.error('Suggestions: deadline of %ss exceeded for note %s',
                     GENERATION_DEADLINE_SECONDS, note_id[:8])
        raise OperationTimeoutError('Request timed out. Please try again.')
    except ApiError as exc:
        if exc.status_code >= 500:
            logger.error('Suggestions failed for note %s: %s', note_id[:8], exc.message)
        raise
    except Exception as exc:
        logger.error('Unhandled error generating suggestions for note %s: %s',
                     note_id[:8], exc, exc_info=True)
        raise ApiError('An unexpected error occurred. Please try again.', exc)

    payload = [s.model_dump(by_alias=True) for s in suggestions]
    cache.put_suggestions(note_id, current_user.id, payload)
    return {'suggestions': payload}


@attractions_router.post('/{note_id}/attractions', status_code=201)
async def add_attractions(
    note_id: str,
    body: AttractionsBulkCreate,
    current_user: User = Depends(get_current_user),
    service: AttractionService = Depends(get_attraction_service),
):
    """POST /travel-notes/{id}/attractions — persist the attractions the user picked."""
    note_id = _require_id(note_id, 'Travel note ID')
    try:
        created = await service.add_attractions(note_id, current_user.id, body.attractions)
    except ApiError:
        raise
    except Exception as exc:
        logger.error('Unhandled error adding attractions to note %s: %s',
                     note_id[:8], exc, exc_info=True)
        raise ApiError('Internal server error', exc)
    return {'attractions': created}


@attractions_router.delete('/{note_id}/attractions/{attraction_id}', status_code=204)
async def remove_attraction(
    note_id: str,
    attraction_id: str,
    current_user: User = Depends(get_current_user),
    service: AttractionService = Depends(get_attraction_service),
):
    """DELETE /travel-notes/{note_id}/attractions/{id} — remove one attraction."""
    note_id       = _require_id(note_id, 'Travel note ID')
    attraction_id = _require_id(attraction_id, 'Attraction ID')
    try:
        await service.remove_attraction(note_id, current_user.id, attraction_id)
    except ApiError:
        raise
    except Exception as exc:
        logger.error('Unhandled error removing attraction %s: %s',
                     attraction_id[:8], exc, exc_info=True)
        raise ApiError('Internal server error', exc)
    return Response(status_code=204)
