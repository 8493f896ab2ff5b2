"""
notes.py — Travel note router for Travel Notes (FastAPI)

Routes:
  GET    /travel-notes        — paginated list (public notes, plus the caller's own)
  POST   /travel-notes        — create a note               (login required)
  GET    /travel-notes/{id}   — one note with attractions   (private: owner only)
  PUT    /travel-notes/{id}   — partial update              (owner only)
  DELETE /travel-notes/{id}   — delete note + attractions   (owner only)

Private notes answer 404 to everyone but their owner, so their existence is
never confirmed to other users.
"""

import logging
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from auth import get_current_user, get_optional_user
from cache import OwnershipCache, SuggestionCache
from config import is_feature_enabled
from database import get_db
from dependencies import get_ownership_cache, get_suggestion_cache
from errors import AuthenticationError, ForbiddenError, NotFoundError, NotFoundOrForbiddenError
from models import TravelNote, User
from schemas import TravelNoteCreate, TravelNoteUpdate

logger = logging.getLogger(__name__)

notes_router = APIRouter(prefix='/travel-notes', tags=['travel-notes'])


# ── Helpers ───────────────────────────────────────────────────────────────────

def _owned_note_or_404(db: Session, note_id: str, user_id: str) -> TravelNote:
    note = db.get(TravelNote, note_id)
    if not note or note.user_id != user_id:
        raise NotFoundOrForbiddenError()
    return note


def _like(value: str) -> str:
    escaped = value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    return f'%{escaped}%'


# ── Routes ────────────────────────────────────────────────────────────────────

@notes_router.get('')
async def list_notes(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    location: Optional[str] = Query(default=None, max_length=255),
    sort_order: Literal['asc', 'desc'] = Query(default='desc'),
    mine: bool = Query(default=False),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    """GET /travel-notes[?page&limit&location&sort_order&mine] — newest first by default."""
    if mine and current_user is None:
        raise AuthenticationError('Authentication required to view private notes')

    def _query():
        q = db.query(TravelNote)
        if mine:
            q = q.filter(TravelNote.user_id == current_user.id)
        elif current_user is not None:
            q = q.filter(or_(TravelNote.is_public.is_(True), TravelNote.user_id == current_user.id))
        else:
            q = q.filter(TravelNote.is_public.is_(True))
        if location and location.strip():
            q = q.filter(TravelNote.name.ilike(_like(location.strip()), escape='\\'))

        total = q.count()
        order = TravelNote.created_at.asc() if sort_order == 'asc' else TravelNote.created_at.desc()
        notes = q.order_by(order).offset((page - 1) * limit).limit(limit).all()
        return [n.to_dict() for n in notes], total

    items, total = await run_in_threadpool(_query)
    return {'items': items, 'total': total, 'page': page, 'limit': limit}


@notes_router.post('', status_code=201)
async def create_note(
    body: TravelNoteCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """POST /travel-notes — create a note owned by the caller."""
    if not is_feature_enabled('create-travel-note'):
        raise ForbiddenError('Creating travel notes is currently disabled')

    def _create():
        note = TravelNote(
            user_id     = current_user.id,
            name        = body.name,
            description = body.description,
            is_public   = body.is_public,
        )
        db.add(note)
        db.commit()
        db.refresh(note)
        return note.to_dict()

    note = await run_in_threadpool(_create)
    logger.info('Travel note created: id=%s %r by user %s', note['id'][:8], note['name'], current_user.id[:8])
    return {'note': note}


@notes_router.get('/{note_id}')
async def get_note(
    note_id: str,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    """GET /travel-notes/{id} — full note including attractions."""
    def _get():
        note = db.get(TravelNote, note_id)
        if not note:
            return None
        if not note.is_public and (current_user is None or current_user.id != note.user_id):
            return None
        return note.to_dict()

    note = await run_in_threadpool(_get)
    if note is None:
        raise NotFoundError('Travel note not found')
    return {'note': note}


@notes_router.put('/{note_id}')
async def update_note(
    note_id: str,
    body: TravelNoteUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    suggestion_cache: SuggestionCache = Depends(get_suggestion_cache),
):
    """PUT /travel-notes/{id} — partial update of name, description, visibility."""
    def _update():
        note = _owned_note_or_404(db, note_id, current_user.id)
        sent = body.model_fields_set

        if 'name' in sent and body.name is not None:
            note.name = body.name
        if 'description' in sent and body.description is not None:
            note.description = body.description
        if 'is_public' in sent and body.is_public is not None:
            note.is_public = body.is_public

        note.updated_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(note)
        return note.to_dict()

    note = await run_in_threadpool(_update)
    # Suggestions are derived from name and description.
    if body.model_fields_set & {'name', 'description'}:
        suggestion_cache.invalidate(SuggestionCache.key_for(note_id, current_user.id))
    logger.info('Travel note updated: id=%s by user %s', note_id[:8], current_user.id[:8])
    return {'note': note}


@notes_router.delete('/{note_id}')
async def delete_note(
    note_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    ownership_cache: OwnershipCache = Depends(get_ownership_cache),
    suggestion_cache: SuggestionCache = Depends(get_suggestion_cache),
):
    """DELETE /travel-notes/{id} — delete the note and its attractions."""
    def _delete():
        note = _owned_note_or_404(db, note_id, current_user.id)
        db.delete(note)
        db.commit()

    await run_in_threadpool(_delete)
    ownership_cache.invalidate_access(current_user.id, note_id)
    suggestion_cache.invalidate(SuggestionCache.key_for(note_id, current_user.id))
    logger.info('Travel note deleted: id=%s by user %s', note_id[:8], current_user.id[:8])
    return {'status': 'ok', 'message': 'Travel note deleted'}
