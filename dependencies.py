"""
dependencies.py — FastAPI dependencies for the suggestion pipeline.

Process-wide collaborators (caches, image rate limiter, HTTP and model
clients) are created in app.py's startup hook and parked on app.state.
Everything here only looks them up, or builds per-request objects around the
request's database session.  Tests swap any of them out through
app.dependency_overrides.
"""

from anthropic import AsyncAnthropic
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from cache import OwnershipCache, SuggestionCache
from database import get_db
from images import ImageClient
from repositories import AttractionStore, NoteStore
from services import AttractionService
from suggestions import SuggestionGenerator


def get_suggestion_cache(request: Request) -> SuggestionCache:
    return request.app.state.suggestion_cache


def get_ownership_cache(request: Request) -> OwnershipCache:
    return request.app.state.ownership_cache


def get_image_client(request: Request) -> ImageClient:
    return request.app.state.image_client


def get_llm_client(request: Request) -> AsyncAnthropic | None:
    return request.app.state.llm_client


def get_note_store(db: Session = Depends(get_db)) -> NoteStore:
    return NoteStore(db)


def get_attraction_store(db: Session = Depends(get_db)) -> AttractionStore:
    return AttractionStore(db)


def get_suggestion_generator(
    llm_client: AsyncAnthropic | None = Depends(get_llm_client),
    image_client: ImageClient = Depends(get_image_client),
    attraction_store: AttractionStore = Depends(get_attraction_store),
) -> SuggestionGenerator:
    return SuggestionGenerator(llm_client, image_client, attraction_store)


def get_attraction_service(
    note_store: NoteStore = Depends(get_note_store),
    attraction_store: AttractionStore = Depends(get_attraction_store),
    ownership_cache: OwnershipCache = Depends(get_ownership_cache),
    image_client: ImageClient = Depends(get_image_client),
) -> AttractionService:
    return AttractionService(note_store, attraction_store, ownership_cache, image_client)
