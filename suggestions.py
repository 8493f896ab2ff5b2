"""
suggestions.py — Attraction suggestion generation for a travel note.

Pipeline for SuggestionGenerator.generate(note, count, exclude_names):

  1. Reuse    — if exactly `count` stored attractions loosely match the first
                word of the note name, return those without calling the model.
  2. Prompt   — ask the language model for exactly `count` real attractions.
  3. Complete — one Messages API call; transient transport failures are
                retried a bounded number of times, bad output never is.
  4. Decode   — take the first balanced {...} from the reply, parse it, and
                validate every field.  Any mismatch raises GenerationError;
                nothing is padded, truncated or guessed.
  5. Enrich   — attach a stored photo by exact name, else ask the image
                client with a per-item time bound.  Failures mean image=None.

The result keeps the order in which the model listed the attractions.
"""

import asyncio
import json
import logging
import math
import time
from typing import Any, Iterable, Protocol

import anthropic
from sqlalchemy.exc import SQLAlchemyError

from config import (
    IMAGE_LOOKUP_TIMEOUT,
    MODEL_MAX_RETRIES,
    MODEL_RETRY_DELAY,
    SUGGESTION_MODEL,
)
from database import run_in_session
from errors import ConfigurationError, GenerationError
from images import ImageClient
from repositories import AttractionStore
from schemas import AttractionSuggestion, Image

logger = logging.getLogger(__name__)

REUSED_PRICE_TEXT = 'Price information available at location'

MAX_EXCLUDE_NAMES    = 50
MAX_EXCLUDE_NAME_LEN = 100

_TRANSIENT_ERRORS = (
    anthropic.APIConnectionError,     # includes APITimeoutError
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)


def _is_transient(exc: Exception) -> bool:
    """Connection failures, 429, and any 5xx status (529 "overloaded" included)."""
    if isinstance(exc, _TRANSIENT_ERRORS):
        return True
    return isinstance(exc, anthropic.APIStatusError) and exc.status_code >= 500


class NoteContext(Protocol):
    name: str
    description: str


SYSTEM_PROMPT = """You recommend tourist attractions for travellers' notes.
You only ever name places that exist today and you never invent coordinates.

Reply with ONE JSON object and nothing else — no markdown fences, no commentary:
{
  "attractions": [
    {
      "name": "Attraction name in English",
      "description": "Four or five sentences (see rules)",
      "latitude": 50.0540,
      "longitude": 19.9354,
      "estimatedPrice": "Regular ticket: $X, reduced: $Y"
    }
  ]
}

Rules for every attraction:
- name: the specific name of a real, currently existing attraction, in English.
- description: in English.  Say what makes the place unique (2-3 sentences),
  then practical visiting information (time needed, best hours, whether a
  reservation is required), ticket information (regular and reduced prices,
  free entry conditions such as age limits) and on-site amenities (food,
  shops, accessibility).
- latitude / longitude: the real coordinates of the attraction as JSON
  numbers, not strings.  Latitude is between -90 and 90, longitude between
  -180 and 180.
- estimatedPrice: one of "Regular ticket: $X, reduced: $Y", "Free entry",
  or "Free entry for children under X years".
- Every field is required."""


def build_prompt(name: str, description: str, count: int,
                 exclude_names: Iterable[str] = ()) -> str:
    """User message for one generation request."""
    excluded = _clean_exclude_names(exclude_names)
    exclude_block = (
        'Do NOT suggest any of these attractions (already shown to the traveller):\n'
        + '\n'.join(f'  - {n}' for n in excluded)
        + '\n'
    ) if excluded else ''

    return f"""Suggest exactly {count} tourist attractions for this travel note.

Travel note:
- Title: {name}
- Description: {description}

Choose attractions that:
- really exist (do not make up places) and match the note's theme
- mix well-known sights with lesser-known ones
- vary in type and price
- are spread geographically across the area
{exclude_block}
Return exactly {count} attractions in the "attractions" array."""


def _clean_exclude_names(names: Iterable[str]) -> list[str]:
    cleaned = []
    for n in names:
        s = ' '.join(str(n).split())[:MAX_EXCLUDE_NAME_LEN]
        if s and s not in cleaned:
            cleaned.append(s)
    return cleaned[:MAX_EXCLUDE_NAMES]


# ---------------------------------------------------------------------------
# Decoding the model reply
# ---------------------------------------------------------------------------

def extract_json_object(text: str) -> str:
    """Return the first balanced {...} in text, honouring JSON strings."""
    start = text.find('{')
    if start == -1:
        raise GenerationError('No JSON object found in language model response')

    depth     = 0
    in_string = False
    escaped   = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    raise GenerationError('Unterminated JSON object in language model response')


def _is_number(value: Any) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value))


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def parse_suggestions(text: str, count: int) -> list[dict]:
    """Decode and validate a model reply into `count` attraction dicts.

    Returned dicts carry name, description, latitude, longitude and
    estimated_price.  Raises GenerationError on any deviation.
    """
    try:
        payload = json.loads(extract_json_object(text))
    except json.JSONDecodeError as exc:
        raise GenerationError(f'Language model returned invalid JSON: {exc.msg}') from exc

    items = payload.get('attractions') if isinstance(payload, dict) else None
    if not isinstance(items, list):
        raise GenerationError('Language model response has no "attractions" list')
    if len(items) != count:
        raise GenerationError(
            f'Language model returned {len(items)} attractions, expected {count}'
        )

    parsed = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise GenerationError(f'Attraction #{idx + 1} is not an object')
        problems = []
        if not _non_empty_str(item.get('name')):
            problems.append('name')
        if not _non_empty_str(item.get('description')):
            problems.append('description')
        if not _is_number(item.get('latitude')) or not -90 <= item['latitude'] <= 90:
            problems.append('latitude')
        if not _is_number(item.get('longitude')) or not -180 <= item['longitude'] <= 180:
            problems.append('longitude')
        if not _non_empty_str(item.get('estimatedPrice')):
            problems.append('estimatedPrice')
        if problems:
            raise GenerationError(
                f'Attraction #{idx + 1} has missing or invalid field(s): {", ".join(problems)}'
            )
        parsed.append({
            'name':            item['name'].strip(),
            'description':     item['description'].strip(),
            'latitude':        float(item['latitude']),
            'longitude':       float(item['longitude']),
            'estimated_price': item['estimatedPrice'].strip(),
        })
    return parsed


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

class SuggestionGenerator:

    def __init__(self, llm_client: anthropic.AsyncAnthropic, image_client: ImageClient,
                 attraction_store: AttractionStore, model: str = SUGGESTION_MODEL,
                 image_timeout: float = IMAGE_LOOKUP_TIMEOUT,
                 max_retries: int = MODEL_MAX_RETRIES,
                 retry_delay: float = MODEL_RETRY_DELAY):
        self._llm           = llm_client
        self._images        = image_client
        self._attractions   = attraction_store
        self._model         = model
        self._image_timeout = image_timeout
        self._max_retries   = max_retries
        self._retry_delay   = retry_delay

    async def generate(self, note: NoteContext, count: int,
                       exclude_names: Iterable[str] = ()) -> list[AttractionSuggestion]:
        started = time.monotonic()
        exclude_names = list(exclude_names)

        if not exclude_names:
            reused = await self._reuse_existing(note.name, count)
            if reused is not None:
                logger.info('Suggestions: reused %d stored attraction(s) for %r',
                            len(reused), note.name[:60])
                return reused

        prompt = build_prompt(note.name, note.description, count, exclude_names)
        model_started = time.monotonic()
        raw_text = await self._complete(prompt)
        logger.info('Suggestions: model replied in %.1fs for %r',
                    time.monotonic() - model_started, note.name[:60])

        try:
            items = parse_suggestions(raw_text, count)
        except GenerationError:
            logger.error('Suggestions: unusable model output for %r: %r',
                         note.name[:60], raw_text[:200])
            raise

        images = await self._resolve_images([item['name'] for item in items])
        suggestions = [
            AttractionSuggestion(**item, image=image)
            for item, image in zip(items, images)
        ]
        logger.info('Suggestions: %d generated for %r in %.1fs (%d with photos)',
                    len(suggestions), note.name[:60], time.monotonic() - started,
                    sum(1 for s in suggestions if s.image is not None))
        return suggestions

    async def _reuse_existing(self, note_name: str, count: int) -> list[AttractionSuggestion] | None:
        words = note_name.split()
        if not words:
            return None
        rows = await run_in_session(self._attractions.find_by_name_like, words[0], count)
        if len(rows) != count:
            return None
        if any(not (row.description or '').strip() for row in rows):
            logger.info('Suggestions: stored match for %r lacks descriptions, asking the model',
                        note_name[:60])
            return None
        reused = []
        for row in rows:
            image = row.image_dict()
            reused.append(AttractionSuggestion(
                name            = row.name,
                description     = row.description,
                latitude        = row.latitude,
                longitude       = row.longitude,
                estimated_price = REUSED_PRICE_TEXT,
                image           = Image.model_validate(image) if image else None,
            ))
        return reused

    async def _complete(self, prompt: str) -> str:
        if self._llm is None:
            raise ConfigurationError('Server configuration error: language model client is not configured')
        attempt = 0
        while True:
            try:
                message = await self._llm.messages.create(
                    model=self._model,
                    max_tokens=4000,
                    temperature=0.7,
                    system=SYSTEM_PROMPT,
                    messages=[{'role': 'user', 'content': prompt}],
                )
                break
            except anthropic.AuthenticationError as exc:
                raise ConfigurationError(
                    'Server configuration error: language model credentials were rejected', exc,
                ) from exc
            except anthropic.APIError as exc:
                if not _is_transient(exc):
                    raise GenerationError(
                        f'Language model request failed ({type(exc).__name__})', exc,
                    ) from exc
                if attempt >= self._max_retries:
                    raise GenerationError(
                        f'Language model unavailable after {attempt + 1} attempt(s) '
                        f'({type(exc).__name__})', exc,
                    ) from exc
                attempt += 1
                logger.warning('Suggestions: transient model error (%s), retry %d/%d',
                               type(exc).__name__, attempt, self._max_retries)
                await asyncio.sleep(self._retry_delay)

        for block in message.content or []:
            text = getattr(block, 'text', None)
            if text and text.strip():
                return text
        raise GenerationError('Language model returned an empty response')

    async def _resolve_images(self, names: list[str]) -> list[Image | None]:
        try:
            stored = await run_in_session(self._attractions.find_images_by_names, names)
        except SQLAlchemyError as exc:
            logger.warning('Suggestions: stored image lookup failed: %s', exc)
            stored = {}

        async def _one(name: str) -> Image | None:
            if name in stored:
                return stored[name]
            try:
                return await asyncio.wait_for(self._images.find_image(name), self._image_timeout)
            except asyncio.TimeoutError:
                logger.warning('Suggestions: image lookup timed out for %r', name[:60])
            except Exception as exc:
                logger.warning('Suggestions: image lookup failed for %r: %s', name[:60], exc)
            return None

        return list(await asyncio.gather(*[_one(n) for n in names]))
