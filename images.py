"""
images.py — Best-effort photo lookup against the Pexels search API.

find_image() never raises.  Budget exhaustion, transport errors, HTTP errors,
unexpected payloads and empty result sets all come back as None so a missing
photo can never break suggestion generation or the attraction commit path.
"""

import logging
import re

import httpx

from config import PEXELS_API_URL
from errors import EnrichmentError
from rate_limiter import RateLimiter
from schemas import Image

logger = logging.getLogger(__name__)

PEXELS_PHOTO_URL = 'https://www.pexels.com/photo/{id}'

_ALIAS_RE = re.compile(r'\((.*?)\)')


def image_query_for(name: str) -> str:
    """Prefer a parenthetical alias ('Wawel (Wawel Castle)' → 'Wawel Castle');
    the provider indexes mostly by common English names."""
    match = _ALIAS_RE.search(name)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return name.strip()


class ImageClient:

    def __init__(self, http_client: httpx.AsyncClient, api_key: str | None,
                 rate_limiter: RateLimiter, api_url: str = PEXELS_API_URL):
        self._http         = http_client
        self._api_key      = api_key
        self._rate_limiter = rate_limiter
        self._api_url      = api_url

    async def find_image(self, name: str) -> Image | None:
        query = image_query_for(name)
        if not query:
            return None
        if not self._api_key:
            logger.info('Pexels: no API key configured, skipping image for %r', query[:60])
            return None
        if not self._rate_limiter.can_admit():
            logger.warning('Pexels rate limit reached, skipping image search for %r', query[:60])
            return None

        self._rate_limiter.record_admission()
        try:
            return await self._search(query)
        except EnrichmentError as exc:
            logger.warning('Pexels lookup failed for %r: %s', query[:60], exc)
        except Exception as exc:
            logger.warning('Pexels error for %r: %s', query[:60], exc)
        return None

    async def _search(self, query: str) -> Image | None:
        try:
            resp = await self._http.get(
                self._api_url,
                params={'query': query, 'per_page': 1, 'orientation': 'landscape'},
                headers={'Authorization': self._api_key},
            )
        except httpx.HTTPError as exc:
            raise EnrichmentError(f'transport error: {exc}') from exc

        if resp.status_code != 200:
            raise EnrichmentError(f'HTTP {resp.status_code}')

        try:
            photos = resp.json().get('photos') or []
        except ValueError as exc:
            raise EnrichmentError('response is not JSON') from exc

        if not photos:
            logger.info('Pexels: no photo for %r', query[:60])
            return None

        photo = photos[0]
        try:
            image = Image(
                url              = photo['src']['large2x'],
                photographer     = photo['photographer'],
                photographer_url = photo['photographer_url'],
                source           = PEXELS_PHOTO_URL.format(id=photo['id']),
            )
        except (KeyError, TypeError) as exc:
            raise EnrichmentError(f'unexpected photo record: {exc}') from exc

        logger.info('Pexels: %r → photo %s', query[:60], photo['id'])
        return image
