import httpx
import pytest

from images import ImageClient, image_query_for
from rate_limiter import RateLimiter

PHOTO = {
    'id': 2422461,
    'photographer': 'Anna Nowak',
    'photographer_url': 'https://www.pexels.com/@anna',
    'src': {'large2x': 'https://images.pexels.com/photos/2422461/large2x.jpeg'},
}


def _client(handler, api_key='pexels-key', limiter=None) -> ImageClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ImageClient(http, api_key, limiter or RateLimiter(200, 3600))


def test_query_prefers_parenthetical_alias() -> None:
    assert image_query_for('Zamek Królewski na Wawelu (Wawel Castle)') == 'Wawel Castle'
    assert image_query_for('  Cloth Hall  ') == 'Cloth Hall'
    assert image_query_for('Odd name ()') == 'Odd name ()'


@pytest.mark.asyncio
async def test_find_image_maps_first_photo() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen['query']  = request.url.params['query']
        seen['auth']   = request.headers['Authorization']
        seen['params'] = dict(request.url.params)
        return httpx.Response(200, json={'photos': [PHOTO]})

    image = await _client(handler).find_image('Sukiennice (Cloth Hall)')

    assert seen['query'] == 'Cloth Hall'
    assert seen['auth'] == 'pexels-key'
    assert seen['params']['per_page'] == '1'
    assert seen['params']['orientation'] == 'landscape'
    assert image.url == PHOTO['src']['large2x']
    assert image.photographer == 'Anna Nowak'
    assert image.photographer_url == 'https://www.pexels.com/@anna'
    assert image.source == 'https://www.pexels.com/photo/2422461'


@pytest.mark.asyncio
async def test_no_results_means_no_image() -> None:
    image = await _client(lambda r: httpx.Response(200, json={'photos': []})).find_image('Nowhere')

    assert image is None


@pytest.mark.asyncio
@pytest.mark.parametrize('response', [
    httpx.Response(500, text='boom'),
    httpx.Response(401, json={'error': 'bad key'}),
    httpx.Response(200, text='not json'),
    httpx.Response(200, json={'photos': [{'id': 1}]}),
])
async def test_provider_failures_are_absorbed(response) -> None:
    image = await _client(lambda r: response).find_image('Wawel')

    assert image is None


@pytest.mark.asyncio
async def test_transport_error_is_absorbed() -> None:
    def handler(request):
        raise httpx.ConnectError('connection refused', request=request)

    assert await _client(handler).find_image('Wawel') is None


@pytest.mark.asyncio
async def test_exhausted_budget_skips_the_request() -> None:
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={'photos': [PHOTO]})

    limiter = RateLimiter(1, 3600)
    client = _client(handler, limiter=limiter)

    assert await client.find_image('Wawel') is not None
    assert await client.find_image('Cloth Hall') is None
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_missing_api_key_makes_no_request() -> None:
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={'photos': [PHOTO]})

    assert await _client(handler, api_key=None).find_image('Wawel') is None
    assert calls == []
