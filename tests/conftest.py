"""Pytest configuration and shared fixtures."""

import json
import os
import tempfile
from pathlib import Path
from types import SimpleNamespace

# Settings are read at import time, so the environment is fixed up first.
_TMP_DIR = Path(tempfile.mkdtemp(prefix='travel-notes-tests-'))
os.environ['DATABASE_URL']   = f'sqlite:///{_TMP_DIR / "test.db"}'
os.environ['BCRYPT_ROUNDS']  = '4'
os.environ['JWT_SECRET_KEY'] = 'test-secret-key-for-jwt-signing-000000'
os.environ['ENV_NAME']       = 'local'
os.environ.pop('REDIS_URL', None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import auth  # noqa: E402
from app import app  # noqa: E402
from auth import encode_token, hash_password  # noqa: E402
from database import SessionLocal, engine  # noqa: E402
from dependencies import get_image_client, get_llm_client  # noqa: E402
from models import Attraction, TravelNote, User, db  # noqa: E402
from schemas import Image  # noqa: E402


# ── Fakes ─────────────────────────────────────────────────────────────────────

class FakeMessages:
    """Stands in for AsyncAnthropic().messages; replies are consumed in order."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls   = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, BaseException):
            raise reply
        return SimpleNamespace(content=[SimpleNamespace(type='text', text=reply)])


class FakeLLM:
    def __init__(self, *replies):
        self.messages = FakeMessages(replies)

    @property
    def call_count(self) -> int:
        return len(self.messages.calls)


class FakeImageClient:
    """Returns a deterministic photo per name; names in `missing` get None."""

    def __init__(self, missing=(), fail=False):
        self.missing = set(missing)
        self.fail    = fail
        self.queries = []

    async def find_image(self, name):
        self.queries.append(name)
        if self.fail:
            raise RuntimeError('image backend down')
        if name in self.missing:
            return None
        return make_image(name)


def make_image(name: str) -> Image:
    slug = name.lower().replace(' ', '-')
    return Image(
        url=f'https://images.pexels.com/photos/{slug}.jpeg',
        photographer='Jan Kowalski',
        photographer_url='https://www.pexels.com/@jan',
        source=f'https://www.pexels.com/photo/{slug}',
    )


def suggestion_payload(count: int = 8, prefix: str = 'Attraction') -> list[dict]:
    return [
        {
            'name':           f'{prefix} {i}',
            'description':    f'{prefix} {i} is worth a visit.',
            'latitude':       50.0 + i / 100,
            'longitude':      19.9 + i / 100,
            'estimatedPrice': 'Regular ticket: $10, reduced: $5',
        }
        for i in range(1, count + 1)
    ]


def model_reply(items: list[dict]) -> str:
    return 'Here you go:\n' + json.dumps({'attractions': items})


# ── Database ──────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def fresh_database():
    db.metadata.drop_all(engine)
    db.metadata.create_all(engine)
    with auth._login_lock:
        auth._login_attempts.clear()
    with auth._user_rate_lock:
        auth._user_requests.clear()
    yield
    db.metadata.drop_all(engine)


@pytest.fixture
def session():
    with SessionLocal() as s:
        yield s


def make_user(email: str = 'traveller@example.com', password: str = 'Secret#123') -> User:
    with SessionLocal() as s:
        user = User(email=email, password_hash=hash_password(password))
        s.add(user)
        s.commit()
        s.refresh(user)
        return user


def make_note(user: User, name: str = 'Kraków Old Town',
              description: str = 'Three days in the old town.', is_public: bool = True) -> TravelNote:
    with SessionLocal() as s:
        note = TravelNote(user_id=user.id, name=name, description=description, is_public=is_public)
        s.add(note)
        s.commit()
        s.refresh(note)
        return note


def make_attraction(note: TravelNote, name: str, with_image: bool = False) -> Attraction:
    with SessionLocal() as s:
        attraction = Attraction(
            travel_note_id=note.id, name=name, description=f'{name} description',
            latitude=50.06, longitude=19.94,
        )
        if with_image:
            image = make_image(name)
            attraction.image                  = image.url
            attraction.image_photographer     = image.photographer
            attraction.image_photographer_url = image.photographer_url
            attraction.image_source           = image.source
        s.add(attraction)
        s.commit()
        s.refresh(attraction)
        return attraction


def auth_headers(user: User) -> dict:
    return {'Authorization': f'Bearer {encode_token(user.id)}'}


# ── HTTP client ───────────────────────────────────────────────────────────────

@pytest.fixture
def fake_llm():
    return FakeLLM(model_reply(suggestion_payload()))


@pytest.fixture
def fake_images():
    return FakeImageClient()


@pytest.fixture
def client(monkeypatch, fake_llm, fake_images):
    monkeypatch.setenv('ANTHROPIC_API_KEY', 'test-anthropic-key')
    monkeypatch.setenv('PEXELS_API_KEY', 'test-pexels-key')
    app.dependency_overrides[get_llm_client]   = lambda: fake_llm
    app.dependency_overrides[get_image_client] = lambda: fake_images
    with TestClient(app, headers={'X-Requested-With': 'XMLHttpRequest'}) as c:
        yield c
    app.dependency_overrides.clear()
