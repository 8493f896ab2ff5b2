"""
schemas.py — Pydantic v2 request/response models for Travel Notes.

Request validation failures are turned into HTTP 400 responses of the form
{'error': 'Invalid input data', 'code': 'VALIDATION_ERROR', 'details': [...]}
by the handler registered in app.py.

Suggestion and image models serialise with camelCase keys (estimatedPrice,
photographerUrl) because that is the shape the frontend consumes; call
model_dump(by_alias=True) when building responses or cache entries.
"""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_URL_RE = re.compile(r'^https?://[^\s/$.?#][^\s]*$', re.IGNORECASE)

PASSWORD_SPECIALS = '!@#$%^&*(),.?":{}|<>'


# ── Shared validator helpers ──────────────────────────────────────────────────

def _collapse(v: str | None) -> str | None:
    """Collapse all whitespace to single spaces and strip the ends.
    Returns None if the result is empty."""
    if v is None:
        return None
    s = re.sub(r'\s+', ' ', str(v)).strip()
    return s or None


def _strip_only(v: str | None) -> str | None:
    """Strip leading/trailing whitespace only — internal newlines survive.
    Returns None if the result is empty."""
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _check_url(v: str | None) -> str | None:
    if v is None:
        return None
    if not _URL_RE.match(v):
        raise ValueError('must be an http(s) URL')
    return v


# ── Images & suggestions ─────────────────────────────────────────────────────

class Image(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    url:              str
    photographer:     str
    photographer_url: str
    source:           str


class AttractionSuggestion(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name:            str
    description:     str
    latitude:        float = Field(..., ge=-90, le=90)
    longitude:       float = Field(..., ge=-180, le=180)
    estimated_price: str
    image:           Image | None = None


# ── Auth ──────────────────────────────────────────────────────────────────────

class LoginRequest(BaseModel):
    email:    str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)

    @field_validator('email', mode='before')
    @classmethod
    def normalise_email(cls, v: str) -> str:
        return str(v).strip().lower()


class RegisterRequest(BaseModel):
    email:               str        = Field(..., min_length=3, max_length=255)
    password:            str        = Field(..., min_length=8, max_length=128)
    profile_description: str | None = Field(default=None, max_length=1000)

    @field_validator('email', mode='before')
    @classmethod
    def normalise_email(cls, v: str) -> str:
        return str(v).strip().lower()

    @field_validator('email')
    @classmethod
    def looks_like_email(cls, v: str) -> str:
        if not re.match(r'^[^@\s]+@[^@\s]+\.[^@\s]+$', v):
            raise ValueError('Invalid email format')
        return v

    @field_validator('password')
    @classmethod
    def password_strength(cls, v: str) -> str:
        if not re.search(r'[A-Z]', v):
            raise ValueError('Password must contain at least one uppercase letter')
        if not re.search(r'[a-z]', v):
            raise ValueError('Password must contain at least one lowercase letter')
        if not re.search(r'[0-9]', v):
            raise ValueError('Password must contain at least one number')
        if not any(ch in PASSWORD_SPECIALS for ch in v):
            raise ValueError('Password must contain at least one special character')
        return v

    @field_validator('profile_description', mode='before')
    @classmethod
    def strip_profile(cls, v: str | None) -> str | None:
        return _strip_only(v)


# ── Travel notes ──────────────────────────────────────────────────────────────

class TravelNoteCreate(BaseModel):
    name:        str  = Field(..., min_length=1, max_length=255)
    description: str  = Field(..., min_length=1, max_length=10000)
    is_public:   bool = True

    @field_validator('name', mode='before')
    @classmethod
    def collapse_name(cls, v: str | None) -> str | None:
        return _collapse(v)

    @field_validator('description', mode='before')
    @classmethod
    def strip_description(cls, v: str | None) -> str | None:
        return _strip_only(v)


class TravelNoteUpdate(BaseModel):
    """All fields optional — supports partial update semantics."""
    name:        str | None  = Field(default=None, min_length=1, max_length=255)
    description: str | None  = Field(default=None, min_length=1, max_length=10000)
    is_public:   bool | None = None

    @field_validator('name', mode='before')
    @classmethod
    def collapse_name(cls, v: str | None) -> str | None:
        return _collapse(v)

    @field_validator('description', mode='before')
    @classmethod
    def strip_description(cls, v: str | None) -> str | None:
        return _strip_only(v)


# ── Attractions ───────────────────────────────────────────────────────────────

class AttractionCreate(BaseModel):
    name:                   str        = Field(..., min_length=1, max_length=255)
    description:            str        = Field(..., min_length=1)
    image:                  str | None = Field(default=None, max_length=1000)
    image_photographer:     str | None = Field(default=None, max_length=255)
    image_photographer_url: str | None = Field(default=None, max_length=1000)
    image_source:           str | None = Field(default=None, max_length=1000)
    latitude:               float      = Field(..., ge=-90, le=90)
    longitude:              float      = Field(..., ge=-180, le=180)

    @field_validator('name', mode='before')
    @classmethod
    def collapse_name(cls, v: str | None) -> str | None:
        return _collapse(v)

    @field_validator('description', 'image_photographer', mode='before')
    @classmethod
    def strip_text(cls, v: str | None) -> str | None:
        return _strip_only(v)

    @field_validator('image', 'image_photographer_url', 'image_source')
    @classmethod
    def http_urls(cls, v: str | None) -> str | None:
        return _check_url(v)


class AttractionsBulkCreate(BaseModel):
    attractions: list[AttractionCreate] = Field(..., min_length=1, max_length=50)
