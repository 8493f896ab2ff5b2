"""
SQLAlchemy ORM models for Travel Notes.

Three models:
  User        — self-registered account (bcrypt password hash)
  TravelNote  — a destination note owned by one user, public or private
  Attraction  — an attraction the owner picked from generated suggestions

Default database: SQLite (travel_notes.db).
Production: set DATABASE_URL to a PostgreSQL connection string.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, String, Text,
)
from sqlalchemy.orm import declarative_base, relationship


def _utcnow():
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


# db is kept as a module-level name so database.py and manage.py can reach
# db.metadata for table creation.
db = declarative_base()


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------

class User(db):
    __tablename__ = 'users'

    id                  = Column(String(36), primary_key=True, default=_uuid)
    email               = Column(String(255), unique=True, nullable=False, index=True)
    password_hash       = Column(String(255), nullable=False)
    profile_description = Column(Text, nullable=True)
    is_active           = Column(Boolean, nullable=False, default=True)
    created_at          = Column(DateTime, nullable=False, default=_utcnow)
    last_login_at       = Column(DateTime, nullable=True)

    notes = relationship('TravelNote', backref='owner', lazy='dynamic')

    def to_dict(self):
        return {
            'id':                  self.id,
            'email':               self.email,
            'profile_description': self.profile_description,
            'created_at':          _iso(self.created_at),
        }

    def __repr__(self):
        return f'<User {self.email}>'


# ---------------------------------------------------------------------------
# TravelNote
# ---------------------------------------------------------------------------

class TravelNote(db):
    __tablename__ = 'travel_notes'

    id          = Column(String(36), primary_key=True, default=_uuid)
    user_id     = Column(String(36), ForeignKey('users.id'), nullable=False, index=True)
    name        = Column(String(255), nullable=False)     # destination, e.g. 'Kraków Old Town'
    description = Column(Text, nullable=False)
    is_public   = Column(Boolean, nullable=False, default=True)
    created_at  = Column(DateTime, nullable=False, default=_utcnow)
    updated_at  = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    attractions = relationship(
        'Attraction',
        backref='travel_note',
        cascade='all, delete-orphan',
        order_by='Attraction.created_at',
    )

    def to_dict(self, include_attractions=True):
        d = {
            'id':          self.id,
            'user_id':     self.user_id,
            'name':        self.name,
            'description': self.description,
            'is_public':   self.is_public,
            'created_at':  _iso(self.created_at),
            'updated_at':  _iso(self.updated_at),
        }
        if include_attractions:
            d['attractions'] = [a.to_dict() for a in self.attractions]
        return d

    def __repr__(self):
        return f'<TravelNote {self.id[:8]} {self.name!r}>'


# ---------------------------------------------------------------------------
# Attraction
# ---------------------------------------------------------------------------

class Attraction(db):
    __tablename__ = 'attractions'

    id             = Column(String(36), primary_key=True, default=_uuid)
    travel_note_id = Column(String(36), ForeignKey('travel_notes.id'), nullable=False, index=True)
    name           = Column(String(255), nullable=False, index=True)
    description    = Column(Text, nullable=True)
    latitude       = Column(Float, nullable=False)
    longitude      = Column(Float, nullable=False)
    created_at     = Column(DateTime, nullable=False, default=_utcnow)

    # ── Photo attribution (decomposed Image) ─────────────────────────────────
    image                  = Column(String(1000), nullable=True)   # photo URL
    image_photographer     = Column(String(255),  nullable=True)
    image_photographer_url = Column(String(1000), nullable=True)
    image_source           = Column(String(1000), nullable=True)

    def image_dict(self):
        """Recompose the image fields; all four must be present."""
        if not (self.image and self.image_photographer
                and self.image_photographer_url and self.image_source):
            return None
        return {
            'url':             self.image,
            'photographer':    self.image_photographer,
            'photographerUrl': self.image_photographer_url,
            'source':          self.image_source,
        }

    def to_dict(self):
        return {
            'id':             self.id,
            'travel_note_id': self.travel_note_id,
            'name':           self.name,
            'description':    self.description,
            'image':          self.image_dict(),
            'latitude':       self.latitude,
            'longitude':      self.longitude,
            'created_at':     _iso(self.created_at),
        }

    def __repr__(self):
        return f'<Attraction {self.name!r} note={self.travel_note_id[:8]}>'
