"""
config.py — Environment-driven settings and feature flags for Travel Notes.

All settings are read once at import time from the process environment,
optionally seeded from a .env file beside this module.  Credentials needed by
the suggestion pipeline are re-read on every call to missing_credentials() so
a key rotated into the environment takes effect without a restart.
"""

import logging
import os
import secrets

from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(__file__), '.env'))

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Suggestion pipeline
# ---------------------------------------------------------------------------

SUGGESTION_MODEL = os.getenv('SUGGESTION_MODEL', 'claude-haiku-4-5-20251001')
SUGGESTION_COUNT = 8

SUGGESTION_CACHE_TTL_SECONDS = 15 * 60
OWNERSHIP_CACHE_TTL_SECONDS  = 5 * 60

GENERATION_DEADLINE_SECONDS = 55
IMAGE_LOOKUP_TIMEOUT        = 3     # seconds, per suggestion

MODEL_MAX_RETRIES = 2
MODEL_RETRY_DELAY = 1.0

PEXELS_API_URL           = 'https://api.pexels.com/v1/search'
PEXELS_MAX_PER_HOUR      = 200
PEXELS_WINDOW_SECONDS    = 3600

REQUIRED_CREDENTIALS = {
    'ANTHROPIC_API_KEY': 'language model API key',
    'PEXELS_API_KEY':    'Pexels API key',
}


def missing_credentials() -> list[str]:
    """Return human-readable names of generation credentials that are unset."""
    return [label for var, label in REQUIRED_CREDENTIALS.items() if not os.getenv(var, '').strip()]


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', '').strip()
if not JWT_SECRET_KEY:
    JWT_SECRET_KEY = secrets.token_hex(32)
    logger.warning('JWT_SECRET_KEY not set — using a per-process random key; '
                   'sessions will not survive a restart')

BCRYPT_ROUNDS = int(os.getenv('BCRYPT_ROUNDS', '12'))

# ---------------------------------------------------------------------------
# Feature flags
# ---------------------------------------------------------------------------

ENV_NAME = os.getenv('ENV_NAME', 'local').strip().lower()

FEATURE_FLAGS: dict[str, dict[str, bool]] = {
    'local': {
        'auth':                   True,
        'create-travel-note':     True,
        'attraction-suggestions': True,
        'restore-password':       False,
        'profile':                False,
    },
    'integration': {
        'auth':                   True,
        'create-travel-note':     True,
        'attraction-suggestions': True,
        'restore-password':       False,
        'profile':                False,
    },
    'prod': {
        'auth':                   True,
        'create-travel-note':     True,
        'attraction-suggestions': True,
        'restore-password':       False,
        'profile':                False,
    },
}


def is_feature_enabled(feature: str, env_name: str | None = None) -> bool:
    """Unknown environments and unknown features are treated as disabled."""
    flags = FEATURE_FLAGS.get(env_name or ENV_NAME)
    if flags is None:
        return False
    return flags.get(feature, False) is True
