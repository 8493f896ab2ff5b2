"""
auth.py — Authentication router and identity dependency for Travel Notes

Provides:
  - JWT helpers (encode / decode)
  - get_current_user / get_optional_user  (FastAPI dependencies)
  - check_user_rate_limit  (per-user budget for expensive endpoints)
  - Routes: POST /auth/register, POST /auth/login, POST /auth/logout, GET /auth/me

The JWT lives in an httpOnly cookie called 'tn_token'; an Authorization: Bearer
header, when sent, takes precedence.  Token TTL: 8 hours, sliding —
get_current_user stores a fresh token on request.state and the middleware in
app.py re-issues the cookie.
"""

import logging
import threading
import time
from collections import defaultdict
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from config import BCRYPT_ROUNDS, ENV_NAME, JWT_SECRET_KEY, is_feature_enabled
from database import get_db
from errors import AuthenticationError, ForbiddenError, ValidationError
from models import User
from redis_client import get_redis
from schemas import LoginRequest, RegisterRequest

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix='/auth', tags=['auth'])

# ── Constants ────────────────────────────────────────────────────────────────

COOKIE_NAME = 'tn_token'
TOKEN_TTL_H = 8

# ── Login rate limiting ───────────────────────────────────────────────────────
# Failed logins per IP.  After LOGIN_MAX_ATTEMPTS failures inside
# LOGIN_WINDOW_SECONDS further attempts are refused.
#
# Redis path:  sorted set  ratelimit:login:{ip}  (score = member = timestamp)
# Fallback:    in-memory dict per worker.
LOGIN_MAX_ATTEMPTS   = 10
LOGIN_WINDOW_SECONDS = 300

_login_attempts: dict = defaultdict(list)
_login_lock = threading.Lock()


def _check_login_rate_limit(ip: str) -> bool:
    """True if a login attempt from ip may proceed."""
    now = time.time()
    r = get_redis()

    if r is not None:
        try:
            key  = f'ratelimit:login:{ip}'
            pipe = r.pipeline()
            pipe.zremrangebyscore(key, '-inf', now - LOGIN_WINDOW_SECONDS)
            pipe.zcard(key)
            pipe.expire(key, LOGIN_WINDOW_SECONDS)
            _, count, _ = pipe.execute()
            return count < LOGIN_MAX_ATTEMPTS
        except Exception as exc:
            logger.warning('Redis login rate-limit check error: %s — falling back', exc)

    with _login_lock:
        _login_attempts[ip] = [t for t in _login_attempts[ip] if now - t < LOGIN_WINDOW_SECONDS]
        return len(_login_attempts[ip]) < LOGIN_MAX_ATTEMPTS


def _record_login_failure(ip: str) -> None:
    now = time.time()
    r = get_redis()

    if r is not None:
        try:
            key  = f'ratelimit:login:{ip}'
            pipe = r.pipeline()
            pipe.zadd(key, {str(now): now})
            pipe.expire(key, LOGIN_WINDOW_SECONDS)
            pipe.execute()
            return
        except Exception as exc:
            logger.warning('Redis login failure record error: %s — falling back', exc)

    with _login_lock:
        _login_attempts[ip].append(now)


# ── Per-user rate limiting ───────────────────────────────────────────────────
# Keyed by (user_id, endpoint).  Only cache misses on the suggestion endpoint
# count against 'generate', so re-opening a note inside the cache window is free.

RATE_LIMIT_RULES: dict[str, tuple[int, int]] = {
    # endpoint_key -> (max_requests, window_seconds)
    'generate': (20, 600),
}

_user_requests: dict = defaultdict(list)
_user_rate_lock = threading.Lock()


def check_user_rate_limit(user_id: str, endpoint: str) -> tuple[bool, int]:
    """
    Returns (allowed, retry_after_seconds) and records the request if allowed.
    retry_after is how long until the oldest request leaves the window.
    """
    rule = RATE_LIMIT_RULES.get(endpoint)
    if rule is None:
        return True, 0

    max_requests, window = rule
    now = time.time()
    r = get_redis()

    if r is not None:
        try:
            rkey = f'ratelimit:user:{user_id}:{endpoint}'
            pipe = r.pipeline()
            pipe.zremrangebyscore(rkey, '-inf', now - window)
            pipe.zrange(rkey, 0, -1, withscores=True)
            pipe.expire(rkey, window)
            _, entries, _ = pipe.execute()

            if len(entries) >= max_requests:
                oldest = min(score for _, score in entries)
                return False, int(window - (now - oldest)) + 1

            r.zadd(rkey, {str(now): now})
            r.expire(rkey, window)
            return True, 0
        except Exception as exc:
            logger.warning('Redis user rate-limit error: %s — falling back', exc)

    mem_key = (user_id, endpoint)
    with _user_rate_lock:
        _user_requests[mem_key] = [t for t in _user_requests[mem_key] if now - t < window]
        if len(_user_requests[mem_key]) >= max_requests:
            oldest = min(_user_requests[mem_key])
            return False, int(window - (now - oldest)) + 1
        _user_requests[mem_key].append(now)
        return True, 0


# ── Password & JWT helpers ───────────────────────────────────────────────────

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode('utf-8')


def _check_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError as exc:
        logger.warning('bcrypt check error: %s', exc)
        return False


def encode_token(user_id: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        'sub': str(user_id),
        'iat': now,
        'exp': now + timedelta(hours=TOKEN_TTL_H),
    }
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm='HS256')


def _decode_token(token: str) -> dict:
    """Raise jwt.PyJWTError if invalid or expired."""
    return jwt.decode(token, JWT_SECRET_KEY, algorithms=['HS256'])


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        COOKIE_NAME,
        token,
        httponly=True,
        samesite='lax',
        secure=(ENV_NAME == 'prod'),
        max_age=TOKEN_TTL_H * 3600,
        path='/',
    )


def _token_from_request(request: Request) -> str | None:
    # An explicit Bearer header wins over the ambient cookie.
    header = request.headers.get('Authorization', '')
    if header.lower().startswith('bearer '):
        token = header[7:].strip()
        if token:
            return token
    return request.cookies.get(COOKIE_NAME) or None


# ── Dependencies ─────────────────────────────────────────────────────────────

def _load_user(request: Request, db: Session) -> User | None:
    token = _token_from_request(request)
    if not token:
        return None
    try:
        payload = _decode_token(token)
    except jwt.ExpiredSignatureError:
        raise AuthenticationError('Session expired — please log in again')
    except jwt.PyJWTError:
        raise AuthenticationError('Invalid token — please log in again')

    user = db.get(User, payload.get('sub'))
    if not user or not user.is_active:
        raise AuthenticationError('Account not found or disabled')
    return user


async def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Identity provider for protected routes.

    State-changing requests must send X-Requested-With: XMLHttpRequest.
    Browsers never add that header to cross-site requests on their own, so it
    backs up the SameSite=Lax cookie against CSRF.
    """
    if request.method in ('POST', 'PUT', 'DELETE', 'PATCH'):
        if request.headers.get('X-Requested-With') != 'XMLHttpRequest':
            raise ForbiddenError('Forbidden — missing required request header')

    user = await run_in_threadpool(_load_user, request, db)
    if user is None:
        raise AuthenticationError('Authentication required')

    request.state.slide_token = encode_token(user.id)
    return user


async def get_optional_user(request: Request, db: Session = Depends(get_db)) -> User | None:
    """Like get_current_user, but anonymous callers get None instead of 401."""
    if not _token_from_request(request):
        return None
    return await get_current_user(request, db)


# ── Routes ───────────────────────────────────────────────────────────────────

@auth_router.post('/register', status_code=201)
async def register(body: RegisterRequest, response: Response, db: Session = Depends(get_db)):
    """POST /auth/register — create an account and log it in."""
    if not is_feature_enabled('auth'):
        raise ForbiddenError('Registration is currently disabled')

    def _create():
        if db.query(User).filter_by(email=body.email).first():
            raise ValidationError('An account with this email already exists')
        user = User(
            email               = body.email,
            password_hash       = hash_password(body.password),
            profile_description = body.profile_description,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    user = await run_in_threadpool(_create)
    set_auth_cookie(response, encode_token(user.id))
    logger.info('Registered user_id=%s', user.id[:8])
    return {'user': user.to_dict()}


@auth_router.post('/login')
async def login(body: LoginRequest, request: Request, response: Response,
                db: Session = Depends(get_db)):
    """POST /auth/login — { email, password } → sets httpOnly cookie."""
    client_ip = request.client.host if request.client else '0.0.0.0'
    if not _check_login_rate_limit(client_ip):
        logger.warning('Login rate limit exceeded for IP %s', client_ip)
        raise HTTPException(status_code=429, detail='Too many login attempts. Please wait and try again.')

    def _authenticate():
        user = db.query(User).filter_by(email=body.email).first()
        if not user or not user.is_active or not _check_password(body.password, user.password_hash):
            return None
        user.last_login_at = datetime.now(timezone.utc)
        db.commit()
        return user

    user = await run_in_threadpool(_authenticate)
    if user is None:
        # Same message whether or not the email exists
        _record_login_failure(client_ip)
        raise AuthenticationError('Invalid email or password')

    set_auth_cookie(response, encode_token(user.id))
    logger.info('Login: user_id=%s', user.id[:8])
    return {'status': 'ok', 'user': user.to_dict()}


@auth_router.post('/logout')
async def logout(response: Response):
    """POST /auth/logout — clears the auth cookie."""
    response.delete_cookie(COOKIE_NAME, path='/')
    return {'status': 'ok'}


@auth_router.get('/me')
async def me(current_user: User = Depends(get_current_user)):
    """GET /auth/me — the current user's profile."""
    return {'user': current_user.to_dict()}
