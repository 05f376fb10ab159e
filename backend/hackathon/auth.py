import base64
import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from django.conf import settings
from django.http import HttpRequest
from django.utils import timezone

from .models import AppUser, AuthSession


PBKDF2_ITERATIONS = 260000
DEFAULT_SESSION_TTL = timedelta(days=7)


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode('ascii')


def _b64decode(val: str) -> bytes:
    return base64.b64decode(val.encode('ascii'))


def hash_password(password: str, *, salt_b64: str | None = None, iterations: int = PBKDF2_ITERATIONS) -> tuple[str, str, int]:
    if salt_b64 is None:
        salt = secrets.token_bytes(16)
        salt_b64 = _b64encode(salt)
    else:
        salt = _b64decode(salt_b64)

    dk = hashlib.pbkdf2_hmac('sha256', password.encode('utf-8'), salt, iterations)
    return salt_b64, _b64encode(dk), iterations


def verify_password(password: str, *, salt_b64: str, password_hash_b64: str, iterations: int) -> bool:
    _, computed_hash_b64, _ = hash_password(password, salt_b64=salt_b64, iterations=iterations)
    return hmac.compare_digest(computed_hash_b64, password_hash_b64)


def create_session_token() -> str:
    return secrets.token_urlsafe(32)


def hash_session_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


@dataclass(frozen=True)
class SessionTimes:
    created_at: datetime
    expires_at: datetime


def get_session_times() -> SessionTimes:
    ttl = getattr(settings, 'SESSION_TTL', DEFAULT_SESSION_TTL)
    created_at = timezone.now()
    return SessionTimes(created_at=created_at, expires_at=created_at + ttl)


def issue_session(user: AppUser) -> tuple[str, AuthSession]:
    """Create a session for ``user``; only the token hash is stored."""
    raw_token = create_session_token()
    times = get_session_times()
    session = AuthSession.objects.create(
        user=user,
        token_hash=hash_session_token(raw_token),
        created_at=times.created_at,
        expires_at=times.expires_at,
    )
    return raw_token, session


def get_bearer_token(request: HttpRequest) -> str | None:
    auth_header = request.headers.get('Authorization')
    if not auth_header:
        return None

    prefix = 'Bearer '
    if not auth_header.startswith(prefix):
        return None

    token = auth_header[len(prefix) :].strip()
    return token or None


def resolve_session(request: HttpRequest) -> AuthSession | None:
    token = get_bearer_token(request)
    if not token:
        return None

    session = (
        AuthSession.objects.select_related('user')
        .filter(token_hash=hash_session_token(token), revoked_at__isnull=True, expires_at__gt=timezone.now())
        .first()
    )
    if session is None or not session.user.is_active:
        return None
    return session


def resolve_admin_session(request: HttpRequest) -> AuthSession | None:
    session = resolve_session(request)
    if session is None or session.user.role != AppUser.ROLE_ADMIN:
        return None
    return session
