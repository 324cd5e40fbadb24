import hashlib
import hmac
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from jose import JWTError, ExpiredSignatureError, jwt

from app.core.config import settings
from app.core.exceptions import InvalidTokenError, ValidationError


USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
_USERNAME_STRIP = re.compile(r"[^a-zA-Z0-9_-]")
_MODULE_NAME_FORBIDDEN = re.compile(r"[.#$\[\]/]")

ROLE_STUDENT = "student"
ROLE_ADMIN = "admin"
VALID_ROLES = (ROLE_STUDENT, ROLE_ADMIN)


# ==========================================
# Passwords
# ==========================================

def hash_password(password: str) -> str:
    """
    Unsalted SHA-256 hex digest of the UTF-8 password.

    Existing user records are stored this way, so the scheme is kept
    for compatibility. It is not a password-hashing function.
    """
    if not password:
        return ""
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Constant-time comparison against a stored digest"""
    if not plain_password or not hashed_password:
        return False
    return hmac.compare_digest(hash_password(plain_password), hashed_password)


def validate_password(password: Optional[str]) -> str:
    if not password:
        raise ValidationError("Password is required", field="password")
    if len(password) < settings.PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters",
            field="password",
        )
    if len(password) > settings.PASSWORD_MAX_LENGTH:
        raise ValidationError(
            f"Password must be at most {settings.PASSWORD_MAX_LENGTH} characters",
            field="password",
        )
    return password


# ==========================================
# Usernames
# ==========================================

def sanitize_username(raw: Optional[str]) -> str:
    """Keep only [a-zA-Z0-9_-], trim, truncate to the max username length"""
    if not raw:
        return ""
    return _USERNAME_STRIP.sub("", raw).strip()[:settings.USERNAME_MAX_LENGTH]


def validate_username(raw: Optional[str]) -> str:
    """Validate the raw input as typed, then return its sanitized form"""
    if not raw or not raw.strip():
        raise ValidationError("Username is required", field="username")
    candidate = raw.strip()
    if len(candidate) < settings.USERNAME_MIN_LENGTH:
        raise ValidationError(
            f"Username must be at least {settings.USERNAME_MIN_LENGTH} characters",
            field="username",
        )
    if len(candidate) > settings.USERNAME_MAX_LENGTH:
        raise ValidationError(
            f"Username must be at most {settings.USERNAME_MAX_LENGTH} characters",
            field="username",
        )
    if not USERNAME_PATTERN.match(candidate):
        raise ValidationError(
            "Username may only contain letters, digits, '_' and '-'",
            field="username",
        )
    return sanitize_username(candidate)


# ==========================================
# Module names
# ==========================================

def sanitize_module_name(raw: Optional[str]) -> str:
    """Trim and replace path-unsafe characters (. # $ [ ] /) with '_'"""
    if raw is None:
        return ""
    return _MODULE_NAME_FORBIDDEN.sub("_", raw.strip())


# ==========================================
# Role tokens
# ==========================================

def generate_backing_id() -> str:
    """Opaque anonymous identity issued at login"""
    return f"anon_{secrets.token_urlsafe(18)}"


def create_role_token(
    role: str,
    username: str,
    backing_id: str,
    user_id: str,
    issued_at: Optional[datetime] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create the signed bearer token carrying the session role"""
    issued_at = issued_at or datetime.now(timezone.utc)
    expire = issued_at + (expires_delta or timedelta(seconds=settings.SESSION_TIMEOUT_SECONDS))

    to_encode = {
        "sub": backing_id,
        "uid": user_id,
        "role": role,
        "username": username,
        "iat": int(issued_at.timestamp()),
        "exp": int(expire.timestamp()),
        "type": "role",
    }
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_role_token(token: str) -> Dict[str, Any]:
    """Decode and check a role token, raising InvalidTokenError on any failure"""
    if not token:
        raise InvalidTokenError("Missing session token")
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise InvalidTokenError("Session expired")
    except JWTError:
        raise InvalidTokenError()

    if payload.get("type") != "role" or payload.get("role") not in VALID_ROLES:
        raise InvalidTokenError("Invalid token payload")
    return payload
