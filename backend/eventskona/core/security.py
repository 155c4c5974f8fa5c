import enum
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError
from passlib.context import CryptContext

from eventskona.core.config import settings
from eventskona.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

# bcrypt salts every hash, so equal passwords produce different hashes
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.PASSWORD_HASH_ROUNDS,
)

PASSWORD_MIN_LENGTH = 8
PASSWORD_PATTERN = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&#^()_\-+=])[A-Za-z\d@$!%*?&#^()_\-+=]{8,}$"
)


# =====================
# Passwords
# =====================

def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt"""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against a hash; False for a missing or malformed hash"""
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # passlib raises when the stored value is not a recognisable hash
        return False


@dataclass(frozen=True)
class PasswordCheck:
    valid: bool
    message: Optional[str] = None


def validate_password_strength(password: str) -> PasswordCheck:
    if len(password) < PASSWORD_MIN_LENGTH:
        return PasswordCheck(False, "Password must be at least 8 characters")
    if not PASSWORD_PATTERN.match(password):
        return PasswordCheck(
            False,
            "Password must include uppercase, lowercase, number, and special character",
        )
    return PasswordCheck(True)


# =====================
# JWT
# =====================

class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    ADMIN = "admin"


class TokenError(str, enum.Enum):
    MALFORMED = "malformed"
    SIGNATURE_MISMATCH = "signature_mismatch"
    EXPIRED = "expired"
    INVALID_CLAIMS = "invalid_claims"


@dataclass(frozen=True)
class TokenVerification:
    """Outcome of decoding a token: a payload or the reason it was rejected"""
    payload: Optional[Dict[str, Any]] = None
    error: Optional[TokenError] = None

    @property
    def ok(self) -> bool:
        return self.payload is not None


def _secret_for(kind: TokenKind) -> str:
    name = {
        TokenKind.ACCESS: "JWT_SECRET",
        TokenKind.REFRESH: "REFRESH_TOKEN_SECRET",
        TokenKind.ADMIN: "ADMIN_JWT_SECRET",
    }[kind]
    secret = getattr(settings, name)
    if not secret:
        raise ConfigurationError(f"{name} is not set")
    return secret


def _lifetime_for(kind: TokenKind) -> timedelta:
    if kind is TokenKind.ACCESS:
        return timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    if kind is TokenKind.REFRESH:
        return timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return timedelta(hours=settings.ADMIN_ACCESS_TOKEN_EXPIRE_HOURS)


def ensure_token_secrets() -> None:
    """Raise ConfigurationError unless both user token secrets are configured"""
    _secret_for(TokenKind.ACCESS)
    _secret_for(TokenKind.REFRESH)


def _encode(payload: Dict[str, Any], kind: TokenKind, expires_delta: Optional[timedelta] = None) -> str:
    secret = _secret_for(kind)
    now = datetime.now(timezone.utc)
    to_encode = dict(payload)
    to_encode.update({
        "iat": now,
        "exp": now + (expires_delta if expires_delta is not None else _lifetime_for(kind)),
        # Unique per token, so two tokens minted in the same second still differ
        "jti": secrets.token_hex(8),
    })
    return jwt.encode(to_encode, secret, algorithm=settings.ALGORITHM)


def token_payload(user: Any) -> Dict[str, Any]:
    """Claims embedded in user tokens"""
    return {"sub": str(user.id), "email": user.email, "role": user.role}


def generate_access_token(payload: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    return _encode(payload, TokenKind.ACCESS, expires_delta)


def generate_refresh_token(payload: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    return _encode(payload, TokenKind.REFRESH, expires_delta)


def generate_admin_access_token(payload: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    return _encode(payload, TokenKind.ADMIN, expires_delta)


def decode_token(token: str, kind: TokenKind) -> TokenVerification:
    """
    Decode and verify a token of the given kind.

    Never raises for a bad token; the reason is reported in the result.
    A missing secret is a server problem and still raises ConfigurationError.
    """
    secret = _secret_for(kind)
    if not token:
        return TokenVerification(error=TokenError.MALFORMED)
    try:
        # Structural check first so a garbled token is not reported as a bad signature
        jwt.get_unverified_header(token)
    except JWTError:
        return TokenVerification(error=TokenError.MALFORMED)

    try:
        payload = jwt.decode(token, secret, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        return TokenVerification(error=TokenError.EXPIRED)
    except JWTClaimsError:
        return TokenVerification(error=TokenError.INVALID_CLAIMS)
    except JWTError:
        return TokenVerification(error=TokenError.SIGNATURE_MISMATCH)

    if not payload.get("sub"):
        return TokenVerification(error=TokenError.INVALID_CLAIMS)
    return TokenVerification(payload=payload)


def _verify(token: str, kind: TokenKind) -> Optional[Dict[str, Any]]:
    result = decode_token(token, kind)
    if not result.ok:
        logger.debug(f"Rejected {kind.value} token: {result.error.value}")
    return result.payload


def verify_access_token(token: str) -> Optional[Dict[str, Any]]:
    return _verify(token, TokenKind.ACCESS)


def verify_refresh_token(token: str) -> Optional[Dict[str, Any]]:
    return _verify(token, TokenKind.REFRESH)


def verify_admin_token(token: str) -> Optional[Dict[str, Any]]:
    return _verify(token, TokenKind.ADMIN)


# =====================
# Opaque tokens & headers
# =====================

def generate_random_token(nbytes: int = 32) -> str:
    """Single-use token for password reset and email verification links"""
    return secrets.token_hex(nbytes)


def extract_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header[len("Bearer "):].strip()
    return token or None
