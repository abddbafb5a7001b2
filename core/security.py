"""
Security utilities.

Password hashing, JWT issuance/verification, logout token revocation and
structured audit logging for sensitive actions.
"""

import json
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional, Set

import bcrypt
import jwt

from core.config import settings

logger = logging.getLogger("security.audit")

BCRYPT_ROUNDS = 12


# ==================== Passwords ===================== #
def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash
        return False


# ==================== JWT ===================== #
@dataclass
class JWTPayload:
    """Decoded access token claims."""

    user_id: int
    company_id: int
    role: str
    jti: str
    exp: datetime

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "JWTPayload":
        return cls(
            user_id=int(claims["sub"]),
            company_id=int(claims["company_id"]),
            role=claims["role"],
            jti=claims["jti"],
            exp=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        )


def create_access_token(
    user_id: int,
    company_id: int,
    role: str,
    expires_delta: Optional[timedelta] = None,
    secret: Optional[str] = None,
    algorithm: Optional[str] = None,
) -> str:
    """
    Issue a signed access token.

    Args:
        user_id: Subject of the token
        company_id: Tenant the user belongs to
        role: User role at issuance time
        expires_delta: Lifetime, defaults to ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        Encoded JWT string
    """
    issued_at = datetime.now(timezone.utc)
    expires_at = issued_at + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    claims = {
        "sub": str(user_id),
        "company_id": company_id,
        "role": role,
        "iat": issued_at,
        "exp": expires_at,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(
        claims,
        secret or settings.jwt_secret_key,
        algorithm=algorithm or settings.jwt_algorithm,
    )


def verify_jwt_token(token: str, secret: str, algorithm: str = "HS256") -> JWTPayload:
    """
    Decode and validate an access token.

    Raises:
        jwt.ExpiredSignatureError: Token expired
        jwt.InvalidTokenError: Any other validation failure
    """
    claims = jwt.decode(
        token,
        secret,
        algorithms=[algorithm],
        options={"require": ["exp", "sub", "jti"]},
    )
    try:
        return JWTPayload.from_claims(claims)
    except (KeyError, TypeError, ValueError) as e:
        raise jwt.InvalidTokenError(f"Malformed claims: {e}") from e


# ==================== Token revocation ===================== #
class TokenBlacklist:
    """
    In-process store of revoked token ids.

    Entries are dropped once the token would have expired anyway, so the
    set never grows past the number of live revoked tokens.
    """

    def __init__(self):
        self._revoked: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def add(self, jti: str, expires_at: datetime) -> None:
        with self._lock:
            self._revoked[jti] = expires_at
            self._prune()

    def contains(self, jti: str) -> bool:
        with self._lock:
            self._prune()
            return jti in self._revoked

    def clear(self) -> None:
        with self._lock:
            self._revoked.clear()

    def _prune(self) -> None:
        current = datetime.now(timezone.utc)
        expired = [jti for jti, exp in self._revoked.items() if exp <= current]
        for jti in expired:
            del self._revoked[jti]


token_blacklist = TokenBlacklist()


def revoke_token(token: str) -> bool:
    """
    Revoke a token until its natural expiry.

    Returns:
        False if the token could not be decoded (already unusable)
    """
    try:
        payload = verify_jwt_token(token, settings.jwt_secret_key, settings.jwt_algorithm)
    except jwt.InvalidTokenError:
        return False
    token_blacklist.add(payload.jti, payload.exp)
    return True


def is_token_revoked(jti: str) -> bool:
    return token_blacklist.contains(jti)


# ==================== Audit logging ===================== #
class AuditAction(str, Enum):
    """Audit log action types."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    MOVE_STAGE = "MOVE_STAGE"
    BULK_MOVE = "BULK_MOVE"
    BULK_IMPORT = "BULK_IMPORT"
    ASSIGN = "ASSIGN"


class ResourceType(str, Enum):
    """Resource types for audit logging."""
    COMPANY = "COMPANY"
    USER = "USER"
    VENDOR = "VENDOR"
    JOB = "JOB"
    STAGE = "STAGE"
    CANDIDATE = "CANDIDATE"
    JOB_CANDIDATE = "JOB_CANDIDATE"
    INTERVIEW = "INTERVIEW"


# PII fields that should be masked in logs
PII_FIELDS: Set[str] = {
    "email", "phone", "name", "full_name", "address",
    "current_ctc", "expected_ctc", "password",
}


def mask_pii(data: Any, depth: int = 0) -> Any:
    """
    Recursively mask PII fields in data structures.

    Args:
        data: Data to mask (dict, list, or primitive)
        depth: Current recursion depth (max 10)

    Returns:
        Data with PII fields masked
    """
    if depth > 10:
        return "[MAX_DEPTH]"

    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            if str(key).lower() in PII_FIELDS:
                if isinstance(value, str) and len(value) > 0:
                    # Partial masking: show first char and length indicator
                    masked[key] = f"{value[0]}***[{len(value)}]"
                else:
                    masked[key] = "[MASKED]"
            else:
                masked[key] = mask_pii(value, depth + 1)
        return masked
    elif isinstance(data, list):
        return [mask_pii(item, depth + 1) for item in data[:5]]  # Limit list items
    else:
        return data


def log_audit_event(
    action: AuditAction,
    resource_type: ResourceType,
    resource_id: Optional[Any] = None,
    user_id: Optional[int] = None,
    company_id: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Emit a structured audit record for a state-changing action.
    """
    event = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": "AUDIT",
        "action": action.value,
        "resource_type": resource_type.value,
        "resource_id": str(resource_id) if resource_id is not None else None,
        "user_id": user_id,
        "company_id": company_id,
        "details": mask_pii(details) if details else None,
    }
    logger.info(json.dumps(event, default=str))
