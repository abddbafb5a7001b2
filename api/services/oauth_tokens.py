"""
Encrypted storage of calendar OAuth tokens, one row per user and provider.
"""

from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging

from sqlalchemy import select

from core.encryption import TokenCipher
from core.integrations.calendar import CalendarProviderError, TokenSet
from core.utils.datetime import ensure_utc, now
from database.engine import AsyncSessionLocal
from database.models.calendar import CalendarProvider, OAuthToken

logger = logging.getLogger(__name__)

# Tokens this close to expiry are refreshed before use
EXPIRY_BUFFER = timedelta(minutes=5)

RefreshCallback = Callable[[str], Awaitable[TokenSet]]

_cipher: Optional[TokenCipher] = None


def get_cipher() -> TokenCipher:
    global _cipher
    if _cipher is None:
        _cipher = TokenCipher()
    return _cipher


def _provider(provider: Any) -> CalendarProvider:
    try:
        return CalendarProvider(getattr(provider, "value", provider))
    except ValueError:
        raise ValueError(f"Unsupported calendar provider: {provider}")


def is_expired(expires_at: Optional[datetime], at: Optional[datetime] = None) -> bool:
    if expires_at is None:
        return False
    return ensure_utc(expires_at) <= (at or now()) + EXPIRY_BUFFER


async def _find(session, user_id: int, provider: CalendarProvider) -> Optional[OAuthToken]:
    result = await session.execute(
        select(OAuthToken).where(OAuthToken.user_id == user_id, OAuthToken.provider == provider)
    )
    return result.scalar_one_or_none()


async def store_token(
    user_id: int,
    provider: str,
    access_token: str,
    refresh_token: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    scope: Optional[str] = None,
) -> None:
    """
    Insert or replace the user's token for ``provider``.

    A missing refresh token keeps the stored one; providers only send it on
    first consent.
    """
    provider = _provider(provider)
    cipher = get_cipher()

    async with AsyncSessionLocal() as session:
        token = await _find(session, user_id, provider)
        if token is None:
            token = OAuthToken(user_id=user_id, provider=provider)
            session.add(token)

        token.access_token = cipher.encrypt(access_token)
        if refresh_token is not None:
            token.refresh_token = cipher.encrypt(refresh_token)
        token.expires_at = expires_at
        token.scope = scope
        await session.commit()

    logger.info(f"Stored {provider.value} token for user {user_id}")


async def get_token(user_id: int, provider: str) -> Optional[Dict[str, Any]]:
    """Decrypted token fields, or None when the user has not connected."""
    provider = _provider(provider)
    async with AsyncSessionLocal() as session:
        token = await _find(session, user_id, provider)

    if token is None:
        return None

    cipher = get_cipher()
    return {
        "access_token": cipher.decrypt(token.access_token),
        "refresh_token": cipher.decrypt(token.refresh_token),
        "expires_at": ensure_utc(token.expires_at),
        "scope": token.scope,
    }


async def delete_token(user_id: int, provider: str) -> bool:
    provider = _provider(provider)
    async with AsyncSessionLocal() as session:
        token = await _find(session, user_id, provider)
        if token is None:
            return False
        await session.delete(token)
        await session.commit()
        return True


async def get_valid_access_token(
    user_id: int,
    provider: str,
    refresh_callback: RefreshCallback,
) -> Optional[str]:
    """
    Access token usable right now, refreshing it when close to expiry.

    Returns None when there is no token, no refresh token, or the refresh
    fails (the stale token is then deleted).
    """
    token = await get_token(user_id, provider)
    if token is None:
        return None

    if not is_expired(token["expires_at"]):
        return token["access_token"]

    if not token["refresh_token"]:
        return None

    try:
        refreshed = await refresh_callback(token["refresh_token"])
    except CalendarProviderError as e:
        logger.warning(f"Token refresh failed for user {user_id} ({provider}): {e}")
        await delete_token(user_id, provider)
        return None

    await store_token(
        user_id,
        provider,
        refreshed.access_token,
        refreshed.refresh_token,
        refreshed.expires_at,
        refreshed.scope or token["scope"],
    )
    return refreshed.access_token


async def has_valid_token(user_id: int, provider: str) -> bool:
    """True when a token exists and is either fresh or refreshable."""
    token = await get_token(user_id, provider)
    if token is None:
        return False
    return not is_expired(token["expires_at"]) or bool(token["refresh_token"])


async def get_connected_providers(user_id: int) -> List[str]:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(OAuthToken.provider).where(OAuthToken.user_id == user_id)
        )
        return sorted(
            p.value if hasattr(p, "value") else p for p in result.scalars().all()
        )
