import asyncio
from typing import Any, Optional
from redis import asyncio as redis_async  # built-in async client
from marketplace.core.config import settings
REDIS_URL = settings.REDIS_HOST
_redis_client: Optional[redis_async.Redis] = None
_redis_lock = asyncio.Lock()


async def get_redis() -> redis_async.Redis:
    """
    Create or reuse a global Redis connection.
    We avoid checking internal .closed flags; instead we ping and recreate if needed.
    """
    global _redis_client
    async with _redis_lock:
        if _redis_client is None:
            _redis_client = redis_async.from_url(
                REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
            )
        else:
            try:
                await _redis_client.ping()
            except redis_async.RedisError:
                # Recreate the client if the pool/connection is bad
                _redis_client = redis_async.from_url(
                    REDIS_URL,
                    encoding="utf-8",
                    decode_responses=True,
                )
    return _redis_client


async def close_redis():
    """Gracefully close Redis connection."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


# ---------------------------------------------------
# OTP resend cooldown
# ---------------------------------------------------

def _cooldown_key(user_id: Any, purpose: str) -> str:
    return f"otp:cooldown:{str(user_id)}:{purpose.strip().lower()}"


class OtpCooldown:
    """
    Per (user, purpose) throttle for user-initiated OTP sends.

    `acquire` uses SET NX EX so two concurrent requests cannot both pass.
    Without an explicit client the shared connection is fetched on first use,
    so requests that never send a code never touch Redis.
    """

    def __init__(
        self,
        redis: Optional[redis_async.Redis] = None,
        ttl_seconds: int = settings.OTP_RESEND_COOLDOWN_SECONDS,
    ):
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    async def _client(self) -> redis_async.Redis:
        if self.redis is None:
            self.redis = await get_redis()
        return self.redis

    async def acquire(self, user_id: Any, purpose: str) -> bool:
        redis = await self._client()
        return bool(await redis.set(_cooldown_key(user_id, purpose), "1", ex=self.ttl_seconds, nx=True))

    async def seconds_left(self, user_id: Any, purpose: str) -> int:
        redis = await self._client()
        ttl = await redis.ttl(_cooldown_key(user_id, purpose))
        return max(int(ttl), 0)
