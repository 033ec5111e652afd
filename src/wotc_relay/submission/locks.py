"""Exclusive per-(employer, state) submission leases.

The in-process registry guards tasks within one dispatcher; the optional
Redis lease extends the guarantee across processes.
"""

import secrets
from dataclasses import dataclass
from uuid import UUID

import structlog
from redis.asyncio import Redis

logger = structlog.get_logger()

PairKey = tuple[UUID, str]

# Delete the key only if it still holds our token
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class JobLockRegistry:
    """Non-blocking exclusive locks keyed by (employer, state)."""

    def __init__(self) -> None:
        self._held: set[PairKey] = set()

    def try_acquire(self, key: PairKey) -> bool:
        if key in self._held:
            return False
        self._held.add(key)
        return True

    def release(self, key: PairKey) -> None:
        self._held.discard(key)

    def is_held(self, key: PairKey) -> bool:
        return key in self._held


class RedisJobLock:
    """Cross-process lease using ``SET NX PX`` with a random token."""

    def __init__(
        self, client: Redis, *, ttl_seconds: int = 900, prefix: str = "wotc_relay:job_lock"
    ) -> None:
        self._client = client
        self._ttl_ms = ttl_seconds * 1000
        self._prefix = prefix

    def _name(self, key: PairKey) -> str:
        employer_id, state_code = key
        return f"{self._prefix}:{employer_id}:{state_code}"

    async def try_acquire(self, key: PairKey) -> str | None:
        """Returns the lease token, or None if another holder has the pair."""
        token = secrets.token_hex(16)
        acquired = await self._client.set(self._name(key), token, nx=True, px=self._ttl_ms)
        return token if acquired else None

    async def release(self, key: PairKey, token: str) -> bool:
        released = await self._client.eval(RELEASE_SCRIPT, 1, self._name(key), token)
        return bool(released)


@dataclass(frozen=True)
class PairLease:
    """A held lease; pass back to ``PairLockManager.release``."""

    employer_id: UUID
    state_code: str
    redis_token: str | None = None

    @property
    def key(self) -> PairKey:
        return (self.employer_id, self.state_code)


class PairLockManager:
    """Combines the in-process registry with the optional Redis lease."""

    def __init__(
        self, registry: JobLockRegistry | None = None, redis_lock: RedisJobLock | None = None
    ) -> None:
        self.registry = registry or JobLockRegistry()
        self.redis_lock = redis_lock

    async def acquire(self, employer_id: UUID, state_code: str) -> PairLease | None:
        key = (employer_id, state_code)
        if not self.registry.try_acquire(key):
            return None
        if self.redis_lock is None:
            return PairLease(employer_id, state_code)

        try:
            token = await self.redis_lock.try_acquire(key)
        except Exception:
            self.registry.release(key)
            raise
        if token is None:
            self.registry.release(key)
            return None
        return PairLease(employer_id, state_code, token)

    async def release(self, lease: PairLease) -> None:
        try:
            if self.redis_lock is not None and lease.redis_token is not None:
                released = await self.redis_lock.release(lease.key, lease.redis_token)
                if not released:
                    logger.warning(
                        "redis_lease_expired_before_release",
                        employer_id=str(lease.employer_id),
                        state_code=lease.state_code,
                    )
        finally:
            self.registry.release(lease.key)

    def is_held(self, employer_id: UUID, state_code: str) -> bool:
        return self.registry.is_held((employer_id, state_code))
