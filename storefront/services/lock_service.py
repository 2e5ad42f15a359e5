# storefront/services/lock_service.py
import uuid
from contextlib import contextmanager

import redis

from storefront.domain.errors import ConflictError
from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# compare-and-delete in one Lua call, so a lock that expired and was taken
# by another request is never released by us
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    Short-lived redis locks that serialize work on one payer's wallet.
    """

    def __init__(self, url: str | None = None):
        self.redis = redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _payer_key(payer_id: str) -> str:
        return f"wallet:{payer_id}:lock"

    @redis_retry()
    def acquire_payer_lock(self, payer_id: str, token: str, ttl: int) -> bool:
        key = self._payer_key(payer_id)
        logger.info(f"Acquire lock {key}")
        # SET wallet:<id>:lock <token> NX EX <ttl>
        return bool(self.redis.set(name=key, value=token, nx=True, ex=ttl))

    @redis_retry()
    def release_payer_lock(self, payer_id: str, token: str) -> bool:
        key = self._payer_key(payer_id)
        logger.info(f"Release lock {key}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)

    @contextmanager
    def payer_lock(self, payer_id: str, ttl: int):
        token = uuid.uuid4().hex
        if not self.acquire_payer_lock(payer_id, token, ttl):
            raise ConflictError("Another wallet payment for this customer is in progress. Please retry.")
        try:
            yield
        finally:
            try:
                self.release_payer_lock(payer_id, token)
            except redis.RedisError as e:
                # the lock expires on its own after ttl
                logger.warning(f"Failed to release payer lock for {payer_id}: {e}")
