from contextlib import contextmanager
import time
import uuid

from kycflow.settings import settings
from kycflow.store.redis_conn import get_redis

_RELEASE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockTimeout(RuntimeError):
    pass


@contextmanager
def profile_lock(profile_id: str, ttl_ms: int = None, r=None, attempts: int = 5, wait_sec: float = 0.1):
    """
    Distributed lock: one writer per profile at a time.
    Spins briefly, then gives up with LockTimeout.
    """
    r = r or get_redis()
    ttl_ms = int(ttl_ms or settings.LOCK_TTL_MS)
    key = f"lock:profile:{profile_id}"
    token = uuid.uuid4().hex
    acquired = r.set(key, token, px=ttl_ms, nx=True)

    try:
        if not acquired:
            for _ in range(attempts):
                time.sleep(wait_sec)
                if r.set(key, token, px=ttl_ms, nx=True):
                    acquired = True
                    break

            if not acquired:
                raise LockTimeout(f"Could not acquire lock for profile {profile_id}")

        yield
    finally:
        if acquired:
            # Release only if we own it
            try:
                r.eval(_RELEASE, 1, key, token)
            except Exception:
                pass
