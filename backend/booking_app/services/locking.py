"""
Per-resource mutual exclusion for the booking commit step.
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from django.core.cache import caches

from ..conf import schedule_setting
from ..exceptions import ConcurrencyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockToken:
    keys: Tuple[str, ...]
    value: str
    acquired_at: float = 0.0


def resource_keys(room_id=None, instructor_id=None) -> Tuple[str, ...]:
    """Lock keys for a room/instructor pair, sorted so every caller claims them in the same order"""
    keys = set()
    if room_id is not None:
        keys.add(f'room:{room_id}')
    if instructor_id is not None:
        keys.add(f'instructor:{instructor_id}')
    return tuple(sorted(keys))


class ResourceLock(ABC):
    """Lock over a set of resource keys with a bounded wait"""

    @abstractmethod
    def acquire(self, keys: Iterable[str], timeout: Optional[float] = None) -> LockToken:
        """Claim every key or raise ConcurrencyError once timeout elapses"""

    @abstractmethod
    def release(self, token: LockToken) -> None:
        """Give back keys still held by this token"""

    @contextmanager
    def hold(self, keys: Iterable[str], timeout: Optional[float] = None):
        token = self.acquire(keys, timeout)
        try:
            yield token
        finally:
            self.release(token)


class CacheResourceLock(ResourceLock):
    """
    Lock built on Django's cache framework. Each key is claimed with an
    atomic cache.add; a TTL frees keys left behind by a crashed holder.
    Shares state across processes only when the cache backend does.

    Release is a get followed by a delete, which the cache API cannot do
    atomically. If a holder outlives the TTL its key can expire, be claimed
    by another caller and then be deleted by the late release. LOCK_TTL_SECONDS
    must stay well above the longest commit; release logs a
    warning when a token was held past the TTL.
    """

    prefix = 'booking-lock:'

    def __init__(self, cache=None, timeout: Optional[float] = None, ttl: Optional[int] = None,
                 poll_interval: Optional[float] = None):
        self.cache = cache if cache is not None else caches[schedule_setting('LOCK_CACHE_ALIAS')]
        self.timeout = schedule_setting('LOCK_TIMEOUT_SECONDS') if timeout is None else timeout
        self.ttl = schedule_setting('LOCK_TTL_SECONDS') if ttl is None else ttl
        self.poll_interval = schedule_setting('LOCK_POLL_SECONDS') if poll_interval is None else poll_interval

    def acquire(self, keys, timeout=None):
        keys = tuple(sorted(set(keys)))
        timeout = self.timeout if timeout is None else timeout
        value = uuid.uuid4().hex
        deadline = time.monotonic() + timeout

        while True:
            if self._try_claim(keys, value):
                logger.debug('Acquired booking lock on %s', ', '.join(keys))
                return LockToken(keys=keys, value=value, acquired_at=time.monotonic())
            if time.monotonic() >= deadline:
                raise ConcurrencyError(
                    f'Timed out after {timeout}s waiting for {", ".join(keys)}; try again',
                    field='resources',
                )
            time.sleep(self.poll_interval)

    def release(self, token):
        held = time.monotonic() - token.acquired_at
        if token.acquired_at and held >= self.ttl:
            logger.warning(
                'Booking lock on %s held %.1fs, past its %ss TTL; another caller may have claimed it',
                ', '.join(token.keys), held, self.ttl,
            )
        self._release_keys(token.keys, token.value)
        logger.debug('Released booking lock on %s', ', '.join(token.keys))

    def _try_claim(self, keys, value):
        claimed = []
        for key in keys:
            if not self.cache.add(self.prefix + key, value, timeout=self.ttl):
                self._release_keys(claimed, value)
                return False
            claimed.append(key)
        return True

    def _release_keys(self, keys, value):
        for key in keys:
            cache_key = self.prefix + key
            if self.cache.get(cache_key) == value:
                self.cache.delete(cache_key)
