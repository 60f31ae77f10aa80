"""Expiry sweeper: periodic cleanup of lapsed reservations and idle carts.

One sweep runs at a time. The guard is an atomic ``cache.add`` on a lock
key, so with a shared cache backend (Redis) overlapping runs on different
hosts are skipped as well. Each run stores its own token as the lock value
and only deletes the key while it still holds that token, so a run that
outlived its lock timeout never releases the lock of the run after it.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from uuid import uuid4

from cart.models import Cart
from cart.selectors import expirable_carts, idle_carts, purgeable_carts
from cart.services import CartService
from common.exceptions import ShopError
from common.runtime import resolve_clock, resolve_config
from django.core.cache import DEFAULT_CACHE_ALIAS, cache, caches
from django.core.cache.backends.redis import RedisCache
from django.db import DatabaseError, transaction
from inventory.reservations import ReservationEngine

logger = logging.getLogger("shop.sweeper")

LOCK_KEY = "shop:sweeper:lock"

# Compare-and-delete in one round trip
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def release_lock(token: str) -> bool:
    """Delete the sweeper lock only when it still holds ``token``."""
    backend = caches[DEFAULT_CACHE_ALIAS]
    if isinstance(backend, RedisCache):
        key = backend.make_and_validate_key(LOCK_KEY)
        client = backend._cache.get_client(key, write=True)
        return bool(client.eval(_RELEASE_SCRIPT, 1, key, backend._cache._serializer.dumps(token)))
    if backend.get(LOCK_KEY) != token:
        return False
    backend.delete(LOCK_KEY)
    return True


@dataclass
class SweepResult:
    reservations_expired: int = 0
    carts_abandoned: int = 0
    carts_expired: int = 0
    carts_deleted: int = 0
    errors: int = 0
    skipped: bool = False

    def as_dict(self) -> dict:
        return {
            "reservations_expired": self.reservations_expired,
            "carts_abandoned": self.carts_abandoned,
            "carts_expired": self.carts_expired,
            "carts_deleted": self.carts_deleted,
            "errors": self.errors,
            "skipped": self.skipped,
        }


class ExpirySweeper:
    def __init__(self, engine: ReservationEngine | None = None, carts: CartService | None = None, *, clock=None, config=None):
        self.clock = resolve_clock(clock)
        self.config = resolve_config(config)
        self.engine = engine or ReservationEngine(clock=self.clock, config=self.config)
        self.carts = carts or CartService(self.engine, clock=self.clock, config=self.config)

    @contextmanager
    def lock(self):
        """Hold the sweeper lock for the block; yields False when another run holds it."""
        token = uuid4().hex
        timeout = int(self.config("SWEEP_LOCK_TIMEOUT_SECONDS", 300))
        if not cache.add(LOCK_KEY, token, timeout):
            logger.info("sweeper.skipped", extra={"event": "sweeper.skipped", "reason": "locked"})
            yield False
            return
        try:
            yield True
        finally:
            if not release_lock(token):
                logger.warning("sweeper.lock_lost", extra={"event": "sweeper.lock_lost", "timeout": timeout})

    def sweep(self, now=None, *, dry_run: bool = False) -> SweepResult:
        """Run every cleanup step once; skipped when another sweep holds the lock."""
        now = now or self.clock()
        with self.lock() as acquired:
            if not acquired:
                return SweepResult(skipped=True)
            result = SweepResult()
            if not dry_run:
                result.reservations_expired = self.engine.expire_due(now)
            self.abandon_idle(now, result, dry_run=dry_run)
            self.expire_stale(now, result, dry_run=dry_run)
            self.delete_retained(now, result, dry_run=dry_run)
        logger.info("sweeper.completed", extra={"event": "sweeper.completed", "dry_run": dry_run, **result.as_dict()})
        return result

    def _each(self, queryset, action, result: SweepResult, counter: str, *, dry_run: bool) -> None:
        for cart_id in list(queryset.values_list("id", flat=True)):
            if dry_run:
                setattr(result, counter, getattr(result, counter) + 1)
                continue
            try:
                done = action(cart_id)
            except (ShopError, DatabaseError):
                result.errors += 1
                logger.exception(
                    "sweeper.cart_failed",
                    extra={"event": "sweeper.cart_failed", "cart_id": cart_id, "step": counter},
                )
                continue
            if done:
                setattr(result, counter, getattr(result, counter) + 1)

    def abandon_idle(self, now, result: SweepResult, *, dry_run: bool = False) -> None:
        minutes = int(self.config("CART_ABANDON_AFTER_MINUTES", 60))
        self._each(
            idle_carts(now=now, minutes=minutes),
            lambda cart_id: self.carts.abandon(cart_id, now),
            result,
            "carts_abandoned",
            dry_run=dry_run,
        )

    def expire_stale(self, now, result: SweepResult, *, dry_run: bool = False) -> None:
        minutes = int(self.config("CART_EXPIRE_AFTER_MINUTES", 1440))
        self._each(
            expirable_carts(now=now, minutes=minutes),
            lambda cart_id: self.carts.expire(cart_id, now),
            result,
            "carts_expired",
            dry_run=dry_run,
        )

    def delete_retained(self, now, result: SweepResult, *, dry_run: bool = False) -> None:
        days = int(self.config("CART_RETENTION_DAYS", 30))
        self._each(
            purgeable_carts(now=now, days=days),
            lambda cart_id: self._delete_cart(cart_id),
            result,
            "carts_deleted",
            dry_run=dry_run,
        )

    @staticmethod
    def _delete_cart(cart_id) -> bool:
        with transaction.atomic():
            deleted, _ = Cart.objects.filter(
                pk=cart_id, status__in=[Cart.STATUS_EXPIRED, Cart.STATUS_ABANDONED]
            ).delete()
        return bool(deleted)
