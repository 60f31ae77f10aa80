"""Bounded retry for operations that lose a lock or version race."""

import functools
import logging

from django.db import OperationalError, transaction

from .exceptions import ConcurrentModification
from .runtime import shop_setting

logger = logging.getLogger("shop.concurrency")


def retry_on_conflict(func=None, *, attempts: int | None = None):
    """Retry ``func`` on ``ConcurrentModification`` or a database lock error.

    Retries only at the outermost transaction level: inside an enclosing
    ``atomic`` block the transaction is already unusable, so the conflict is
    surfaced immediately for the caller to retry the whole operation.
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            limit = attempts or int(shop_setting("CONCURRENCY_RETRIES"))
            limit = max(1, limit)
            last_exc = None
            for attempt in range(1, limit + 1):
                try:
                    return fn(*args, **kwargs)
                except (ConcurrentModification, OperationalError) as exc:
                    last_exc = exc
                    if transaction.get_connection().in_atomic_block:
                        break
                    logger.warning(
                        "concurrency.retry",
                        extra={
                            "event": "concurrency.retry",
                            "operation": fn.__qualname__,
                            "attempt": attempt,
                            "error": str(exc),
                        },
                    )
            if isinstance(last_exc, ConcurrentModification):
                raise last_exc
            raise ConcurrentModification(
                f"{fn.__qualname__} failed after conflicting writes", operation=fn.__qualname__
            ) from last_exc

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
