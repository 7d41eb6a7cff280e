"""
Cache invalidation signals
Automatically invalidate cached catalog and dashboard data when records change
"""
from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging
import threading
from contextlib import contextmanager

logger = logging.getLogger(__name__)

CATALOG_CACHE_PATTERN = 'catalog_products'
DASHBOARD_CACHE_PATTERN = 'dashboard_summary'

# Thread-local storage to track signal suspension
_thread_locals = threading.local()


@contextmanager
def suspend_cache_signals():
    """
    Temporarily suspend cache invalidation signals, e.g. during a bulk catalog import.
    Invalidate manually after the block.
    """
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = False


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


def _uses_redis():
    return settings.CACHES['default']['BACKEND'].startswith('django_redis')


def invalidate_cache_pattern(pattern):
    """
    Invalidate all cache keys matching a pattern.
    Redis: SCAN and delete matching keys. Other backends cannot be scanned, so they are cleared.
    """
    if not _uses_redis():
        cache.clear()
        logger.info(f"Cache invalidation requested for pattern: {pattern} - local cache cleared")
        return

    try:
        from django_redis import get_redis_connection
        redis_conn = get_redis_connection("default")

        keys = []
        cursor = 0
        while True:
            cursor, partial_keys = redis_conn.scan(cursor, match=f"*{pattern}*", count=100)
            keys.extend(partial_keys)
            if cursor == 0:
                break

        if keys:
            redis_conn.delete(*keys)
            logger.info(f"Cache invalidation requested for pattern: {pattern} - Deleted {len(keys)} keys")
        else:
            logger.info(f"Cache invalidation requested for pattern: {pattern} - No keys found")
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")


def invalidate_catalog_cache_manual():
    invalidate_cache_pattern(CATALOG_CACHE_PATTERN)


def invalidate_dashboard_cache_manual():
    invalidate_cache_pattern(DASHBOARD_CACHE_PATTERN)


# --- Signal Handlers ---

@receiver([post_save, post_delete])
def invalidate_catalog_cache(sender, instance, **kwargs):
    """Invalidate cached product listings when products or categories change"""
    if is_suspended():
        return

    if sender.__name__ in ['Product', 'Category'] and sender._meta.app_label == 'catalog':
        # After commit, so the cache is not refilled with pre-commit data
        transaction.on_commit(invalidate_catalog_cache_manual)


@receiver([post_save, post_delete])
def invalidate_dashboard_cache(sender, instance, **kwargs):
    """Invalidate dashboard figures when quotes, orders, payments or leads change"""
    if is_suspended():
        return

    if sender.__name__ in ['Quote', 'Order', 'Payment', 'Lead', 'QuoteRequest']:
        transaction.on_commit(invalidate_dashboard_cache_manual)
