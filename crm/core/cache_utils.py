"""
Caching helpers shared by the apps.
Uses Redis through django-redis when it is configured.
"""
from django.conf import settings
from django.core.cache import cache
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
PERMISSIONS_CACHE_TTL = 300  # 5 minutes


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def uses_redis():
    backend = settings.CACHES.get('default', {}).get('BACKEND', '')
    return backend.startswith('django_redis')


def get_namespace_version(namespace):
    """Current version of a cache namespace, bumped on invalidation"""
    version_key = f"{namespace}:version"
    version = cache.get(version_key)
    if version is None:
        cache.add(version_key, 1, None)
        version = cache.get(version_key) or 1
    return version


def make_namespaced_key(namespace, *args, **kwargs):
    version = get_namespace_version(namespace)
    return make_cache_key(f"{namespace}:v{version}", *args, **kwargs)


def invalidate_cache_pattern(pattern):
    """
    Invalidate all cache keys matching a pattern
    Note: This requires Redis with SCAN command support
    """
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
            logger.info(f"Invalidated {len(keys)} cache keys matching pattern: {pattern}")
        return len(keys)
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")
        return 0


def invalidate_namespace(namespace):
    """Drop every entry of a namespace"""
    version_key = f"{namespace}:version"
    try:
        cache.incr(version_key)
    except ValueError:
        cache.set(version_key, 2, None)
    if uses_redis():
        invalidate_cache_pattern(f"{namespace}:v")
    logger.debug(f"Invalidated cache namespace: {namespace}")
