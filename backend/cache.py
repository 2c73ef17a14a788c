"""
In-memory TTL cache for API responses.

Entries live in the ``api`` cache alias (a bounded LocMemCache, see
CACHES in settings). Every key belongs to a namespace: the part before the
first ``|``. Invalidating a namespace bumps its generation counter, which
makes every key stored under the previous generation unreachable; those
stale entries then age out through their TTL or get culled when the cache
is full.
"""
import logging
import threading
from functools import wraps

from django.core.cache import caches
from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)

API_CACHE_ALIAS = 'api'
KEY_SEPARATOR = '|'

_generations = {}
_generations_lock = threading.Lock()


class CacheKeys:
    COURSES = 'courses'
    TUTORS = 'tutors'

    @staticmethod
    def course_namespace(course_id):
        return f'course-{course_id}'

    @staticmethod
    def course_detail(course_id):
        return build_key(CacheKeys.course_namespace(course_id), 'detail')

    @staticmethod
    def course_content(course_id):
        return build_key(CacheKeys.course_namespace(course_id), 'content')

    @staticmethod
    def course_progress(course_id, user_id):
        return build_key(CacheKeys.course_namespace(course_id), 'progress', user_id)

    @staticmethod
    def user_profile(user_id):
        return build_key(f'user-{user_id}', 'profile')


# TTL values in seconds
CACHE_TTL = {
    'COURSES': 10 * 60,
    'COURSE_DETAIL': 15 * 60,
    'COURSE_CONTENT': 30 * 60,
    'COURSE_PROGRESS': 5 * 60,
    'TUTORS': 60 * 60,
    'USER_PROFILE': 30 * 60,
}
DEFAULT_TTL = 5 * 60


def get_api_cache():
    return caches[API_CACHE_ALIAS]


def build_key(namespace, *parts):
    return KEY_SEPARATOR.join([str(namespace), *(str(part) for part in parts)])


def _namespace_of(key):
    return key.split(KEY_SEPARATOR, 1)[0]


def _generation(namespace):
    with _generations_lock:
        return _generations.get(namespace, 0)


def _storage_key(key):
    namespace = _namespace_of(key)
    return f"{namespace}:g{_generation(namespace)}{KEY_SEPARATOR}{key}"


def get_cached_data(key):
    """Return the cached value for ``key`` or None when missing or expired."""
    return get_api_cache().get(_storage_key(key))


def _timeout(ttl):
    return ttl if ttl is not None else DEFAULT_TTL


def set_cached_data(key, data, ttl=None):
    get_api_cache().set(_storage_key(key), data, timeout=_timeout(ttl))


def delete_cached_data(key):
    get_api_cache().delete(_storage_key(key))


def invalidate_cache(namespace):
    """Drop every entry stored under ``namespace``."""
    with _generations_lock:
        _generations[namespace] = _generations.get(namespace, 0) + 1
    logger.debug(f"Invalidated cache namespace '{namespace}'")


def invalidate_course_cache(course_id=None):
    """Drop the catalog listings and, when given, one course's entries."""
    invalidate_cache(CacheKeys.COURSES)
    if course_id is not None:
        invalidate_cache(CacheKeys.course_namespace(course_id))


def clear_cache():
    get_api_cache().clear()
    with _generations_lock:
        _generations.clear()


def cached_response(key_func, ttl=None):
    """
    Memoise successful responses of a DRF function view.

    ``key_func(request, *args, **kwargs)`` returns the cache key, or None to
    bypass the cache for that request.
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if request.method != 'GET':
                return view_func(request, *args, **kwargs)

            key = key_func(request, *args, **kwargs)
            if key is None:
                return view_func(request, *args, **kwargs)

            # A response built across an invalidation stays under the old generation
            storage_key = _storage_key(key)
            api_cache = get_api_cache()
            cached = api_cache.get(storage_key)
            if cached is not None:
                response = Response(cached, status=status.HTTP_200_OK)
                response['X-Cache'] = 'HIT'
                return response

            response = view_func(request, *args, **kwargs)
            if response.status_code == status.HTTP_200_OK:
                api_cache.set(storage_key, response.data, timeout=_timeout(ttl))
            response['X-Cache'] = 'MISS'
            return response
        return wrapper
    return decorator
