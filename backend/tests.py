import time
from unittest import mock

from django.conf import settings
from django.test import SimpleTestCase
from rest_framework import status
from rest_framework.response import Response
from rest_framework.test import APIRequestFactory

from .cache import (
    CacheKeys, build_key, cached_response, clear_cache, get_cached_data,
    invalidate_cache, invalidate_course_cache, set_cached_data,
)


class CacheTest(SimpleTestCase):

    def setUp(self):
        clear_cache()
        self.factory = APIRequestFactory()
        self.calls = 0

    def tearDown(self):
        clear_cache()

    def test_set_and_get(self):
        set_cached_data(CacheKeys.COURSES, {'count': 3}, ttl=60)
        self.assertEqual(get_cached_data(CacheKeys.COURSES), {'count': 3})
        self.assertIsNone(get_cached_data(CacheKeys.TUTORS))

    def test_expired_entries_are_not_returned(self):
        set_cached_data(CacheKeys.COURSES, {'count': 3}, ttl=60)

        with mock.patch('time.time', return_value=time.time() + 61):
            self.assertIsNone(get_cached_data(CacheKeys.COURSES))

    def test_oldest_entries_are_culled_when_full(self):
        max_entries = settings.CACHES['api']['OPTIONS']['MAX_ENTRIES']
        for index in range(max_entries + 1):
            set_cached_data(build_key('bulk', index), index, ttl=60)

        self.assertIsNone(get_cached_data(build_key('bulk', 0)))
        self.assertEqual(get_cached_data(build_key('bulk', max_entries)), max_entries)

    def test_invalidating_a_course_keeps_other_courses(self):
        set_cached_data(CacheKeys.course_detail('a'), {'title': 'Maths'})
        set_cached_data(CacheKeys.course_content('a'), {'topics': []})
        set_cached_data(CacheKeys.course_detail('b'), {'title': 'Physics'})
        set_cached_data(CacheKeys.COURSES, {'count': 2})

        invalidate_course_cache('a')

        self.assertIsNone(get_cached_data(CacheKeys.course_detail('a')))
        self.assertIsNone(get_cached_data(CacheKeys.course_content('a')))
        self.assertIsNone(get_cached_data(CacheKeys.COURSES))
        self.assertEqual(get_cached_data(CacheKeys.course_detail('b')), {'title': 'Physics'})

    def cached_view(self, key_func, status_code=status.HTTP_200_OK, during_build=None):
        @cached_response(key_func, ttl=60)
        def view(request):
            self.calls += 1
            if during_build:
                during_build()
            return Response({'call': self.calls}, status=status_code)
        return view

    def test_cached_response_hit_and_miss(self):
        view = self.cached_view(lambda request: CacheKeys.COURSES)

        first = view(self.factory.get('/api/courses/'))
        second = view(self.factory.get('/api/courses/'))

        self.assertEqual(first['X-Cache'], 'MISS')
        self.assertEqual(second['X-Cache'], 'HIT')
        self.assertEqual(second.data, {'call': 1})
        self.assertEqual(self.calls, 1)

    def test_key_func_returning_none_bypasses_cache(self):
        view = self.cached_view(lambda request: None)

        view(self.factory.get('/api/courses/'))
        response = view(self.factory.get('/api/courses/'))

        self.assertEqual(self.calls, 2)
        self.assertNotIn('X-Cache', response)

    def test_error_responses_are_not_cached(self):
        view = self.cached_view(lambda request: CacheKeys.course_detail('gone'), status.HTTP_404_NOT_FOUND)

        view(self.factory.get('/api/courses/gone/'))
        response = view(self.factory.get('/api/courses/gone/'))

        self.assertEqual(self.calls, 2)
        self.assertEqual(response['X-Cache'], 'MISS')
        self.assertIsNone(get_cached_data(CacheKeys.course_detail('gone')))

    def test_invalidation_while_building_is_not_overwritten(self):
        view = self.cached_view(
            lambda request: CacheKeys.COURSES,
            during_build=lambda: invalidate_cache(CacheKeys.COURSES),
        )

        view(self.factory.get('/api/courses/'))

        self.assertIsNone(get_cached_data(CacheKeys.COURSES))
        response = view(self.factory.get('/api/courses/'))
        self.assertEqual(response['X-Cache'], 'MISS')
        self.assertEqual(self.calls, 2)
