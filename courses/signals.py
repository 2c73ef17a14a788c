from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from backend.cache import CacheKeys, invalidate_cache, invalidate_course_cache
from .models import Course, CourseTutor, Material, Question, Test, Topic


def _course_id_of(instance):
    if isinstance(instance, Course):
        return instance.pk
    if isinstance(instance, (CourseTutor, Topic)):
        return instance.course_id
    if isinstance(instance, (Material, Test)):
        return instance.topic.course_id
    if isinstance(instance, Question):
        return instance.test.topic.course_id
    return None


@receiver(post_save, sender=Course)
@receiver(post_delete, sender=Course)
@receiver(post_save, sender=CourseTutor)
@receiver(post_delete, sender=CourseTutor)
@receiver(post_save, sender=Topic)
@receiver(post_delete, sender=Topic)
@receiver(post_save, sender=Material)
@receiver(post_delete, sender=Material)
@receiver(post_save, sender=Test)
@receiver(post_delete, sender=Test)
@receiver(post_save, sender=Question)
@receiver(post_delete, sender=Question)
def invalidate_catalog_cache(sender, instance, **kwargs):
    """
    Any change to a course or its content drops the cached catalog pages
    and the cached detail/content of that course.
    """
    try:
        course_id = _course_id_of(instance)
    except (Topic.DoesNotExist, Test.DoesNotExist, Course.DoesNotExist):
        # Parent already removed by a cascading delete
        course_id = None
    invalidate_course_cache(course_id)
    if sender is CourseTutor:
        invalidate_cache(CacheKeys.TUTORS)
