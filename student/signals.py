from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from backend.cache import invalidate_course_cache
from .models import CourseEnrollment


@receiver(post_save, sender=CourseEnrollment)
@receiver(post_delete, sender=CourseEnrollment)
def refresh_course_counts(sender, instance, update_fields=None, **kwargs):
    """Cached catalog entries show enrolled counts and seats left."""
    if update_fields is not None and 'status' not in update_fields:
        return
    invalidate_course_cache(instance.course_id)
