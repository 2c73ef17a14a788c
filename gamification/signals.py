from django.db.models.signals import post_save
from django.dispatch import receiver

from courses.models import TestSubmission
from student.models import CourseEnrollment, MaterialProgress
from . import services


@receiver(post_save, sender=MaterialProgress)
def material_progress_saved(sender, instance, raw=False, **kwargs):
    if raw:
        return
    services.record_activity(instance.student)
    services.award_material_completion(instance)


@receiver(post_save, sender=TestSubmission)
def test_submitted(sender, instance, created, raw=False, **kwargs):
    if raw or not created:
        return
    services.record_activity(instance.student)
    services.award_test_result(instance)


@receiver(post_save, sender=CourseEnrollment)
def enrollment_completed(sender, instance, raw=False, update_fields=None, **kwargs):
    if raw or (update_fields is not None and 'status' not in update_fields):
        return
    services.award_course_completion(instance)
