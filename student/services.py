"""
Student-side course work: material progress and test taking.
"""
import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from backend.cache import CacheKeys, delete_cached_data
from backend.exceptions import AlreadySubmitted, NotEnrolled
from courses.grading import percentage
from courses.models import TestSubmission
from .models import CourseEnrollment, MaterialProgress

logger = logging.getLogger(__name__)

ACCESS_STATUSES = ('ACTIVE', 'COMPLETED')


def get_enrollment(user, course_id):
    """The caller's enrollment giving access to a course, or NotEnrolled."""
    enrollment = CourseEnrollment.objects.filter(
        student=user, course_id=course_id, status__in=ACCESS_STATUSES
    ).first()
    if enrollment is None:
        raise NotEnrolled()
    return enrollment


def record_material_progress(user, material, status=None, time_spent=0):
    """
    Upsert the caller's progress on a material. ``time_spent`` seconds are
    added to the stored total. A completed material stays completed.
    """
    course_id = material.topic.course_id
    enrollment = CourseEnrollment.objects.filter(student=user, course_id=course_id, status='ACTIVE').first()
    if enrollment is None:
        raise NotEnrolled()

    with transaction.atomic():
        progress, _ = MaterialProgress.objects.select_for_update().get_or_create(
            material=material, student=user
        )
        progress.time_spent += max(int(time_spent or 0), 0)
        progress.last_accessed = timezone.now()

        if progress.status != 'COMPLETED':
            if status == 'COMPLETED':
                progress.status = 'COMPLETED'
                progress.completed_at = timezone.now()
            else:
                progress.status = status or 'IN_PROGRESS'
        progress.save()

        enrollment.update_progress()

    delete_cached_data(CacheKeys.course_progress(course_id, user.id))
    return progress, enrollment


def grade_answers(questions, answers):
    """
    Score answers given as ``{question_id: answer}``.

    Returns (results, score, max_score) where results holds one entry per
    question with the correctness and explanation.
    """
    results = []
    score = 0
    max_score = 0
    for question in questions:
        given = answers.get(str(question.id))
        correct = question.check_answer(given)
        earned = question.points if correct else 0
        score += earned
        max_score += question.points
        results.append({
            'question_id': str(question.id),
            'question': question.question,
            'type': question.type,
            'answer': given,
            'correct_answer': question.correct_answer,
            'is_correct': correct,
            'points': question.points,
            'points_earned': earned,
            'explanation': question.explanation,
        })
    return results, score, max_score


def submit_test(user, test, answers, time_spent=0):
    """
    Grade and store the caller's only submission for a test.

    Raises NotEnrolled when the caller has no access to the course and
    AlreadySubmitted on a second submission.
    """
    enrollment = get_enrollment(user, test.topic.course_id)

    if TestSubmission.objects.filter(test=test, student=user).exists():
        raise AlreadySubmitted('You have already submitted this test')

    results, score, max_score = grade_answers(test.questions.all(), answers or {})
    result_percentage = percentage(score, max_score)

    try:
        with transaction.atomic():
            submission = TestSubmission.objects.create(
                test=test,
                student=user,
                answers=results,
                score=score,
                max_score=max_score,
                percentage=result_percentage,
                passed=result_percentage >= test.passing_score,
                time_spent=max(int(time_spent or 0), 0),
            )
    except IntegrityError:
        raise AlreadySubmitted('You have already submitted this test')

    if enrollment.is_active:
        enrollment.update_progress()
    delete_cached_data(CacheKeys.course_progress(test.topic.course_id, user.id))

    logger.info(f"{user.email} submitted test '{test.title}': {score}/{max_score} ({result_percentage}%)")
    return submission


def course_progress(user, course):
    """
    Completed materials and tests of a course with a per-topic breakdown.
    Only published items count.
    """
    completed_material_ids = set(
        MaterialProgress.objects.filter(
            student=user, material__topic__course=course, status='COMPLETED'
        ).values_list('material_id', flat=True)
    )
    submissions = {
        submission.test_id: submission
        for submission in TestSubmission.objects.filter(student=user, test__topic__course=course)
    }

    topics = []
    total_items = 0
    completed_items = 0
    materials_done = 0
    tests_done = 0
    for topic in course.topics.prefetch_related('materials', 'tests'):
        materials = [m for m in topic.materials.all() if m.is_published]
        tests = [t for t in topic.tests.all() if t.is_published]
        done_materials = [m for m in materials if m.id in completed_material_ids]
        done_tests = [t for t in tests if t.id in submissions]

        topic_total = len(materials) + len(tests)
        topic_done = len(done_materials) + len(done_tests)
        total_items += topic_total
        completed_items += topic_done
        materials_done += len(done_materials)
        tests_done += len(done_tests)

        topics.append({
            'topic_id': str(topic.id),
            'title': topic.title,
            'materials_total': len(materials),
            'materials_completed': len(done_materials),
            'tests_total': len(tests),
            'tests_completed': len(done_tests),
            'percentage': percentage(topic_done, topic_total),
            'completed_material_ids': [str(m.id) for m in done_materials],
            'test_results': [
                {
                    'test_id': str(t.id),
                    'percentage': submissions[t.id].percentage,
                    'passed': submissions[t.id].passed,
                }
                for t in done_tests
            ],
        })

    return {
        'course_id': str(course.id),
        'completed_materials': materials_done,
        'completed_tests': tests_done,
        'total_items': total_items,
        'completed_items': completed_items,
        'percentage': percentage(completed_items, total_items),
        'topics': topics,
    }
