from datetime import date, datetime, time, timedelta

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from backend.exceptions import AlreadySubmitted, ChallengeClosed
from courses.models import Material
from student import services as student_services
from student.models import MaterialProgress
from student.tests import CourseFixtureMixin
from . import services
from .models import Badge, Challenge, ChallengeSubmission, PointTransaction, UserBadge, UserPoints
from .streaks import analyze_study_streak, streak_leaderboard

User = get_user_model()

TODAY = date(2024, 3, 13)  # a Wednesday

QUIZ = {
    'questions': [
        {'id': 'q1', 'question': 'Next in 1, 1, 2, 3, 5?', 'type': 'multiple-choice',
         'options': ['7', '8', '9'], 'correct_answer': '8'},
        {'id': 'q2', 'question': 'Zero is even', 'type': 'true-false', 'correct_answer': 'true'},
        {'id': 'q3', 'question': 'Capital of Kazakhstan', 'type': 'short-answer', 'correct_answer': 'Astana'},
    ],
    'total_points': 100,
    'passing_score': 70,
}


def days_ago(*offsets):
    return {TODAY - timedelta(days=offset) for offset in offsets}


class StudyStreakAnalysisTest(SimpleTestCase):

    def test_no_activity(self):
        result = analyze_study_streak(set(), TODAY)
        self.assertEqual(result['current_streak'], 0)
        self.assertEqual(result['longest_streak'], 0)
        self.assertEqual(result['total_days'], 0)
        self.assertIsNone(result['last_activity_date'])
        self.assertEqual(result['next_milestone']['days'], 3)
        self.assertEqual(result['next_milestone']['days_remaining'], 3)

    def test_current_streak_counts_back_from_today(self):
        result = analyze_study_streak(days_ago(0, 1, 2, 5), TODAY)
        self.assertEqual(result['current_streak'], 3)
        self.assertTrue(result['studied_today'])

    def test_streak_survives_until_end_of_next_day(self):
        result = analyze_study_streak(days_ago(1, 2, 3, 4), TODAY)
        self.assertEqual(result['current_streak'], 4)
        self.assertFalse(result['studied_today'])

    def test_gap_of_two_days_breaks_streak(self):
        result = analyze_study_streak(days_ago(2, 3, 4), TODAY)
        self.assertEqual(result['current_streak'], 0)
        self.assertEqual(result['longest_streak'], 3)

    def test_longest_streak_and_window_counts(self):
        activity = days_ago(0, 1) | days_ago(*range(10, 18)) | days_ago(40)
        result = analyze_study_streak(activity, TODAY)

        self.assertEqual(result['current_streak'], 2)
        self.assertEqual(result['longest_streak'], 8)
        self.assertEqual(result['this_week'], 2)
        self.assertEqual(result['this_month'], 10)
        self.assertEqual(result['total_days'], 11)

    def test_milestones(self):
        result = analyze_study_streak(days_ago(*range(0, 8)), TODAY)

        self.assertEqual([m['name'] for m in result['milestones']], ['Getting Started', 'Week Warrior'])
        self.assertEqual(result['next_milestone']['name'], 'Two Week Champion')
        self.assertEqual(result['next_milestone']['days_remaining'], 6)

    def test_no_next_milestone_after_century(self):
        result = analyze_study_streak(days_ago(*range(0, 100)), TODAY)
        self.assertIsNone(result['next_milestone'])
        self.assertEqual(result['milestones'][-1]['icon'], '💎')

    def test_last_seven_days_grid(self):
        grid = analyze_study_streak(days_ago(0, 3), TODAY)['last_7_days']

        self.assertEqual(len(grid), 7)
        self.assertEqual(grid[0]['date'], '2024-03-07')
        self.assertEqual(grid[-1], {'date': '2024-03-13', 'day': 'Wed', 'has_activity': True, 'is_today': True})
        self.assertTrue(grid[3]['has_activity'])
        self.assertFalse(grid[4]['has_activity'])

    def test_future_dates_ignored(self):
        result = analyze_study_streak({TODAY + timedelta(days=1)}, TODAY)
        self.assertEqual(result['total_days'], 0)


class PointsServiceTest(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(email='aruzhan@test.com', first_name='Aruzhan')

    def test_award_points_updates_balance_and_level(self):
        services.award_points(self.user, 600, 'MANUAL', 'Olympiad prize')
        _, user_points = services.award_points(self.user, 500, 'MANUAL', 'Second prize')

        self.assertEqual(user_points.points, 1100)
        self.assertEqual(user_points.experience, 1100)
        self.assertEqual(user_points.level, 2)
        self.assertEqual(PointTransaction.objects.filter(user=self.user).count(), 2)

    def test_deduction_still_adds_experience(self):
        services.award_points(self.user, 100, 'MANUAL', 'Bonus')
        _, user_points = services.award_points(self.user, -40, 'MANUAL', 'Correction')

        self.assertEqual(user_points.points, 60)
        self.assertEqual(user_points.experience, 140)

    def test_record_activity_same_day_is_noop(self):
        services.record_activity(self.user, TODAY)
        user_points, bonus = services.record_activity(self.user, TODAY)

        self.assertEqual(user_points.streak, 1)
        self.assertEqual(bonus, 0)

    def test_record_activity_next_day_gives_bonus(self):
        services.record_activity(self.user, TODAY)
        user_points, bonus = services.record_activity(self.user, TODAY + timedelta(days=1))

        self.assertEqual(user_points.streak, 2)
        self.assertEqual(bonus, 20)
        self.assertEqual(services.get_user_points(self.user).points, 20)

    def test_streak_bonus_is_capped(self):
        UserPoints.objects.create(user=self.user, streak=14, longest_streak=14, last_activity_date=TODAY)
        user_points, bonus = services.record_activity(self.user, TODAY + timedelta(days=1))

        self.assertEqual(user_points.streak, 15)
        self.assertEqual(bonus, 100)

    def test_gap_resets_streak(self):
        UserPoints.objects.create(user=self.user, streak=5, longest_streak=5, last_activity_date=TODAY)
        user_points, bonus = services.record_activity(self.user, TODAY + timedelta(days=3))

        self.assertEqual(user_points.streak, 1)
        self.assertEqual(user_points.longest_streak, 5)
        self.assertEqual(bonus, 0)

    def test_badges_awarded_once_with_reward(self):
        badge = Badge.objects.create(
            name='Point Collector', criteria={'type': 'points', 'value': 100, 'condition': 'gte'}, points_reward=50
        )
        services.award_points(self.user, 120, 'MANUAL', 'Bonus')
        services.award_points(self.user, 10, 'MANUAL', 'Bonus')

        self.assertEqual(UserBadge.objects.filter(user=self.user, badge=badge).count(), 1)
        self.assertEqual(services.get_user_points(self.user).points, 180)
        self.assertTrue(services.has_award(self.user, 'BADGE_EARNED', badge_id=str(badge.id)))

    def test_badge_reward_can_unlock_next_badge(self):
        Badge.objects.create(name='First steps', criteria={'type': 'points', 'value': 10}, points_reward=100)
        Badge.objects.create(name='Hundred club', criteria={'type': 'points', 'value': 100})

        services.award_points(self.user, 10, 'MANUAL', 'Bonus')

        self.assertEqual(UserBadge.objects.filter(user=self.user).count(), 2)

    def test_inactive_and_lte_badges(self):
        Badge.objects.create(name='Hidden', criteria={'type': 'points', 'value': 1}, is_active=False)
        Badge.objects.create(name='Humble', criteria={'type': 'points', 'value': 5, 'condition': 'lte'})

        earned = services.check_badges(self.user)

        self.assertEqual([badge.name for badge in earned], ['Humble'])


class AutomaticAwardsTest(CourseFixtureMixin, TestCase):

    def setUp(self):
        self.create_course()
        self.student = User.objects.create_user(email='student@test.com')
        self.enrollment = self.enroll(self.student)

    def category_total(self, category):
        return sum(PointTransaction.objects.filter(user=self.student, category=category).values_list('points', flat=True))

    def test_material_completion_awarded_once(self):
        student_services.record_material_progress(self.student, self.material1, status='IN_PROGRESS')
        self.assertEqual(self.category_total('MATERIAL_COMPLETION'), 0)

        student_services.record_material_progress(self.student, self.material1, status='COMPLETED')
        student_services.record_material_progress(self.student, self.material1, status='COMPLETED', time_spent=10)

        self.assertEqual(self.category_total('MATERIAL_COMPLETION'), 10)
        self.assertEqual(services.get_user_points(self.student).streak, 1)

    def test_passed_test_awards_half_the_percentage(self):
        student_services.submit_test(self.student, self.test, {str(self.q1.id): '16', str(self.q2.id): 'true'})
        self.assertEqual(self.category_total('TEST_COMPLETION'), 37)

    def test_failed_test_awards_nothing(self):
        student_services.submit_test(self.student, self.test, {str(self.q3.id): 'eleven'})
        self.assertEqual(self.category_total('TEST_COMPLETION'), 0)

    def test_perfect_score_and_course_completion(self):
        for material in (self.material1, self.material2, self.material3):
            student_services.record_material_progress(self.student, material, status='COMPLETED')
        student_services.submit_test(self.student, self.test, {
            str(self.q1.id): '16', str(self.q2.id): 'true', str(self.q3.id): 'Eleven',
        })

        self.assertEqual(self.category_total('MATERIAL_COMPLETION'), 30)
        self.assertEqual(self.category_total('TEST_COMPLETION'), 75)
        self.assertEqual(self.category_total('COURSE_COMPLETION'), 200)
        self.assertEqual(services.get_user_points(self.student).points, 305)

    def test_perfect_score_badge(self):
        Badge.objects.create(name='Flawless', criteria={'type': 'perfect_scores', 'value': 1})
        student_services.submit_test(self.student, self.test, {
            str(self.q1.id): '16', str(self.q2.id): 'true', str(self.q3.id): 'eleven',
        })
        self.assertTrue(UserBadge.objects.filter(user=self.student, badge__name='Flawless').exists())


class ChallengeServiceTest(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(email='student@test.com')
        now = timezone.now()
        self.challenge = Challenge.objects.create(
            name='Logic sprint',
            type='QUIZ',
            start_date=now - timedelta(days=1),
            end_date=now + timedelta(days=6),
            has_quiz=True,
            quiz=QUIZ,
            rewards={'points': 150},
        )

    def test_quiz_scoring(self):
        correct, total, score = services.score_quiz(QUIZ, {'q1': '8', 'q2': 'True', 'q3': 'astana city'})
        self.assertEqual((correct, total, score), (3, 3, 100))

        correct, total, score = services.score_quiz(QUIZ, {'q1': '7', 'q2': 'true', 'q3': 'Astana'})
        self.assertEqual((correct, total, score), (2, 3, 67))

    def test_half_point_score_rounds_up(self):
        quiz = {
            'questions': [
                {'id': f't{i}', 'question': f'Statement {i}', 'type': 'TRUE_FALSE', 'correct_answer': 'true'}
                for i in range(8)
            ],
            'total_points': 100,
            'passing_score': 63,
        }
        answers = {f't{i}': 'true' if i < 5 else 'false' for i in range(8)}
        self.assertEqual(services.score_quiz(quiz, answers), (5, 8, 63))

        self.challenge.quiz = quiz
        self.challenge.save()
        submission, correct, total = services.submit_challenge_quiz(self.challenge, self.user, answers)
        self.assertEqual(submission.score, 63)
        self.assertTrue(submission.passed)

    def test_answers_by_position(self):
        self.assertEqual(services.score_quiz(QUIZ, ['8', 'false', ''])[0], 1)

    def test_passed_quiz_awards_reward_points(self):
        submission, correct, total = services.submit_challenge_quiz(
            self.challenge, self.user, {'q1': '8', 'q2': 'true', 'q3': 'Astana'}
        )
        self.assertTrue(submission.passed)
        self.assertEqual(services.get_user_points(self.user).points, 150)

    def test_failed_quiz_awards_nothing(self):
        submission, _, _ = services.submit_challenge_quiz(self.challenge, self.user, {'q1': '7', 'q2': 'true'})
        self.assertFalse(submission.passed)
        self.assertEqual(submission.score, 33)
        self.assertFalse(PointTransaction.objects.filter(user=self.user).exists())

    def test_reward_badges(self):
        badge = Badge.objects.create(name='Sprinter', criteria={'type': 'points', 'value': 100000})
        self.challenge.rewards = {'points': 0, 'badges': [str(badge.id)]}
        self.challenge.save()

        services.submit_challenge_quiz(self.challenge, self.user, {'q1': '8', 'q2': 'true', 'q3': 'Astana'})

        self.assertTrue(UserBadge.objects.filter(user=self.user, badge=badge).exists())

    def test_second_submission_rejected(self):
        services.submit_challenge(self.challenge, self.user, 'My essay')
        with self.assertRaises(AlreadySubmitted):
            services.submit_challenge_quiz(self.challenge, self.user, {'q1': '8'})

    def test_closed_challenge(self):
        self.challenge.end_date = timezone.now() - timedelta(hours=1)
        self.challenge.save()
        with self.assertRaises(ChallengeClosed):
            services.submit_challenge(self.challenge, self.user, 'Too late')

        self.challenge.end_date = timezone.now() + timedelta(days=1)
        self.challenge.is_active = False
        self.challenge.save()
        with self.assertRaises(ChallengeClosed):
            services.submit_challenge(self.challenge, self.user, 'Inactive')

    def test_full_challenge(self):
        self.challenge.max_participants = 1
        self.challenge.save()
        services.submit_challenge(self.challenge, User.objects.create_user(email='first@test.com'), 'First')

        with self.assertRaises(ChallengeClosed) as ctx:
            services.submit_challenge(self.challenge, self.user, 'Second')
        self.assertEqual(ctx.exception.message, 'Challenge is full')

    def test_review_content_submission(self):
        submission = services.submit_challenge(self.challenge, self.user, 'Essay')
        services.review_submission(submission, passed=True, score=90)
        services.review_submission(submission, passed=True)

        self.assertEqual(services.get_user_points(self.user).points, 150)

    def test_streak_challenge_progress(self):
        start = timezone.make_aware(datetime.combine(TODAY - timedelta(days=6), time(0, 0)))
        end = timezone.make_aware(datetime.combine(TODAY + timedelta(days=7), time(23, 0)))
        activity = days_ago(0, 1, 3, 4, 10)  # Wed, Tue, Sun, Sat and one day outside the window

        study_days = Challenge(type='STUDY_DAYS', target=5, start_date=start, end_date=end)
        progress = services.challenge_progress(study_days, self.user, activity, TODAY)
        self.assertEqual(progress, {'progress': 4, 'target': 5, 'percentage': 80, 'completed': False})

        weekend = Challenge(type='WEEKEND_STREAK', target=2, start_date=start, end_date=end)
        progress = services.challenge_progress(weekend, self.user, activity, TODAY)
        self.assertTrue(progress['completed'])
        self.assertEqual(progress['percentage'], 100)

        streak = Challenge(type='STREAK', target=7, start_date=start, end_date=end)
        self.assertEqual(services.challenge_progress(streak, self.user, activity, TODAY)['progress'], 2)


class StreakLeaderboardTest(CourseFixtureMixin, TestCase):

    def setUp(self):
        self.create_course()
        self.today = timezone.localdate()
        self.asel = User.objects.create_user(email='asel@test.com', first_name='Asel')
        self.bolat = User.objects.create_user(email='bolat@test.com', first_name='Bolat')
        self.dana = User.objects.create_user(email='dana@test.com', first_name='Dana')
        self.tutor = User.objects.create_user(email='tutor@test.com', role=User.Role.TUTOR)

    def study(self, user, *offsets):
        for offset in offsets:
            material = Material.objects.create(
                topic=self.topic1, type='TEXT', title=f'Extra {user.id}-{offset}', content='x'
            )
            moment = timezone.make_aware(datetime.combine(self.today - timedelta(days=offset), time(12, 0)))
            progress = MaterialProgress.objects.create(material=material, student=user)
            MaterialProgress.objects.filter(pk=progress.pk).update(created_at=moment, last_accessed=moment)

    def test_weekly_ranking(self):
        self.study(self.asel, 0, 2, 4)
        self.study(self.bolat, 0, 1, 2)
        self.study(self.dana, 20)
        self.study(self.tutor, 0, 1, 2, 3)

        result = streak_leaderboard('week', 10, user=self.asel)
        ranking = [(e['name'], e['score'], e['rank']) for e in result['leaderboard']]

        # Equal weekly days: the longer streak ranks first; Dana and the tutor are left out
        self.assertEqual(ranking, [('Bolat', 3, 1), ('Asel', 3, 2)])
        self.assertEqual(result['user_position']['rank'], 2)
        self.assertEqual(result['total_participants'], 2)

    def test_ties_fall_back_to_name(self):
        self.study(self.bolat, 0)
        self.study(self.asel, 0)

        result = streak_leaderboard('all', 10)
        self.assertEqual([e['name'] for e in result['leaderboard']], ['Asel', 'Bolat'])
        self.assertIsNone(result['user_position'])

    def test_monthly_and_unknown_period(self):
        self.study(self.dana, 20)

        self.assertEqual(streak_leaderboard('month')['leaderboard'][0]['name'], 'Dana')
        self.assertEqual(streak_leaderboard('year')['period'], 'week')


class GamificationAPITest(CourseFixtureMixin, APITestCase):

    def setUp(self):
        self.create_course()
        self.student = User.objects.create_user(email='student@test.com', first_name='Aigerim')
        self.other = User.objects.create_user(email='other@test.com', first_name='Nurlan')
        self.admin = User.objects.create_user(email='admin@test.com', role=User.Role.ADMIN)
        self.manager = User.objects.create_user(email='manager@test.com', role=User.Role.MANAGER)
        now = timezone.now()
        self.challenge = Challenge.objects.create(
            name='Logic sprint', type='QUIZ', start_date=now - timedelta(days=1),
            end_date=now + timedelta(days=6), has_quiz=True, quiz=QUIZ, rewards={'points': 150},
        )

    def test_requires_authentication(self):
        response = self.client.get(reverse('gamification:study-streak'))
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_study_streak(self):
        self.enroll(self.student)
        student_services.record_material_progress(self.student, self.material1)
        self.client.force_authenticate(self.student)

        response = self.client.get(reverse('gamification:study-streak'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['current_streak'], 1)
        self.assertEqual(len(response.data['last_7_days']), 7)
        self.assertTrue(response.data['last_7_days'][-1]['has_activity'])

    def test_streak_leaderboard(self):
        self.enroll(self.student)
        student_services.record_material_progress(self.student, self.material1)
        self.client.force_authenticate(self.other)

        response = self.client.get(reverse('gamification:streak-leaderboard'), {'period': 'all', 'limit': 5})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['leaderboard'][0]['user_id'], self.student.id)
        self.assertIsNone(response.data['user_position'])

    def test_points_leaderboard(self):
        services.award_points(self.student, 50, 'MANUAL', 'Bonus')
        services.award_points(self.other, 80, 'MANUAL', 'Bonus')
        services.award_points(self.admin, 500, 'MANUAL', 'Bonus')
        self.client.force_authenticate(self.student)

        response = self.client.get(reverse('gamification:leaderboard'))

        self.assertEqual([e['user_id'] for e in response.data['leaderboard']], [self.other.id, self.student.id])
        self.assertEqual(response.data['user_rank'], 2)

    def test_tests_leaderboard(self):
        self.enroll(self.student)
        student_services.submit_test(self.student, self.test, {str(self.q1.id): '16', str(self.q2.id): 'true'})
        self.client.force_authenticate(self.student)

        response = self.client.get(reverse('gamification:leaderboard'), {'category': 'tests'})

        self.assertEqual(response.data['category'], 'tests')
        self.assertEqual(response.data['leaderboard'][0]['score'], 1)
        self.assertEqual(response.data['leaderboard'][0]['average_percentage'], 75)

    def test_profile(self):
        services.award_points(self.student, 1250, 'MANUAL', 'Olympiad prize')
        self.client.force_authenticate(self.student)

        response = self.client.get(reverse('gamification:profile'))

        self.assertEqual(response.data['points'], 1250)
        self.assertEqual(response.data['level'], 2)
        self.assertEqual(response.data['next_level_experience'], 2000)
        self.assertEqual(response.data['level_progress'], 25)
        self.assertEqual(response.data['recent_transactions'][0]['reason'], 'Olympiad prize')

    def test_badges_with_earned_flag(self):
        earned = Badge.objects.create(name='Starter', criteria={'type': 'points', 'value': 1})
        Badge.objects.create(name='Hidden', criteria={'type': 'points', 'value': 1}, is_active=False)
        Badge.objects.create(name='Scholar', criteria={'type': 'tests_passed', 'value': 10})
        UserBadge.objects.create(user=self.student, badge=earned)
        self.client.force_authenticate(self.student)

        response = self.client.get(reverse('gamification:badge-list'))

        flags = {badge['name']: badge['earned'] for badge in response.data}
        self.assertEqual(flags, {'Scholar': False, 'Starter': True})

    def test_admin_manages_badges(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(reverse('gamification:badge-list'), {
            'name': 'Marathon', 'criteria': {'type': 'streak', 'value': 30}, 'points_reward': 300,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['criteria']['condition'], 'gte')

        url = reverse('gamification:badge-detail', args=[response.data['id']])
        response = self.client.put(url, {'points_reward': 350}, format='json')
        self.assertEqual(response.data['points_reward'], 350)

        self.assertEqual(self.client.delete(url).status_code, status.HTTP_204_NO_CONTENT)

    def test_invalid_badge_criteria(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(reverse('gamification:badge-list'), {
            'name': 'Odd', 'criteria': {'type': 'friends', 'value': 3},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('criteria', response.data['details'])

    def test_students_cannot_manage_badges(self):
        self.client.force_authenticate(self.student)
        response = self.client.post(reverse('gamification:badge-list'), {
            'name': 'Self-made', 'criteria': {'type': 'points', 'value': 1},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_student_challenge_list_hides_answers(self):
        Challenge.objects.create(
            name='Old', start_date=timezone.now() - timedelta(days=10), end_date=timezone.now() - timedelta(days=3)
        )
        self.client.force_authenticate(self.student)

        response = self.client.get(reverse('gamification:challenge-list'))

        self.assertEqual(len(response.data), 1)
        challenge = response.data[0]
        self.assertFalse(challenge['submitted'])
        self.assertEqual(challenge['progress']['progress'], 0)
        self.assertNotIn('correct_answer', challenge['quiz']['questions'][0])
        self.assertEqual(challenge['quiz']['questions'][0]['type'], 'MULTIPLE_CHOICE')

    def test_staff_challenge_list_has_counts(self):
        ChallengeSubmission.objects.create(challenge=self.challenge, user=self.student, content='x')
        self.client.force_authenticate(self.manager)

        response = self.client.get(reverse('gamification:challenge-list'))

        self.assertEqual(response.data[0]['submissions_count'], 1)
        self.assertIn('correct_answer', response.data[0]['quiz']['questions'][0])

    def test_admin_creates_challenge(self):
        self.client.force_authenticate(self.admin)
        now = timezone.now()
        response = self.client.post(reverse('gamification:challenge-list'), {
            'name': 'Week of study',
            'type': 'STUDY_DAYS',
            'target': 5,
            'start_date': now.isoformat(),
            'end_date': (now + timedelta(days=7)).isoformat(),
            'rewards': {'points': 100},
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['created_by_name'], self.admin.display_name)

    def test_challenge_dates_validated(self):
        self.client.force_authenticate(self.admin)
        now = timezone.now()
        response = self.client.post(reverse('gamification:challenge-list'), {
            'name': 'Backwards',
            'start_date': now.isoformat(),
            'end_date': (now - timedelta(days=1)).isoformat(),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('end_date', response.data['details'])

    def test_quiz_challenge_needs_valid_questions(self):
        self.client.force_authenticate(self.admin)
        now = timezone.now()
        response = self.client.post(reverse('gamification:challenge-list'), {
            'name': 'Broken quiz',
            'type': 'QUIZ',
            'start_date': now.isoformat(),
            'end_date': (now + timedelta(days=1)).isoformat(),
            'has_quiz': True,
            'quiz': {'questions': [{'question': 'Pick', 'type': 'multiple-choice', 'options': ['a'], 'correct_answer': 'a'}]},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_manager_cannot_create_challenge(self):
        self.client.force_authenticate(self.manager)
        response = self.client.post(reverse('gamification:challenge-list'), {'name': 'Nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_toggle_status(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(reverse('gamification:challenge-toggle-status', args=[self.challenge.id]))
        self.assertFalse(response.data['is_active'])

        self.client.force_authenticate(self.student)
        response = self.client.get(reverse('gamification:challenge-detail', args=[self.challenge.id]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_update_and_delete_challenge(self):
        self.client.force_authenticate(self.admin)
        url = reverse('gamification:challenge-detail', args=[self.challenge.id])

        response = self.client.put(url, {'target': 3}, format='json')
        self.assertEqual(response.data['target'], 3)

        self.assertEqual(self.client.delete(url).status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Challenge.objects.exists())

    def test_submit_quiz(self):
        self.client.force_authenticate(self.student)
        url = reverse('gamification:challenge-submit-quiz', args=[self.challenge.id])

        response = self.client.post(url, {'answers': {'q1': '8', 'q2': 'true', 'q3': 'Astana'}}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['passed'])
        self.assertEqual(response.data['score'], 100)
        self.assertEqual(response.data['points_awarded'], 150)

        response = self.client.post(url, {'answers': {'q1': '8'}}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_submit_quiz_without_answers(self):
        self.client.force_authenticate(self.student)
        url = reverse('gamification:challenge-submit-quiz', args=[self.challenge.id])
        response = self.client.post(url, {'answers': {}}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_submit_content(self):
        self.client.force_authenticate(self.student)
        url = reverse('gamification:challenge-submit', args=[self.challenge.id])

        response = self.client.post(url, {'content': 'Solved all puzzles'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['content'], 'Solved all puzzles')

        self.assertEqual(self.client.post(url, {}, format='json').status_code, status.HTTP_400_BAD_REQUEST)

    def test_submit_to_closed_challenge(self):
        self.challenge.end_date = timezone.now() - timedelta(minutes=1)
        self.challenge.save()
        self.client.force_authenticate(self.student)

        response = self.client.post(
            reverse('gamification:challenge-submit', args=[self.challenge.id]), {'content': 'Late'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Challenge is not open for submissions')
