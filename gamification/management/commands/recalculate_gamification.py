"""
Rebuild points balances, levels and streaks from the recorded history.
Run: python manage.py recalculate_gamification [--email student@example.com]
"""
from datetime import date

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db.models import Sum
from django.db.models.functions import Abs

from gamification.models import PointTransaction, UserPoints
from gamification.services import check_badges
from gamification.streaks import analyze_study_streak, collect_activity_dates

User = get_user_model()


class Command(BaseCommand):
    help = 'Recalculate points, levels and streaks from point transactions and study activity'

    def add_arguments(self, parser):
        parser.add_argument('--email', help='Only recalculate this user')
        parser.add_argument('--badges', action='store_true', help='Also award badges the users now qualify for')

    def handle(self, *args, **options):
        users = User.objects.all()
        if options['email']:
            users = users.filter(email__iexact=options['email'])
            if not users.exists():
                raise CommandError(f"User {options['email']} not found")

        user_ids = list(users.values_list('id', flat=True))
        activity = collect_activity_dates(user_ids)
        updated = 0

        for user in users:
            totals = PointTransaction.objects.filter(user=user).aggregate(
                points=Sum('points'), experience=Sum(Abs('points'))
            )
            analysis = analyze_study_streak(activity.get(user.id, set()))

            user_points, _ = UserPoints.objects.get_or_create(user=user)
            user_points.points = totals['points'] or 0
            user_points.experience = totals['experience'] or 0
            user_points.level = UserPoints.level_for(user_points.experience)
            user_points.streak = analysis['current_streak']
            user_points.longest_streak = max(user_points.longest_streak, analysis['longest_streak'])
            if analysis['last_activity_date']:
                user_points.last_activity_date = date.fromisoformat(analysis['last_activity_date'])
            user_points.save()
            updated += 1

            if options['badges']:
                for badge in check_badges(user):
                    self.stdout.write(f"  {user.email} earned '{badge.name}'")

        self.stdout.write(self.style.SUCCESS(f'✓ Recalculated gamification for {updated} users'))
