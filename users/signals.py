from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import User, UserProfile


@receiver(post_save, sender=User)
def create_user_profile(sender, instance, created, **kwargs):
    """
    Every user gets a profile row on creation so views can rely on
    ``user.profile`` existing.
    """
    if created:
        UserProfile.objects.get_or_create(user=instance)
