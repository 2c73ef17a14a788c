import re
import uuid
from urllib.parse import quote

from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models


class UserManager(BaseUserManager):
    """
    Manager for the email-identified User model. Local accounts (admins
    created from the shell, tutors added before their first Firebase
    sign-in) get a placeholder firebase_uid.
    """
    use_in_migrations = True

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError("Users must have an email address")
        email = self.normalize_email(email)
        extra_fields.setdefault('username', email)
        extra_fields.setdefault('firebase_uid', f"local_{uuid.uuid4().hex}")
        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_user(self, email=None, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', False)
        extra_fields.setdefault('is_superuser', False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email=None, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', User.Role.OWNER)
        if extra_fields.get('is_staff') is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get('is_superuser') is not True:
            raise ValueError("Superuser must have is_superuser=True.")
        return self._create_user(email, password, **extra_fields)


class User(AbstractUser):
    """
    Custom User model that integrates with Firebase Authentication
    """

    class Role(models.TextChoices):
        STUDENT = 'STUDENT', 'Student'
        TUTOR = 'TUTOR', 'Tutor'
        MANAGER = 'MANAGER', 'Manager'
        ADMIN = 'ADMIN', 'Admin'
        OWNER = 'OWNER', 'Owner'

    # Firebase UID is the primary identifier
    firebase_uid = models.CharField(max_length=255, unique=True)

    role = models.CharField(max_length=20, choices=Role.choices, default=Role.STUDENT)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    last_login_at = models.DateTimeField(null=True, blank=True)

    # Override username to use email as primary identifier
    username = models.CharField(max_length=150, unique=False, blank=True)
    email = models.EmailField(unique=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        db_table = 'users'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.email} ({self.role})"

    def save(self, *args, **kwargs):
        if not self.firebase_uid:
            self.firebase_uid = f"local_{uuid.uuid4().hex}"
        if not self.username:
            self.username = self.email
        super().save(*args, **kwargs)

    @property
    def display_name(self):
        return self.get_full_name() or self.email

    @property
    def effective_role(self):
        if self.is_superuser:
            return self.Role.OWNER
        return self.role

    @property
    def is_student(self):
        return self.effective_role == self.Role.STUDENT

    @property
    def is_tutor(self):
        return self.effective_role == self.Role.TUTOR

    @property
    def is_staff_role(self):
        return self.effective_role in STAFF_ROLES

    @property
    def is_admin_role(self):
        return self.effective_role in ADMIN_ROLES


# Managers handle enrollment requests and students; admins and owners also
# manage tutors, users and gamification content
STAFF_ROLES = (User.Role.MANAGER, User.Role.ADMIN, User.Role.OWNER)
ADMIN_ROLES = (User.Role.ADMIN, User.Role.OWNER)


class UserProfile(models.Model):
    """
    Contact and biography details shared by every role
    """
    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='profile'
    )

    bio = models.TextField(blank=True, max_length=500)
    phone = models.CharField(max_length=20, blank=True)
    whatsapp = models.CharField(max_length=20, blank=True, help_text="WhatsApp number in international format")
    telegram = models.CharField(max_length=64, blank=True, help_text="Telegram username without @")
    experience = models.TextField(blank=True, max_length=1000, help_text="Teaching experience (tutors)")
    specialization = models.CharField(max_length=100, blank=True)
    avatar = models.URLField(max_length=500, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'user_profiles'

    def __str__(self):
        return f"Profile: {self.user.display_name}"

    def preferred_contact_links(self):
        links = {}
        if self.whatsapp:
            links['whatsapp'] = whatsapp_link(self.whatsapp)
        if self.telegram:
            links['telegram'] = telegram_link(self.telegram)
        return links


def whatsapp_link(number, text=None):
    """wa.me link for an international phone number"""
    digits = re.sub(r'\D', '', number or '')
    link = f"https://wa.me/{digits}"
    if text:
        link += f"?text={quote(text)}"
    return link


def telegram_link(username):
    return f"https://t.me/{(username or '').lstrip('@')}"
