from django.contrib.auth import get_user_model
from django.test import TestCase

from .models import UserProfile, telegram_link, whatsapp_link

User = get_user_model()


class UserModelTest(TestCase):
    """Test cases for the User model."""

    def test_profile_created_with_user(self):
        """Every new user gets a contact profile."""
        user = User.objects.create_user(email='student@test.com')
        self.assertTrue(UserProfile.objects.filter(user=user).exists())

    def test_local_account_gets_placeholder_uid(self):
        user = User.objects.create_user(email='Tutor@Test.com')
        self.assertTrue(user.firebase_uid.startswith('local_'))
        self.assertEqual(user.username, 'Tutor@test.com')
        self.assertFalse(user.has_usable_password())

    def test_role_properties(self):
        student = User.objects.create_user(email='s@test.com')
        tutor = User.objects.create_user(email='t@test.com', role=User.Role.TUTOR)
        manager = User.objects.create_user(email='m@test.com', role=User.Role.MANAGER)
        admin = User.objects.create_user(email='a@test.com', role=User.Role.ADMIN)

        self.assertTrue(student.is_student)
        self.assertTrue(tutor.is_tutor)
        self.assertTrue(manager.is_staff_role)
        self.assertFalse(manager.is_admin_role)
        self.assertTrue(admin.is_staff_role)
        self.assertTrue(admin.is_admin_role)

    def test_superuser_reports_owner_role(self):
        """Superusers act as owners even if the stored role differs."""
        root = User.objects.create_superuser(email='root@test.com', password='pass12345', role=User.Role.STUDENT)
        self.assertEqual(root.effective_role, User.Role.OWNER)
        self.assertTrue(root.is_admin_role)
        self.assertFalse(root.is_student)

    def test_display_name_falls_back_to_email(self):
        user = User.objects.create_user(email='anon@test.com')
        self.assertEqual(user.display_name, 'anon@test.com')
        user.first_name = 'Aida'
        self.assertEqual(user.display_name, 'Aida')


class ContactLinkTest(TestCase):

    def test_whatsapp_link_keeps_digits_only(self):
        self.assertEqual(whatsapp_link('+7 (700) 123-45-67'), 'https://wa.me/77001234567')

    def test_whatsapp_link_encodes_message(self):
        link = whatsapp_link('+77001234567', 'Hello, I want to enroll')
        self.assertEqual(link, 'https://wa.me/77001234567?text=Hello%2C%20I%20want%20to%20enroll')

    def test_telegram_link_strips_at(self):
        self.assertEqual(telegram_link('@nuet_manager'), 'https://t.me/nuet_manager')

    def test_preferred_contact_links(self):
        user = User.objects.create_user(email='c@test.com')
        profile = user.profile
        self.assertEqual(profile.preferred_contact_links(), {})

        profile.whatsapp = '+77001112233'
        profile.telegram = 'student_kz'
        self.assertEqual(profile.preferred_contact_links(), {
            'whatsapp': 'https://wa.me/77001112233',
            'telegram': 'https://t.me/student_kz',
        })
