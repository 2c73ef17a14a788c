from unittest import mock

from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.test import TestCase, override_settings
from firebase_admin import auth
from rest_framework import status
from rest_framework.test import APIRequestFactory, APITestCase

from .authentication import FirebaseAuthentication, get_or_create_user

User = get_user_model()


def decoded(uid='firebase-uid-1', email='aruzhan@test.com', name='Aruzhan Sadykova'):
    return {'uid': uid, 'email': email, 'name': name, 'email_verified': True}


@mock.patch('authentication.authentication.ensure_firebase_initialized', return_value=True)
class FirebaseAuthenticationTest(TestCase):
    """Test cases for the DRF Firebase authentication backend."""

    def setUp(self):
        self.factory = APIRequestFactory()
        self.backend = FirebaseAuthentication()

    def _request(self, header):
        return self.factory.get('/api/auth/user/', HTTP_AUTHORIZATION=header)

    def test_no_header_is_anonymous(self, _init):
        self.assertIsNone(self.backend.authenticate(self.factory.get('/')))

    def test_non_bearer_header_is_ignored(self, _init):
        self.assertIsNone(self.backend.authenticate(self._request('Token abc')))

    @mock.patch('firebase_admin.auth.verify_id_token')
    def test_valid_token_creates_student(self, verify, _init):
        verify.return_value = decoded()
        user, token = self.backend.authenticate(self._request('Bearer good-token'))

        self.assertEqual(token, 'good-token')
        self.assertEqual(user.firebase_uid, 'firebase-uid-1')
        self.assertEqual(user.role, User.Role.STUDENT)
        self.assertEqual(user.first_name, 'Aruzhan')
        self.assertEqual(user.last_name, 'Sadykova')
        self.assertIsNotNone(user.last_login_at)

    @mock.patch('firebase_admin.auth.verify_id_token')
    def test_invalid_token_fails(self, verify, _init):
        from rest_framework.exceptions import AuthenticationFailed

        verify.side_effect = auth.InvalidIdTokenError('bad token')
        with self.assertRaises(AuthenticationFailed):
            self.backend.authenticate(self._request('Bearer bad-token'))

    @mock.patch('authentication.authentication.time.sleep')
    @mock.patch('firebase_admin.auth.verify_id_token')
    def test_clock_skew_is_retried(self, verify, sleep, _init):
        verify.side_effect = [auth.InvalidIdTokenError('Token used too early'), decoded()]
        user, _ = self.backend.authenticate(self._request('Bearer skewed'))

        self.assertEqual(user.email, 'aruzhan@test.com')
        self.assertEqual(verify.call_count, 2)
        sleep.assert_called_once()

    @mock.patch('firebase_admin.auth.verify_id_token')
    def test_inactive_user_rejected(self, verify, _init):
        from rest_framework.exceptions import AuthenticationFailed

        User.objects.create_user(email='aruzhan@test.com', firebase_uid='firebase-uid-1', is_active=False)
        verify.return_value = decoded()
        with self.assertRaises(AuthenticationFailed):
            self.backend.authenticate(self._request('Bearer good-token'))


class GetOrCreateUserTest(TestCase):

    def test_staff_created_account_is_linked_by_email(self):
        """A tutor created by an admin takes over the real Firebase uid on first sign-in."""
        tutor = User.objects.create_user(email='tutor@test.com', role=User.Role.TUTOR)
        user = get_or_create_user(decoded(uid='real-uid', email='tutor@test.com', name='New Tutor'))

        self.assertEqual(user.id, tutor.id)
        self.assertEqual(user.firebase_uid, 'real-uid')
        self.assertEqual(user.role, User.Role.TUTOR)


class SignupAPITest(APITestCase):

    def setUp(self):
        self.user = User.objects.create_user(email='new@test.com', firebase_uid='uid-new')
        self.client.force_authenticate(user=self.user)

    def test_signup_stores_contact_data(self):
        response = self.client.post('/api/auth/signup/', {
            'first_name': 'Dana',
            'last_name': 'Omarova',
            'phone': '+7 700 123 45 67',
            'telegram': '@dana_omarova',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.user.refresh_from_db()
        self.assertEqual(self.user.first_name, 'Dana')
        self.assertEqual(self.user.profile.phone, '+77001234567')
        self.assertEqual(self.user.profile.whatsapp, '+77001234567')
        self.assertEqual(self.user.profile.telegram, 'dana_omarova')
        self.assertEqual(self.user.role, User.Role.STUDENT)

    def test_signup_is_idempotent(self):
        payload = {'first_name': 'Dana', 'phone': '+77001234567'}
        self.client.post('/api/auth/signup/', payload, format='json')
        response = self.client.post('/api/auth/signup/', payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(User.objects.filter(email='new@test.com').count(), 1)

    def test_signup_rejects_bad_phone(self):
        response = self.client.post('/api/auth/signup/', {
            'first_name': 'Dana',
            'phone': '12',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('phone', response.data['details'])

    def test_signup_requires_authentication(self):
        self.client.force_authenticate(user=None)
        response = self.client.post('/api/auth/signup/', {'first_name': 'Dana', 'phone': '+77001234567'}, format='json')
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))


class ProfileAPITest(APITestCase):

    def setUp(self):
        self.user = User.objects.create_user(email='me@test.com', first_name='Me')
        self.client.force_authenticate(user=self.user)

    def test_get_current_user(self):
        response = self.client.get('/api/auth/user/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['email'], 'me@test.com')
        self.assertIn('profile', response.data)

    def test_patch_profile(self):
        response = self.client.patch('/api/auth/profile/', {
            'last_name': 'Beken',
            'profile': {'bio': 'Preparing for NUET', 'whatsapp': '+77011234567'},
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.last_name, 'Beken')
        self.assertEqual(self.user.profile.bio, 'Preparing for NUET')
        self.assertEqual(response.data['profile']['contact_links']['whatsapp'], 'https://wa.me/77011234567')

    def test_invalid_name_rejected(self):
        response = self.client.patch('/api/auth/profile/', {'first_name': 'X1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_bio_length_limited(self):
        response = self.client.patch('/api/auth/profile/', {'profile': {'bio': 'x' * 501}}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


@override_settings(STORAGES={
    'default': {'BACKEND': 'django.core.files.storage.InMemoryStorage'},
    'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
})
class AvatarUploadAPITest(APITestCase):

    def setUp(self):
        self.user = User.objects.create_user(email='me@test.com', first_name='Me')
        self.client.force_authenticate(user=self.user)

    def test_upload_avatar(self):
        avatar = SimpleUploadedFile('me.png', b'\x89PNG avatar', content_type='image/png')
        response = self.client.post('/api/auth/profile/avatar/', {'file': avatar}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.profile.refresh_from_db()
        self.assertEqual(self.user.profile.avatar, response.data['avatar'])
        self.assertTrue(response.data['avatar'].startswith('http://testserver/media/avatars/image/'))

    def test_avatar_must_be_image(self):
        document = SimpleUploadedFile('cv.pdf', b'%PDF', content_type='application/pdf')
        response = self.client.post('/api/auth/profile/avatar/', {'file': document}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.user.profile.refresh_from_db()
        self.assertEqual(self.user.profile.avatar, '')

    def test_requires_authentication(self):
        self.client.force_authenticate(user=None)
        response = self.client.post('/api/auth/profile/avatar/', {}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class AdminUserManagementAPITest(APITestCase):

    def setUp(self):
        self.admin = User.objects.create_user(email='admin@test.com', role=User.Role.ADMIN)
        self.manager = User.objects.create_user(email='manager@test.com', role=User.Role.MANAGER)
        self.student = User.objects.create_user(email='student@test.com', first_name='Alikhan')
        self.client.force_authenticate(user=self.admin)

    def test_change_role(self):
        response = self.client.post(f'/api/auth/users/{self.student.id}/role/', {'role': 'TUTOR'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.student.refresh_from_db()
        self.assertEqual(self.student.role, User.Role.TUTOR)

    def test_admin_cannot_grant_owner(self):
        response = self.client.post(f'/api/auth/users/{self.student.id}/role/', {'role': 'OWNER'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_manager_cannot_change_roles(self):
        self.client.force_authenticate(user=self.manager)
        response = self.client.post(f'/api/auth/users/{self.student.id}/role/', {'role': 'TUTOR'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_user_list_filters(self):
        response = self.client.get('/api/auth/users/', {'role': 'student'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

        response = self.client.get('/api/auth/users/', {'search': 'alikhan'})
        self.assertEqual([u['email'] for u in response.data['results']], ['student@test.com'])

    def test_bulk_deactivate_skips_self(self):
        response = self.client.post('/api/auth/users/bulk-action/', {
            'user_ids': [self.student.id, self.admin.id],
            'action': 'deactivate',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['affected'], 1)
        self.student.refresh_from_db()
        self.admin.refresh_from_db()
        self.assertFalse(self.student.is_active)
        self.assertTrue(self.admin.is_active)

    def test_bulk_change_role_requires_role(self):
        response = self.client.post('/api/auth/users/bulk-action/', {
            'user_ids': [self.student.id],
            'action': 'change_role',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    @mock.patch('authentication.views.ensure_firebase_initialized', return_value=False)
    def test_create_tutor_without_firebase(self, _init):
        response = self.client.post('/api/auth/tutors/', {
            'email': 'Tutor@Test.com',
            'first_name': 'Madina',
            'specialization': 'Mathematics',
            'whatsapp': '+77015556677',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        tutor = User.objects.get(email='tutor@test.com')
        self.assertEqual(tutor.role, User.Role.TUTOR)
        self.assertTrue(tutor.firebase_uid.startswith('local_'))
        self.assertEqual(tutor.profile.specialization, 'Mathematics')

    @mock.patch('firebase_admin.auth.create_user')
    @mock.patch('authentication.views.ensure_firebase_initialized', return_value=True)
    def test_create_tutor_with_firebase(self, _init, create_user):
        create_user.return_value = mock.Mock(uid='firebase-tutor')
        response = self.client.post('/api/auth/tutors/', {
            'email': 'tutor2@test.com',
            'first_name': 'Erlan',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(User.objects.get(email='tutor2@test.com').firebase_uid, 'firebase-tutor')

    def test_duplicate_tutor_email_rejected(self):
        response = self.client.post('/api/auth/tutors/', {
            'email': 'student@test.com',
            'first_name': 'Erlan',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_tutors(self):
        User.objects.create_user(email='t1@test.com', role=User.Role.TUTOR, first_name='Bota')
        response = self.client.get('/api/auth/tutors/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['courses_count'], 0)


class CreateAdminCommandTest(TestCase):

    def test_creates_owner(self):
        call_command('create_admin', email='owner@test.com', password='s3cret-pass')
        owner = User.objects.get(email='owner@test.com')
        self.assertTrue(owner.is_superuser)
        self.assertEqual(owner.role, User.Role.OWNER)
        self.assertTrue(owner.check_password('s3cret-pass'))
