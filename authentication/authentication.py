import logging
import time

import firebase_admin
from django.contrib.auth import get_user_model
from django.utils import timezone
from firebase_admin import auth
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

logger = logging.getLogger(__name__)
User = get_user_model()


def ensure_firebase_initialized():
    """Ensure Firebase is initialized before use"""
    if not firebase_admin._apps:
        try:
            from backend.settings import initialize_firebase
            return initialize_firebase()
        except Exception as e:
            logger.error(f"Failed to initialize Firebase: {e}")
            return False
    return True


def verify_token_with_retry(token, max_retries=2, retry_delay=1):
    """
    Verify a Firebase ID token, retrying when the token is rejected because
    the local clock is behind Firebase's ("Token used too early").

    Raises:
        auth.InvalidIdTokenError: token is invalid after all retries
    """
    for attempt in range(max_retries + 1):
        try:
            return auth.verify_id_token(token, check_revoked=False)
        except auth.InvalidIdTokenError as e:
            error_str = str(e).lower()
            if ('too early' in error_str or 'clock' in error_str) and attempt < max_retries:
                logger.warning(f"Clock skew detected, retrying token verification (retry {attempt + 1} of {max_retries})")
                time.sleep(retry_delay)
                continue
            raise


def split_display_name(name):
    parts = (name or '').strip().split(' ', 1)
    return parts[0], parts[1] if len(parts) > 1 else ''


def get_or_create_user(decoded_token):
    """
    Get or create the local user for a decoded Firebase token and stamp
    ``last_login_at``.

    Accounts created by staff before the person's first sign-in (tutors,
    students approved from an enrollment request) carry a placeholder uid;
    they are matched by email and take over the real Firebase uid.
    """
    firebase_uid = decoded_token.get('uid')
    email = decoded_token.get('email')
    first_name, last_name = split_display_name(decoded_token.get('name', ''))

    user = User.objects.filter(firebase_uid=firebase_uid).first()
    if user is None:
        user = User.objects.filter(email__iexact=email).first()
        if user is not None:
            logger.info(f"Linked Firebase account {firebase_uid} to existing user {email}")
            user.firebase_uid = firebase_uid

    if user is None:
        user = User.objects.create_user(
            firebase_uid=firebase_uid,
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=User.Role.STUDENT,
        )
        logger.info(f"Created new user with default student role: {email}")
    else:
        if user.email != email:
            user.email = email
        if first_name and not user.first_name:
            user.first_name = first_name
            user.last_name = last_name

    user.last_login_at = timezone.now()
    user.save()
    return user


class FirebaseAuthentication(BaseAuthentication):
    """
    Firebase Authentication for Django REST Framework

    Verifies the Firebase ID token sent as ``Authorization: Bearer <token>``
    and maps it to a local user.
    """

    def authenticate(self, request):
        auth_header = request.META.get('HTTP_AUTHORIZATION')
        if not auth_header:
            return None

        token = self.extract_token(auth_header)
        if not token:
            return None

        if not ensure_firebase_initialized():
            raise AuthenticationFailed('Authentication service unavailable')

        try:
            decoded_token = verify_token_with_retry(token)
        except auth.InvalidIdTokenError as e:
            logger.warning(f"Invalid Firebase token: {e}")
            raise AuthenticationFailed('Invalid authentication token')
        except Exception as e:
            logger.error(f"Authentication error: {e}")
            raise AuthenticationFailed('Authentication failed')

        if not decoded_token.get('uid') or not decoded_token.get('email'):
            raise AuthenticationFailed('Invalid token: missing required fields')

        user = get_or_create_user(decoded_token)
        if not user.is_active:
            raise AuthenticationFailed('User account is disabled')
        return (user, token)

    def extract_token(self, auth_header):
        parts = auth_header.split()
        if len(parts) != 2 or parts[0].lower() != 'bearer':
            return None
        return parts[1]

    def authenticate_header(self, request):
        return 'Bearer'
