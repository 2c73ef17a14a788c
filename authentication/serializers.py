from django.contrib.auth import get_user_model
from rest_framework import serializers

from users.models import UserProfile
from users.validators import validate_person_name, validate_phone, validate_telegram_username

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    """
    Serializer for User model
    """
    full_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id', 'firebase_uid', 'email', 'first_name', 'last_name',
            'full_name', 'role', 'is_active', 'created_at', 'last_login_at'
        ]
        read_only_fields = ['id', 'firebase_uid', 'created_at', 'last_login_at']

    def get_full_name(self, obj):
        return obj.get_full_name()


class ProfileSerializer(serializers.ModelSerializer):
    contact_links = serializers.SerializerMethodField()

    class Meta:
        model = UserProfile
        fields = [
            'bio', 'phone', 'whatsapp', 'telegram', 'experience',
            'specialization', 'avatar', 'contact_links', 'updated_at'
        ]
        read_only_fields = ['updated_at']

    def get_contact_links(self, obj):
        return obj.preferred_contact_links()

    def validate_phone(self, value):
        return validate_phone(value) if value else value

    def validate_whatsapp(self, value):
        return validate_phone(value) if value else value

    def validate_telegram(self, value):
        return validate_telegram_username(value) if value else value


class AuthTokenSerializer(serializers.Serializer):
    """
    Serializer for Firebase ID token authentication
    """
    token = serializers.CharField(
        help_text="Firebase ID token obtained from frontend authentication"
    )


class UserProfileSerializer(serializers.ModelSerializer):
    """
    User with the nested contact profile. Both levels are writable, so a
    single PATCH can change the name and the phone number.
    """
    profile = ProfileSerializer(required=False)
    full_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id', 'firebase_uid', 'email', 'first_name', 'last_name',
            'full_name', 'role', 'is_active', 'created_at', 'last_login_at',
            'profile'
        ]
        read_only_fields = [
            'id', 'firebase_uid', 'email', 'role', 'is_active',
            'created_at', 'last_login_at'
        ]

    def get_full_name(self, obj):
        return obj.get_full_name()

    def validate_first_name(self, value):
        return validate_person_name(value)

    def validate_last_name(self, value):
        return validate_person_name(value) if value else value

    def update(self, instance, validated_data):
        profile_data = validated_data.pop('profile', None)
        instance = super().update(instance, validated_data)

        if profile_data:
            profile, _ = UserProfile.objects.get_or_create(user=instance)
            for field, value in profile_data.items():
                setattr(profile, field, value)
            profile.save()
        return instance


class SignupSerializer(serializers.Serializer):
    first_name = serializers.CharField(max_length=50)
    last_name = serializers.CharField(max_length=50, required=False, allow_blank=True)
    phone = serializers.CharField(max_length=20)
    whatsapp = serializers.CharField(max_length=20, required=False, allow_blank=True)
    telegram = serializers.CharField(max_length=64, required=False, allow_blank=True)

    def validate_first_name(self, value):
        return validate_person_name(value)

    def validate_last_name(self, value):
        return validate_person_name(value) if value else value

    def validate_phone(self, value):
        return validate_phone(value)

    def validate_whatsapp(self, value):
        return validate_phone(value) if value else value

    def validate_telegram(self, value):
        return validate_telegram_username(value) if value else value


class RoleUpdateSerializer(serializers.Serializer):
    """
    Serializer for updating user roles (admin only)
    """
    role = serializers.ChoiceField(choices=User.Role.choices)

    def validate_role(self, value):
        request = self.context.get('request')
        # Only owners hand out the owner role
        if value == User.Role.OWNER and request and request.user.effective_role != User.Role.OWNER:
            raise serializers.ValidationError("Only owners can assign the owner role")
        return value


class BulkUserActionSerializer(serializers.Serializer):
    ACTIONS = ('activate', 'deactivate', 'delete', 'change_role')

    user_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
    action = serializers.ChoiceField(choices=ACTIONS)
    role = serializers.ChoiceField(choices=User.Role.choices, required=False)

    def validate(self, attrs):
        if attrs['action'] == 'change_role' and not attrs.get('role'):
            raise serializers.ValidationError({'role': "Role is required for change_role"})
        return attrs


class TutorCreateSerializer(serializers.Serializer):
    email = serializers.EmailField()
    first_name = serializers.CharField(max_length=50)
    last_name = serializers.CharField(max_length=50, required=False, allow_blank=True)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True)
    whatsapp = serializers.CharField(max_length=20, required=False, allow_blank=True)
    telegram = serializers.CharField(max_length=64, required=False, allow_blank=True)
    bio = serializers.CharField(max_length=500, required=False, allow_blank=True)
    experience = serializers.CharField(max_length=1000, required=False, allow_blank=True)
    specialization = serializers.CharField(max_length=100, required=False, allow_blank=True)

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("A user with this email already exists")
        return value.lower()

    def validate_first_name(self, value):
        return validate_person_name(value)

    def validate_phone(self, value):
        return validate_phone(value) if value else value

    def validate_whatsapp(self, value):
        return validate_phone(value) if value else value

    def validate_telegram(self, value):
        return validate_telegram_username(value) if value else value


class TutorSerializer(serializers.ModelSerializer):
    full_name = serializers.SerializerMethodField()
    profile = ProfileSerializer(read_only=True)
    courses_count = serializers.IntegerField(read_only=True, default=0)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'first_name', 'last_name', 'full_name',
            'is_active', 'created_at', 'profile', 'courses_count'
        ]

    def get_full_name(self, obj):
        return obj.get_full_name()
