from django.contrib.auth import get_user_model
from rest_framework import serializers

from courses.models import Course
from student.models import CourseEnrollment
from users.models import telegram_link, whatsapp_link
from users.validators import validate_person_name, validate_phone, validate_telegram_username
from .models import EnrollmentRequest, Payment

User = get_user_model()


class EnrollmentRequestCreateSerializer(serializers.ModelSerializer):
    """
    Public enrollment form. Signed-in students may omit name and email,
    which then come from their account.
    """
    course = serializers.PrimaryKeyRelatedField(queryset=Course.objects.all())
    selected_tutor = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.filter(role=User.Role.TUTOR, is_active=True),
        required=False,
        allow_null=True
    )
    student_name = serializers.CharField(required=False, max_length=100)
    student_email = serializers.EmailField(required=False)
    preferred_contact = serializers.ChoiceField(choices=EnrollmentRequest.CONTACT_CHOICES)

    class Meta:
        model = EnrollmentRequest
        fields = [
            'course', 'student_name', 'student_email', 'student_phone',
            'whatsapp_number', 'telegram_username', 'preferred_contact',
            'selected_tutor', 'message'
        ]

    def validate_student_name(self, value):
        return validate_person_name(value)

    def validate_student_email(self, value):
        return value.lower()

    def validate_student_phone(self, value):
        return validate_phone(value)

    def validate_whatsapp_number(self, value):
        return validate_phone(value) if value else ''

    def validate_telegram_username(self, value):
        return validate_telegram_username(value) if value else ''

    def validate(self, attrs):
        request = self.context.get('request')
        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            attrs.setdefault('student_email', user.email.lower())
            if not attrs.get('student_name') and user.get_full_name():
                attrs['student_name'] = user.get_full_name()

        errors = {}
        if not attrs.get('student_name'):
            errors['student_name'] = 'This field is required.'
        if not attrs.get('student_email'):
            errors['student_email'] = 'This field is required.'

        preferred = attrs['preferred_contact']
        if preferred == 'WHATSAPP' and not attrs.get('whatsapp_number'):
            errors['whatsapp_number'] = 'WhatsApp number is required for WhatsApp contact'
        if preferred == 'TELEGRAM' and not attrs.get('telegram_username'):
            errors['telegram_username'] = 'Telegram username is required for Telegram contact'

        tutor = attrs.get('selected_tutor')
        course = attrs.get('course')
        if tutor is not None and course is not None and not course.is_tutor(tutor):
            errors['selected_tutor'] = 'Selected tutor does not teach this course'

        if errors:
            raise serializers.ValidationError(errors)
        return attrs


class EnrollmentRequestSerializer(serializers.ModelSerializer):
    course_title = serializers.CharField(source='course.title', read_only=True)
    course_price = serializers.DecimalField(source='course.price', max_digits=10, decimal_places=2, read_only=True)
    selected_tutor_name = serializers.CharField(source='selected_tutor.display_name', read_only=True, default=None)
    reviewed_by_name = serializers.CharField(source='reviewed_by.display_name', read_only=True, default=None)
    contact_links = serializers.SerializerMethodField()

    class Meta:
        model = EnrollmentRequest
        fields = [
            'id', 'course', 'course_title', 'course_price', 'student',
            'student_name', 'student_email', 'student_phone', 'whatsapp_number',
            'telegram_username', 'preferred_contact', 'contact_links',
            'selected_tutor', 'selected_tutor_name', 'message', 'status',
            'admin_notes', 'reviewed_by', 'reviewed_by_name', 'reviewed_at',
            'enrollment', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_contact_links(self, obj):
        """Links staff use to reach the student"""
        links = {}
        if obj.whatsapp_number:
            links['whatsapp'] = whatsapp_link(obj.whatsapp_number)
        if obj.telegram_username:
            links['telegram'] = telegram_link(obj.telegram_username)
        return links


class EnrollmentRequestUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=EnrollmentRequest.STATUS_CHOICES, required=False)
    admin_notes = serializers.CharField(required=False, allow_blank=True)


class ReviewSerializer(serializers.Serializer):
    admin_notes = serializers.CharField(required=False, allow_blank=True, default='')


class ApproveSerializer(ReviewSerializer):
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    payment_method = serializers.ChoiceField(
        choices=CourseEnrollment.PAYMENT_METHOD_CHOICES, required=False, default='CONTACT_MANAGER'
    )
    reference = serializers.CharField(required=False, allow_blank=True, default='', max_length=255)


class DirectEnrollSerializer(serializers.Serializer):
    student_id = serializers.IntegerField(required=False)
    student_email = serializers.EmailField(required=False)
    course_id = serializers.UUIDField()
    tutor_id = serializers.IntegerField(required=False, allow_null=True)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    payment_method = serializers.ChoiceField(
        choices=CourseEnrollment.PAYMENT_METHOD_CHOICES, required=False, default='MANUAL'
    )
    reference = serializers.CharField(required=False, allow_blank=True, default='', max_length=255)

    def validate(self, attrs):
        if attrs.get('student_id'):
            student = User.objects.filter(id=attrs['student_id']).first()
        elif attrs.get('student_email'):
            student = User.objects.filter(email__iexact=attrs['student_email']).first()
        else:
            raise serializers.ValidationError({'student_id': 'student_id or student_email is required'})
        if student is None:
            raise serializers.ValidationError({'student_id': 'Student not found'})

        course = Course.objects.filter(id=attrs['course_id']).first()
        if course is None:
            raise serializers.ValidationError({'course_id': 'Course not found'})

        tutor = None
        if attrs.get('tutor_id'):
            tutor = User.objects.filter(id=attrs['tutor_id'], role=User.Role.TUTOR).first()
            if tutor is None:
                raise serializers.ValidationError({'tutor_id': 'Tutor not found'})

        attrs['student'] = student
        attrs['course'] = course
        attrs['tutor'] = tutor
        return attrs


class CourseEnrollmentSerializer(serializers.ModelSerializer):
    """Enrollment as listed for staff"""
    student_email = serializers.EmailField(source='student.email', read_only=True)
    student_name = serializers.CharField(source='student.display_name', read_only=True)
    course_title = serializers.CharField(source='course.title', read_only=True)
    tutor_name = serializers.CharField(source='tutor.display_name', read_only=True, default=None)
    enrolled_by_name = serializers.CharField(source='enrolled_by.display_name', read_only=True, default=None)

    class Meta:
        model = CourseEnrollment
        fields = [
            'id', 'course', 'course_title', 'student', 'student_email', 'student_name',
            'tutor', 'tutor_name', 'enrolled_by_name', 'status', 'payment_status',
            'payment_method', 'progress_percentage', 'enrolled_at', 'completed_at',
            'last_accessed'
        ]
        read_only_fields = fields


class CourseEnrollmentUpdateSerializer(serializers.ModelSerializer):
    tutor = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.filter(role=User.Role.TUTOR),
        required=False,
        allow_null=True
    )

    class Meta:
        model = CourseEnrollment
        fields = ['status', 'payment_status', 'tutor']


class PaymentSerializer(serializers.ModelSerializer):
    student_email = serializers.EmailField(source='enrollment.student.email', read_only=True)
    course_title = serializers.CharField(source='enrollment.course.title', read_only=True)
    confirmed_by_name = serializers.CharField(source='confirmed_by.display_name', read_only=True, default=None)

    class Meta:
        model = Payment
        fields = [
            'id', 'enrollment', 'student_email', 'course_title', 'amount', 'currency',
            'method', 'status', 'reference', 'confirmed_by_name', 'confirmed_at', 'created_at'
        ]
