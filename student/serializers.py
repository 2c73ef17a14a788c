from rest_framework import serializers

from .models import CourseBookmark, CourseEnrollment, CourseFavorite, MaterialProgress


class EnrolledCourseSerializer(serializers.ModelSerializer):
    """
    Enrollment as shown on "my courses"
    """
    course_id = serializers.UUIDField(source='course.id', read_only=True)
    course_title = serializers.CharField(source='course.title', read_only=True)
    course_description = serializers.CharField(source='course.description', read_only=True)
    course_image = serializers.CharField(source='course.image', read_only=True)
    difficulty = serializers.CharField(source='course.difficulty', read_only=True)
    tutor_name = serializers.CharField(source='tutor.display_name', read_only=True, default=None)

    class Meta:
        model = CourseEnrollment
        fields = [
            'id', 'course_id', 'course_title', 'course_description', 'course_image',
            'difficulty', 'tutor_name', 'status', 'payment_status', 'payment_method',
            'progress_percentage', 'enrolled_at', 'completed_at', 'last_accessed'
        ]


class MaterialProgressSerializer(serializers.ModelSerializer):
    material_id = serializers.UUIDField(source='material.id', read_only=True)
    material_title = serializers.CharField(source='material.title', read_only=True)
    material_type = serializers.CharField(source='material.type', read_only=True)
    topic_id = serializers.UUIDField(source='material.topic_id', read_only=True)

    class Meta:
        model = MaterialProgress
        fields = [
            'material_id', 'material_title', 'material_type', 'topic_id',
            'status', 'time_spent', 'last_accessed', 'completed_at'
        ]


class MaterialProgressUpdateSerializer(serializers.Serializer):
    material_id = serializers.UUIDField()
    status = serializers.ChoiceField(choices=MaterialProgress.STATUS_CHOICES, required=False)
    time_spent = serializers.IntegerField(min_value=0, required=False, default=0)


class TestSubmitSerializer(serializers.Serializer):
    answers = serializers.DictField(allow_empty=True, help_text="{question_id: answer}")
    time_spent = serializers.IntegerField(min_value=0, required=False, default=0)


class CourseToggleSerializer(serializers.Serializer):
    course_id = serializers.UUIDField()


class _CourseMarkSerializer(serializers.ModelSerializer):
    course_id = serializers.UUIDField(source='course.id', read_only=True)
    course_title = serializers.CharField(source='course.title', read_only=True)
    course_image = serializers.CharField(source='course.image', read_only=True)
    price = serializers.DecimalField(source='course.price', max_digits=10, decimal_places=2, read_only=True)


class CourseBookmarkSerializer(_CourseMarkSerializer):
    class Meta:
        model = CourseBookmark
        fields = ['id', 'course_id', 'course_title', 'course_image', 'price', 'created_at']


class CourseFavoriteSerializer(_CourseMarkSerializer):
    class Meta:
        model = CourseFavorite
        fields = ['id', 'course_id', 'course_title', 'course_image', 'price', 'created_at']
