from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import Course, CourseTutor, Material, Question, Test, TestSubmission, Topic, validate_question_fields

User = get_user_model()


# ===== TUTORS =====

class TutorBriefSerializer(serializers.ModelSerializer):
    """
    Public view of a tutor (no contact details)
    """
    full_name = serializers.CharField(source='display_name', read_only=True)
    bio = serializers.CharField(source='profile.bio', read_only=True, default='')
    specialization = serializers.CharField(source='profile.specialization', read_only=True, default='')
    experience = serializers.CharField(source='profile.experience', read_only=True, default='')
    avatar = serializers.CharField(source='profile.avatar', read_only=True, default='')

    class Meta:
        model = User
        fields = ['id', 'full_name', 'first_name', 'last_name', 'bio', 'specialization', 'experience', 'avatar']


class CourseTutorSerializer(serializers.ModelSerializer):
    tutor = TutorBriefSerializer(read_only=True)

    class Meta:
        model = CourseTutor
        fields = ['tutor', 'is_primary', 'assigned_at']


# ===== COURSES =====

class CourseListSerializer(serializers.ModelSerializer):
    """
    Catalog card (minimal data for performance)
    """
    tutors = CourseTutorSerializer(source='course_tutors', many=True, read_only=True)
    enrolled_count = serializers.SerializerMethodField()
    seats_left = serializers.SerializerMethodField()
    topics_count = serializers.SerializerMethodField()

    class Meta:
        model = Course
        fields = [
            'id', 'title', 'description', 'category', 'difficulty',
            'estimated_hours', 'price', 'duration', 'max_students', 'status',
            'image', 'is_featured', 'tutors', 'enrolled_count', 'seats_left',
            'topics_count', 'created_at', 'updated_at'
        ]

    def get_enrolled_count(self, obj):
        count = getattr(obj, 'enrolled_count', None)
        return count if count is not None else obj.enrolled_students_count

    def get_seats_left(self, obj):
        return max(obj.max_students - self.get_enrolled_count(obj), 0)

    def get_topics_count(self, obj):
        count = getattr(obj, 'topics_count', None)
        return count if count is not None else obj.topics.count()


class TopicOutlineSerializer(serializers.ModelSerializer):
    """
    Topic title with item counts, shown before enrollment
    """
    materials_count = serializers.SerializerMethodField()
    tests_count = serializers.SerializerMethodField()

    class Meta:
        model = Topic
        fields = ['id', 'title', 'description', 'order', 'materials_count', 'tests_count']

    def get_materials_count(self, obj):
        return sum(1 for material in obj.materials.all() if material.is_published)

    def get_tests_count(self, obj):
        return sum(1 for test in obj.tests.all() if test.is_published)


class CourseDetailSerializer(CourseListSerializer):
    created_by_name = serializers.CharField(source='created_by.display_name', read_only=True, default=None)
    topics = TopicOutlineSerializer(many=True, read_only=True)

    class Meta(CourseListSerializer.Meta):
        fields = CourseListSerializer.Meta.fields + ['created_by_name', 'topics']


class CourseCreateUpdateSerializer(serializers.ModelSerializer):
    """
    Serializer for creating and updating courses
    """
    class Meta:
        model = Course
        fields = [
            'id', 'title', 'description', 'category', 'difficulty',
            'estimated_hours', 'price', 'duration', 'max_students', 'status',
            'image', 'is_featured'
        ]
        read_only_fields = ['id']

    def validate_title(self, value):
        value = value.strip()
        if len(value) < 3:
            raise serializers.ValidationError("Title must be at least 3 characters")
        return value

    def validate_description(self, value):
        value = value.strip()
        if len(value) < 10:
            raise serializers.ValidationError("Description must be at least 10 characters")
        return value

    def validate_max_students(self, value):
        if self.instance is not None and value < self.instance.enrolled_students_count:
            raise serializers.ValidationError("Max students cannot be lower than the number of enrolled students")
        return value


class CourseStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Course.STATUS_CHOICES)


class AssignTutorSerializer(serializers.Serializer):
    tutor_id = serializers.IntegerField()
    is_primary = serializers.BooleanField(default=False)

    def validate_tutor_id(self, value):
        try:
            tutor = User.objects.get(id=value, role=User.Role.TUTOR, is_active=True)
        except User.DoesNotExist:
            raise serializers.ValidationError("Tutor not found")
        return tutor.id


# ===== CONTENT =====

class MaterialSerializer(serializers.ModelSerializer):
    class Meta:
        model = Material
        fields = [
            'id', 'type', 'title', 'description', 'url', 'content',
            'duration_minutes', 'order', 'is_published', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate(self, data):
        material_type = data.get('type', getattr(self.instance, 'type', None))
        url = data.get('url', getattr(self.instance, 'url', ''))
        content = data.get('content', getattr(self.instance, 'content', ''))
        if material_type == 'TEXT':
            if not content:
                raise serializers.ValidationError({'content': "Text materials need content"})
        elif not url:
            raise serializers.ValidationError({'url': "A URL is required for this material type"})
        return data


class QuestionSerializer(serializers.ModelSerializer):
    """
    Full question including the answer (staff and tutors)
    """
    options = serializers.ListField(child=serializers.CharField(), required=False, default=list)

    class Meta:
        model = Question
        fields = [
            'id', 'question', 'type', 'options', 'correct_answer', 'points',
            'order', 'explanation', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_points(self, value):
        if value < 1:
            raise serializers.ValidationError("Points must be at least 1")
        return value

    def validate(self, data):
        question_type = data.get('type', getattr(self.instance, 'type', None))
        options = data.get('options', getattr(self.instance, 'options', []))
        correct_answer = data.get('correct_answer', getattr(self.instance, 'correct_answer', ''))
        errors = validate_question_fields(question_type, options, correct_answer)
        if errors:
            raise serializers.ValidationError(errors)
        if question_type == 'TRUE_FALSE':
            data['correct_answer'] = str(correct_answer).strip().lower()
        return data


class QuestionPublicSerializer(serializers.ModelSerializer):
    """
    Question as shown to a student taking a test
    """
    class Meta:
        model = Question
        fields = ['id', 'question', 'type', 'options', 'points', 'order']


class TestSerializer(serializers.ModelSerializer):
    total_points = serializers.ReadOnlyField()
    question_count = serializers.ReadOnlyField()

    class Meta:
        model = Test
        fields = [
            'id', 'title', 'description', 'duration_minutes', 'passing_score',
            'is_published', 'order', 'total_points', 'question_count',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']


class TestDetailSerializer(TestSerializer):
    questions = QuestionSerializer(many=True, read_only=True)
    topic_id = serializers.UUIDField(read_only=True)
    course_id = serializers.UUIDField(source='topic.course_id', read_only=True)

    class Meta(TestSerializer.Meta):
        fields = TestSerializer.Meta.fields + ['topic_id', 'course_id', 'questions']


class TopicSerializer(serializers.ModelSerializer):
    class Meta:
        model = Topic
        fields = ['id', 'title', 'description', 'order', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']


class TopicContentSerializer(serializers.ModelSerializer):
    """
    Topic with its materials and tests. Pass ``published_only`` in the
    context to hide drafts from students.
    """
    materials = serializers.SerializerMethodField()
    tests = serializers.SerializerMethodField()

    class Meta:
        model = Topic
        fields = ['id', 'title', 'description', 'order', 'materials', 'tests']

    def _visible(self, items):
        if self.context.get('published_only'):
            return [item for item in items if item.is_published]
        return list(items)

    def get_materials(self, obj):
        return MaterialSerializer(self._visible(obj.materials.all()), many=True).data

    def get_tests(self, obj):
        return TestSerializer(self._visible(obj.tests.all()), many=True).data


class TopicReorderSerializer(serializers.Serializer):
    topic_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)

    def validate_topic_ids(self, value):
        if len(set(value)) != len(value):
            raise serializers.ValidationError("Topic ids must be unique")
        return value


# ===== IMPORT =====

class ImportQuestionSerializer(QuestionSerializer):
    class Meta(QuestionSerializer.Meta):
        fields = ['question', 'type', 'options', 'correct_answer', 'points', 'order', 'explanation']


class ImportTestSerializer(serializers.ModelSerializer):
    questions = ImportQuestionSerializer(many=True, required=False, default=list)

    class Meta:
        model = Test
        fields = ['title', 'description', 'duration_minutes', 'passing_score', 'is_published', 'order', 'questions']


class ImportMaterialSerializer(MaterialSerializer):
    class Meta(MaterialSerializer.Meta):
        fields = ['type', 'title', 'description', 'url', 'content', 'duration_minutes', 'order', 'is_published']


class ImportTopicSerializer(serializers.ModelSerializer):
    materials = ImportMaterialSerializer(many=True, required=False, default=list)
    tests = ImportTestSerializer(many=True, required=False, default=list)

    class Meta:
        model = Topic
        fields = ['title', 'description', 'order', 'materials', 'tests']


class CourseImportSerializer(CourseCreateUpdateSerializer):
    """
    Whole course document: course -> topics -> materials/tests -> questions
    """
    topics = ImportTopicSerializer(many=True, required=False, default=list)

    class Meta(CourseCreateUpdateSerializer.Meta):
        fields = CourseCreateUpdateSerializer.Meta.fields + ['topics']

    def create(self, validated_data):
        topics = validated_data.pop('topics', [])
        course = Course.objects.create(**validated_data)

        for topic_index, topic_data in enumerate(topics):
            materials = topic_data.pop('materials', [])
            tests = topic_data.pop('tests', [])
            topic_data.setdefault('order', topic_index)
            topic = Topic.objects.create(course=course, **topic_data)

            for material_index, material_data in enumerate(materials):
                material_data.setdefault('order', material_index)
                Material.objects.create(topic=topic, **material_data)

            for test_index, test_data in enumerate(tests):
                questions = test_data.pop('questions', [])
                test_data.setdefault('order', test_index)
                test = Test.objects.create(topic=topic, **test_data)
                for question_index, question_data in enumerate(questions):
                    question_data.setdefault('order', question_index)
                    Question.objects.create(test=test, **question_data)

        return course


# ===== SUBMISSIONS =====

class TestSubmissionSerializer(serializers.ModelSerializer):
    test_title = serializers.CharField(source='test.title', read_only=True)
    student_name = serializers.CharField(source='student.display_name', read_only=True)
    student_email = serializers.EmailField(source='student.email', read_only=True)

    class Meta:
        model = TestSubmission
        fields = [
            'id', 'test', 'test_title', 'student', 'student_name', 'student_email',
            'score', 'max_score', 'percentage', 'passed', 'time_spent', 'submitted_at'
        ]


class TestResultSerializer(TestSubmissionSerializer):
    class Meta(TestSubmissionSerializer.Meta):
        fields = TestSubmissionSerializer.Meta.fields + ['answers']
