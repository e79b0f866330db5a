# exams/serializers.py
from rest_framework import serializers
from .models import Exam, Question, ExamCategory

class ExamCategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = ExamCategory
        fields = '__all__'

# --- Question Serializers ---

class QuestionSerializer(serializers.ModelSerializer):
    """Admin view of a question, correct answer included."""
    # Map frontend 'question_text' to backend 'text'
    question_text = serializers.CharField(source='text')
    exam_title = serializers.CharField(source='exam.title', read_only=True)

    class Meta:
        model = Question
        fields = [
            'id', 'exam', 'exam_title', 'order_number', 'question_text', 'question_type',
            'category', 'difficulty', 'points', 'options', 'correct_answer',
        ]

    def validate_options(self, value):
        if not isinstance(value, list) or not all(isinstance(o, str) for o in value):
            raise serializers.ValidationError("Options must be a list of strings.")
        return value

    def validate(self, attrs):
        q_type = attrs.get('question_type', getattr(self.instance, 'question_type', None))
        correct = attrs.get('correct_answer', getattr(self.instance, 'correct_answer', ''))
        if q_type != Question.QuestionType.ESSAY and not (correct or '').strip():
            raise serializers.ValidationError({'correct_answer': "Auto-graded questions need a correct answer."})
        return attrs

# --- Exam Serializers ---

class ExamSerializer(serializers.ModelSerializer):
    # Handle category as string (name) instead of ID
    category = serializers.CharField(required=False, allow_blank=True)
    total_questions = serializers.IntegerField(read_only=True)
    total_points = serializers.DecimalField(max_digits=8, decimal_places=2, read_only=True)

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'description', 'category',
            'duration_minutes', 'available_from', 'available_until',
            'max_attempts', 'pass_mark_percentage', 'show_correct_answers',
            'is_active', 'total_questions', 'total_points', 'created_at',
        ]
        read_only_fields = ['created_at']

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data['category'] = instance.category.name if instance.category else None
        return data

    def validate_duration_minutes(self, value):
        if value <= 0:
            raise serializers.ValidationError("Duration must be positive.")
        return value

    def validate(self, attrs):
        start = attrs.get('available_from', getattr(self.instance, 'available_from', None))
        end = attrs.get('available_until', getattr(self.instance, 'available_until', None))
        if start and end and end <= start:
            raise serializers.ValidationError({'available_until': "Must be after available_from."})
        return attrs

    def _resolve_category(self, validated_data):
        cat_name = validated_data.pop('category', None)
        if not cat_name:
            return None
        category_obj, _ = ExamCategory.objects.get_or_create(name=cat_name)
        return category_obj

    def create(self, validated_data):
        category = self._resolve_category(validated_data)
        return Exam.objects.create(category=category, **validated_data)

    def update(self, instance, validated_data):
        if 'category' in validated_data:
            instance.category = self._resolve_category(validated_data)
        return super().update(instance, validated_data)

class ExamListSerializer(serializers.ModelSerializer):
    """Student-facing summary of an exam."""
    category = serializers.CharField(source='category.name', read_only=True, allow_null=True)
    total_questions = serializers.IntegerField(read_only=True)

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'description', 'category', 'duration_minutes',
            'available_from', 'available_until', 'max_attempts',
            'pass_mark_percentage', 'total_questions',
        ]

class QuestionIdsSerializer(serializers.Serializer):
    question_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
