from rest_framework import serializers

from .models import School, SchoolClass, AuditLog, Notification


class SchoolSerializer(serializers.ModelSerializer):
    student_count = serializers.IntegerField(read_only=True, default=0)
    teacher_count = serializers.IntegerField(read_only=True, default=0)

    class Meta:
        model = School
        fields = ['id', 'name', 'code', 'email', 'phone', 'address', 'status', 'trial_ends_at',
                  'max_students', 'max_teachers', 'price_per_user', 'student_count', 'teacher_count',
                  'created_at']
        read_only_fields = ['id', 'created_at']


class ExtendTrialSerializer(serializers.Serializer):
    days = serializers.IntegerField(min_value=1, max_value=365)


class SchoolClassSerializer(serializers.ModelSerializer):
    student_count = serializers.SerializerMethodField()

    class Meta:
        model = SchoolClass
        fields = ['id', 'name', 'student_count']

    def get_student_count(self, obj):
        return obj.students.count()

    def validate_name(self, value):
        school = self.context['school']
        queryset = SchoolClass.objects.filter(school=school, name__iexact=value.strip())
        if self.instance:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError(f"Class '{value}' already exists")
        return value.strip()


class AuditLogSerializer(serializers.ModelSerializer):
    # This field fetches the email from the related User model
    actor_email = serializers.CharField(source='actor.email', read_only=True)
    actor_role = serializers.CharField(source='actor.role', read_only=True)

    class Meta:
        model = AuditLog
        fields = ['id', 'actor', 'actor_email', 'actor_role', 'action', 'target_model', 'target_object_id',
                  'details', 'ip_address', 'timestamp']


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ['id', 'title', 'content', 'type', 'action_url', 'action_text', 'is_read', 'created_at']
        read_only_fields = fields
