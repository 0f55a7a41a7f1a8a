from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.db.models import Avg
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

# Import models for aggregation
from assessments.models import TestSubmission
from cores.models import SchoolClass
from .models import StudentProfile

User = get_user_model()


class StudentProfileSerializer(serializers.ModelSerializer):
    class_name = serializers.CharField(source='school_class.name', read_only=True, default=None)

    class Meta:
        model = StudentProfile
        fields = ['class_name', 'admission_number', 'guardian_name', 'guardian_phone']


class UserSerializer(serializers.ModelSerializer):
    school_name = serializers.CharField(source='school.name', read_only=True, default=None)
    student_profile = StudentProfileSerializer(read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'first_name', 'last_name', 'role', 'school', 'school_name',
            'phone_number', 'bio', 'avatar', 'is_active', 'date_joined', 'student_profile',
        ]
        read_only_fields = ['role', 'school', 'is_active', 'date_joined']


class RegisterSerializer(serializers.ModelSerializer):
    """Used by school admins to create accounts inside their own school."""
    password = serializers.CharField(write_only=True)
    class_name = serializers.CharField(write_only=True, required=False, allow_blank=True)
    admission_number = serializers.CharField(write_only=True, required=False, allow_blank=True)

    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name', 'password', 'role', 'phone_number',
                  'class_name', 'admission_number']

    def validate_role(self, value):
        if value == User.Role.HEADADMIN:
            raise serializers.ValidationError("Head admins cannot be created here.")
        return value

    def validate_password(self, value):
        validate_password(value)
        return value

    def create(self, validated_data):
        school = self.context['school']
        class_name = validated_data.pop('class_name', '')
        admission_number = validated_data.pop('admission_number', '')

        user = User.objects.create_user(
            username=validated_data['email'],
            email=validated_data['email'],
            password=validated_data['password'],
            first_name=validated_data['first_name'],
            last_name=validated_data['last_name'],
            role=validated_data.get('role', User.Role.STUDENT),
            phone_number=validated_data.get('phone_number', ''),
            school=school,
        )

        if user.role == User.Role.STUDENT:
            school_class = None
            if class_name:
                school_class, _ = SchoolClass.objects.get_or_create(school=school, name=class_name.strip())
            StudentProfile.objects.create(user=user, school_class=school_class, admission_number=admission_number)
        return user


class HeadAdminCreateSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name', 'password']

    def validate_password(self, value):
        validate_password(value)
        return value

    def create(self, validated_data):
        return User.objects.create_user(
            username=validated_data['email'],
            role=User.Role.HEADADMIN,
            is_staff=True,
            **validated_data,
        )


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        school = self.user.school
        if school is not None and not school.is_active:
            raise serializers.ValidationError("Your school account is not active.")
        data['user'] = UserSerializer(self.user).data
        return data


class ChangePasswordSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True)

    def validate_current_password(self, value):
        if not self.context['request'].user.check_password(value):
            raise serializers.ValidationError("Current password is incorrect.")
        return value

    def validate_new_password(self, value):
        validate_password(value, self.context['request'].user)
        return value


class StudentListSerializer(serializers.ModelSerializer):
    class_name = serializers.CharField(source='student_profile.school_class.name', read_only=True, default=None)
    tests_taken = serializers.SerializerMethodField()
    average_score = serializers.SerializerMethodField()
    last_activity = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name', 'class_name', 'tests_taken', 'average_score', 'last_activity']

    def _finished(self, obj):
        return TestSubmission.objects.filter(student=obj, submitted_at__isnull=False)

    def get_tests_taken(self, obj):
        return self._finished(obj).count()

    def get_average_score(self, obj):
        avg = self._finished(obj).filter(status=TestSubmission.Status.GRADED).aggregate(avg=Avg('score'))['avg']
        return round(float(avg), 2) if avg is not None else None

    def get_last_activity(self, obj):
        last_submission = TestSubmission.objects.filter(student=obj).order_by('-started_at').first()
        if last_submission:
            return last_submission.started_at
        return obj.date_joined
