from django.contrib.auth import get_user_model
from django.db import transaction
from rest_framework import serializers

from . import policy
from .models import (
    ApprovalStatus, Certificate, Event, EventCategory, EventTag, Feedback,
    Profile, Registration,
)

User = get_user_model()


class ProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = Profile
        fields = ['role', 'approval_status', 'department', 'student_id', 'phone_number']
        read_only_fields = ['role', 'approval_status']


class UserSerializer(serializers.ModelSerializer):
    profile = ProfileSerializer(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'profile']


class SignupSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=8)
    role = serializers.ChoiceField(choices=[Profile.Role.STUDENT, Profile.Role.ORGANIZER], default=Profile.Role.STUDENT)
    department = serializers.CharField(required=False, allow_blank=True)
    student_id = serializers.CharField(required=False, allow_blank=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'password', 'first_name', 'last_name', 'role', 'department', 'student_id']

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("An account with this email already exists.")
        return value

    @transaction.atomic
    def create(self, validated_data):
        role = validated_data.pop('role')
        department = validated_data.pop('department', '')
        student_id = validated_data.pop('student_id', '')
        user = User.objects.create_user(**validated_data)

        # Organizers wait for an admin before they can publish events
        profile = user.profile
        profile.role = role
        profile.department = department
        profile.student_id = student_id
        profile.approval_status = ApprovalStatus.PENDING if role == Profile.Role.ORGANIZER else ApprovalStatus.APPROVED
        profile.save()
        return user


class EventCategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = EventCategory
        fields = ['id', 'name', 'description', 'created_at']


class EventTagSerializer(serializers.ModelSerializer):
    class Meta:
        model = EventTag
        fields = ['id', 'name', 'created_at']


class EventSerializer(serializers.ModelSerializer):
    tags = serializers.PrimaryKeyRelatedField(queryset=EventTag.objects.all(), many=True, required=False)
    tag_names = serializers.SlugRelatedField(source='tags', slug_field='name', many=True, read_only=True)
    category_name = serializers.ReadOnlyField(source='category.name')
    organizer_name = serializers.ReadOnlyField(source='organizer.username')
    registration_count = serializers.SerializerMethodField()
    available_spots = serializers.SerializerMethodField()

    class Meta:
        model = Event
        fields = [
            'id', 'title', 'description', 'location', 'start_time', 'end_time',
            'registration_deadline', 'capacity', 'image', 'category', 'category_name',
            'tags', 'tag_names', 'organizer', 'organizer_name', 'approval_status',
            'registration_count', 'available_spots', 'created_at', 'updated_at',
        ]
        read_only_fields = ['organizer', 'approval_status', 'created_at', 'updated_at']

    # Counts are derived from the ledger on every read
    def get_registration_count(self, obj):
        return obj.capacity_snapshot().registered_count

    def get_available_spots(self, obj):
        return obj.capacity_snapshot().available

    def validate(self, data):
        def current(name):
            if name in data:
                return data[name]
            return getattr(self.instance, name, None)

        if self.instance is None and not data.get('category'):
            raise serializers.ValidationError({'category': 'This field is required.'})

        problems = policy.validate_schedule(
            current('start_time'), current('end_time'), current('registration_deadline'),
        )
        if problems:
            raise serializers.ValidationError({name: message for name, message in problems})
        return data


class RegistrationSerializer(serializers.ModelSerializer):
    event_title = serializers.ReadOnlyField(source='event.title')
    username = serializers.ReadOnlyField(source='user.username')

    class Meta:
        model = Registration
        fields = ['id', 'event', 'event_title', 'user', 'username', 'status', 'registration_date', 'check_in_time', 'ticket_qr']
        read_only_fields = fields


class FeedbackSerializer(serializers.ModelSerializer):
    event_title = serializers.ReadOnlyField(source='event.title')
    username = serializers.ReadOnlyField(source='user.username')
    rating = serializers.IntegerField(min_value=1, max_value=5)

    class Meta:
        model = Feedback
        fields = ['id', 'event', 'event_title', 'user', 'username', 'rating', 'comment', 'created_at']
        read_only_fields = ['event', 'user', 'created_at']


class CertificateSerializer(serializers.ModelSerializer):
    event_title = serializers.ReadOnlyField(source='event.title')
    student_name = serializers.ReadOnlyField(source='student.get_full_name')
    issued_by_name = serializers.ReadOnlyField(source='issued_by.username')

    class Meta:
        model = Certificate
        fields = ['id', 'event', 'event_title', 'student', 'student_name', 'issued_by', 'issued_by_name', 'issued_at']
        read_only_fields = fields


class IssueCertificateSerializer(serializers.Serializer):
    student = serializers.PrimaryKeyRelatedField(queryset=User.objects.all())


class QRScanSerializer(serializers.Serializer):
    qr_data = serializers.CharField()
