from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django_resized import ResizedImageField

from . import policy


class ApprovalStatus(models.TextChoices):
    PENDING = policy.PENDING, 'Pending'
    APPROVED = policy.APPROVED, 'Approved'
    REJECTED = policy.REJECTED, 'Rejected'


class Profile(models.Model):
    class Role(models.TextChoices):
        STUDENT = 'student', 'Student'
        ORGANIZER = 'organizer', 'Organizer'
        ADMIN = 'admin', 'Admin'

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='profile')
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.STUDENT)
    approval_status = models.CharField(max_length=20, choices=ApprovalStatus.choices, default=ApprovalStatus.APPROVED)
    department = models.CharField(max_length=200, blank=True)
    student_id = models.CharField(max_length=50, blank=True)
    phone_number = models.CharField(max_length=20, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def is_approved(self):
        return self.approval_status == ApprovalStatus.APPROVED

    def __str__(self):
        return f"{self.user.username} ({self.role})"


def user_role(user):
    """Superusers act as admins whatever their profile says."""
    if not user or not user.is_authenticated:
        return None
    if user.is_superuser:
        return Profile.Role.ADMIN
    profile = getattr(user, "profile", None)
    return profile.role if profile else None


class EventCategory(models.Model):
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'event categories'

    def __str__(self):
        return self.name


class EventTag(models.Model):
    name = models.CharField(max_length=50, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class EventQuerySet(models.QuerySet):
    def approved(self):
        return self.filter(approval_status=ApprovalStatus.APPROVED)

    def pending(self):
        return self.filter(approval_status=ApprovalStatus.PENDING)

    def by_organizer(self, user):
        return self.filter(organizer=user)

    def visible_to(self, user):
        if user_role(user) == Profile.Role.ADMIN:
            return self.all()
        if user.is_authenticated:
            return self.filter(Q(approval_status=ApprovalStatus.APPROVED) | Q(organizer=user))
        return self.approved()


class Event(models.Model):
    organizer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='organized_events')
    category = models.ForeignKey(EventCategory, on_delete=models.SET_NULL, null=True, blank=True, related_name='events')
    tags = models.ManyToManyField(EventTag, blank=True, related_name='events')
    title = models.CharField(max_length=200)
    description = models.TextField()
    location = models.CharField(max_length=255)
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    registration_deadline = models.DateTimeField(blank=True, null=True)
    capacity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    image = ResizedImageField(size=[800, 600], quality=75, upload_to='events/', blank=True, null=True)
    approval_status = models.CharField(max_length=20, choices=ApprovalStatus.choices, default=ApprovalStatus.PENDING)
    reviewed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='reviewed_events')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = EventQuerySet.as_manager()

    class Meta:
        ordering = ['start_time']
        constraints = [
            models.CheckConstraint(condition=Q(capacity__gte=1), name='event_capacity_positive'),
        ]

    @property
    def is_approved(self):
        return self.approval_status == ApprovalStatus.APPROVED

    def capacity_snapshot(self):
        return policy.capacity_snapshot(self, self.registrations.all())

    def __str__(self):
        return self.title


class Registration(models.Model):
    class Status(models.TextChoices):
        REGISTERED = policy.REGISTERED, 'Registered'
        CANCELLED = policy.CANCELLED, 'Cancelled'
        ATTENDED = policy.ATTENDED, 'Attended'

    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name='registrations')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='registrations')
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.REGISTERED)
    registration_date = models.DateTimeField(default=timezone.now)
    check_in_time = models.DateTimeField(blank=True, null=True)
    ticket_qr = models.ImageField(upload_to='tickets/', blank=True, null=True)

    class Meta:
        ordering = ['-registration_date']
        constraints = [
            models.UniqueConstraint(
                fields=['event', 'user'],
                condition=Q(status__in=sorted(policy.ACTIVE_STATUSES)),
                name='unique_active_registration',
            ),
        ]

    def __str__(self):
        return f"{self.user} - {self.event.title} ({self.status})"


class Feedback(models.Model):
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name='feedback')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='feedback')
    rating = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    comment = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['event', 'user'], name='unique_feedback_per_user'),
        ]


class Certificate(models.Model):
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name='certificates')
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='certificates')
    issued_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='issued_certificates')
    issued_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-issued_at']
        constraints = [
            models.UniqueConstraint(fields=['event', 'student'], name='unique_certificate_per_student'),
        ]

    def __str__(self):
        return f"{self.student} - {self.event.title}"
