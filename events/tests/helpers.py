import shutil
import tempfile
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.utils import timezone

from events.models import ApprovalStatus, Event, Profile

User = get_user_model()

TEMP_MEDIA = tempfile.mkdtemp(prefix='campus-events-media-')


def make_user(username, role=Profile.Role.STUDENT, approval=ApprovalStatus.APPROVED, **extra):
    user = User.objects.create_user(username=username, email=f"{username}@campus.test", password='pass12345', **extra)
    user.profile.role = role
    user.profile.approval_status = approval
    user.profile.save()
    return user


def make_event(organizer, capacity=2, starts_in=timedelta(days=2), duration=timedelta(hours=2),
               deadline=None, approval=ApprovalStatus.APPROVED, **extra):
    start = timezone.now() + starts_in
    return Event.objects.create(
        organizer=organizer,
        title=extra.pop('title', 'Robotics Workshop'),
        description=extra.pop('description', 'Build a line follower'),
        location=extra.pop('location', 'Lab 3'),
        start_time=start,
        end_time=start + duration,
        registration_deadline=deadline,
        capacity=capacity,
        approval_status=approval,
        **extra
    )


@override_settings(MEDIA_ROOT=TEMP_MEDIA)
class CampusTestCase(TestCase):
    """Registrations write ticket images, so media goes to a scratch directory."""

    @classmethod
    def tearDownClass(cls):
        super().tearDownClass()
        shutil.rmtree(TEMP_MEDIA, ignore_errors=True)
