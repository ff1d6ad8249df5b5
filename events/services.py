"""
Persistence for the registration policy.

Each mutating call takes a row lock on the event, re-reads the ledger inside
the same transaction, lets :mod:`events.policy` decide, and writes the
result. Two concurrent registrations for the last seat therefore serialize
on the event row; the partial unique constraint on ``Registration`` backs up
the one-active-registration rule.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from . import policy
from .exceptions import (
    AlreadyRegistered, AlreadySubmitted, CertificateAlreadyIssued,
    EventNotApproved, NotAuthorized,
)
from .models import ApprovalStatus, Certificate, Event, Feedback, Profile, Registration, user_role

logger = logging.getLogger(__name__)


def _locked_event(event_id):
    return Event.objects.select_for_update().get(pk=event_id)


def can_manage_event(user, event):
    return user_role(user) == Profile.Role.ADMIN or (user.is_authenticated and event.organizer_id == user.pk)


def create_event(organizer, tags=(), **fields):
    """New events always start pending; the deadline defaults to an hour before the start."""
    if not fields.get('registration_deadline'):
        offset = timedelta(minutes=settings.DEFAULT_DEADLINE_OFFSET_MINUTES)
        fields['registration_deadline'] = policy.default_registration_deadline(fields['start_time'], offset)
    fields['approval_status'] = ApprovalStatus.PENDING
    event = Event.objects.create(organizer=organizer, **fields)
    if tags:
        event.tags.set(tags)
    logger.info("Event %s created by %s, awaiting approval", event.pk, organizer)
    return event


def update_event(event, editor, tags=None, **fields):
    if not can_manage_event(editor, event):
        raise NotAuthorized('Only the organizer or an admin can edit this event')
    fields.pop('approval_status', None)
    for name, value in fields.items():
        setattr(event, name, value)
    event.save()
    if tags is not None:
        event.tags.set(tags)
    logger.info("Event %s updated by %s", event.pk, editor)
    return event


def review_event(event_id, admin, approve):
    if user_role(admin) != Profile.Role.ADMIN:
        raise NotAuthorized('Only admins can approve or reject events')
    target = ApprovalStatus.APPROVED if approve else ApprovalStatus.REJECTED
    with transaction.atomic():
        event = _locked_event(event_id)
        event.approval_status = policy.transition_approval(event.approval_status, target)
        event.reviewed_by = admin
        event.save(update_fields=['approval_status', 'reviewed_by', 'updated_at'])
    logger.info("Event %s %s by %s", event.pk, target, admin)
    return event


def review_organizer(profile, admin, approve):
    if user_role(admin) != Profile.Role.ADMIN:
        raise NotAuthorized('Only admins can review organizers')
    target = ApprovalStatus.APPROVED if approve else ApprovalStatus.REJECTED
    profile.approval_status = policy.transition_approval(profile.approval_status, target)
    profile.save(update_fields=['approval_status', 'updated_at'])
    logger.info("Organizer %s %s by %s", profile.user_id, target, admin)
    return profile


def register(event_id, user, now=None):
    now = now or timezone.now()
    try:
        with transaction.atomic():
            event = _locked_event(event_id)
            if not event.is_approved:
                raise EventNotApproved()
            ledger = list(event.registrations.all())
            row = policy.attempt_register(event, ledger, user.pk, now=now)
            registration = Registration.objects.create(
                event=event, user=user, status=row.status, registration_date=row.registration_date,
            )
    except IntegrityError:
        logger.warning("Duplicate active registration rejected for user %s on event %s", user.pk, event_id)
        raise AlreadyRegistered()
    logger.info("User %s registered for event %s", user.pk, event_id)
    return registration


def cancel_registration(event_id, user):
    with transaction.atomic():
        event = _locked_event(event_id)
        ledger = list(event.registrations.filter(user=user))
        registration = policy.cancel(ledger, event.pk, user.pk)
        registration.save(update_fields=['status'])
    logger.info("User %s cancelled registration for event %s", user.pk, event_id)
    return registration


def mark_attended(registration_id, actor, now=None):
    with transaction.atomic():
        registration = Registration.objects.select_for_update().select_related('event').get(pk=registration_id)
        if not can_manage_event(actor, registration.event):
            raise NotAuthorized('You are not the organizer for this event')
        policy.mark_attended([registration], registration.pk, now=now or timezone.now())
        registration.save(update_fields=['status', 'check_in_time'])
    logger.info("Registration %s marked attended by %s", registration.pk, actor)
    return registration


def submit_feedback(event_id, user, rating, comment='', now=None):
    event = Event.objects.get(pk=event_id)
    policy.check_feedback(
        event,
        event.registrations.filter(user=user),
        event.feedback.filter(user=user),
        user.pk,
        now=now or timezone.now(),
    )
    try:
        with transaction.atomic():
            feedback = Feedback.objects.create(event=event, user=user, rating=rating, comment=comment)
    except IntegrityError:
        raise AlreadySubmitted()
    logger.info("Feedback %s submitted for event %s", feedback.pk, event_id)
    return feedback


def issue_certificate(event_id, student, issuer):
    event = Event.objects.get(pk=event_id)
    if not can_manage_event(issuer, event):
        raise NotAuthorized('You do not have permission to issue certificates for this event')
    policy.check_certificate(
        event.registrations.filter(user=student),
        event.certificates.filter(student=student),
        student.pk,
    )
    try:
        with transaction.atomic():
            certificate = Certificate.objects.create(event=event, student=student, issued_by=issuer)
    except IntegrityError:
        raise CertificateAlreadyIssued()
    logger.info("Certificate issued to %s for event %s", student.pk, event_id)
    return certificate
