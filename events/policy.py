"""Registration, approval, feedback and certificate rules.

Every function here works on plain snapshots: an ``event`` is any object with
``id``, ``capacity``, ``start_time``, ``end_time`` and
``registration_deadline`` attributes, and a ``ledger`` is an iterable of rows
with ``id``, ``user_id``, ``status`` and ``check_in_time``. Django model
instances satisfy both, as do the dataclasses in the tests. Nothing in this
module reads from or writes to the database; callers persist the outcome.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from .exceptions import (
    AlreadyRegistered, AlreadySubmitted, CertificateAlreadyIssued,
    DeadlinePassed, EventFull, FeedbackNotOpen, InvalidTransition,
    NotEligible, NotRegistered,
)

REGISTERED = 'registered'
CANCELLED = 'cancelled'
ATTENDED = 'attended'

# Statuses that hold a seat
ACTIVE_STATUSES = frozenset({REGISTERED, ATTENDED})

PENDING = 'pending'
APPROVED = 'approved'
REJECTED = 'rejected'

APPROVAL_TRANSITIONS = {
    PENDING: {APPROVED, REJECTED},
    REJECTED: {APPROVED},
    APPROVED: set(),
}


def _now():
    return datetime.now(timezone.utc)


@dataclass
class RegistrationRow:
    event_id: object
    user_id: object
    status: str = REGISTERED
    registration_date: datetime = field(default_factory=_now)
    check_in_time: datetime = None
    id: object = None


@dataclass(frozen=True)
class CapacitySnapshot:
    capacity: int
    registered_count: int

    @property
    def available(self):
        return max(self.capacity - self.registered_count, 0)

    @property
    def is_full(self):
        return self.registered_count >= self.capacity


def active_rows(ledger):
    """The one definition of 'holds a seat' used for every count."""
    return [row for row in ledger if row.status in ACTIVE_STATUSES]


def find_active(ledger, user_id):
    for row in active_rows(ledger):
        if row.user_id == user_id:
            return row
    return None


def capacity_snapshot(event, ledger):
    return CapacitySnapshot(capacity=event.capacity, registered_count=len(active_rows(ledger)))


def attempt_register(event, ledger, user_id, now=None):
    """
    Decide whether ``user_id`` may take a seat at ``event``.

    Checks run in order: existing active registration, deadline, capacity.
    Returns an unsaved :class:`RegistrationRow`.
    """
    now = now or _now()
    ledger = list(ledger)

    if find_active(ledger, user_id) is not None:
        raise AlreadyRegistered()

    deadline = event.registration_deadline
    if deadline is not None and deadline < now:
        raise DeadlinePassed()

    if capacity_snapshot(event, ledger).is_full:
        raise EventFull()

    return RegistrationRow(event_id=event.id, user_id=user_id, status=REGISTERED, registration_date=now)


def cancel(ledger, event_id, user_id):
    row = find_active([r for r in ledger if r.event_id == event_id], user_id)
    if row is None:
        raise NotRegistered()
    row.status = CANCELLED
    return row


def mark_attended(ledger, registration_id, now=None):
    """Marking an already-attended row again keeps its first check-in time."""
    for row in ledger:
        if row.id == registration_id:
            break
    else:
        raise NotRegistered('Registration not found')

    if row.status == CANCELLED:
        raise NotRegistered('Registration was cancelled')

    if row.status != ATTENDED:
        row.status = ATTENDED
        row.check_in_time = now or _now()
    return row


def default_registration_deadline(start_time, offset=timedelta(hours=1)):
    return start_time - offset


def validate_schedule(start_time, end_time, registration_deadline=None):
    """Returns a list of (field, message) problems; empty when the window is valid."""
    errors = []
    if start_time and end_time and end_time < start_time:
        errors.append(('end_time', 'End time must be after the start time'))
    if start_time and registration_deadline and registration_deadline >= start_time:
        errors.append(('registration_deadline', 'Registration deadline must be before the event start time'))
    return errors


def transition_approval(current, target):
    if target not in APPROVAL_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Cannot move from '{current}' to '{target}'")
    return target


def check_feedback(event, ledger, feedback, user_id, now=None):
    """
    A user may leave feedback once, for an event they held a seat at,
    after the event has ended.
    """
    now = now or _now()
    if find_active(ledger, user_id) is None:
        raise NotEligible('Only registered attendees can leave feedback')
    if any(item.user_id == user_id for item in feedback):
        raise AlreadySubmitted()
    if event.end_time > now:
        raise FeedbackNotOpen()


def check_certificate(ledger, certificates, student_id):
    attended = [row for row in ledger if row.user_id == student_id and row.status == ATTENDED]
    if not attended:
        raise NotEligible('Certificates are only issued to attendees')
    if any(cert.student_id == student_id for cert in certificates):
        raise CertificateAlreadyIssued()
