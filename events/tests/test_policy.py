from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from django.test import SimpleTestCase

from events import policy
from events.exceptions import (
    AlreadyRegistered, AlreadySubmitted, CertificateAlreadyIssued,
    DeadlinePassed, EventFull, FeedbackNotOpen, InvalidTransition,
    NotEligible, NotRegistered,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@dataclass
class EventStub:
    capacity: int
    registration_deadline: datetime = None
    start_time: datetime = NOW + timedelta(days=1)
    end_time: datetime = NOW + timedelta(days=1, hours=2)
    id: int = 1


@dataclass
class FeedbackStub:
    user_id: int


@dataclass
class CertificateStub:
    student_id: int


class RegistrationPolicyTest(SimpleTestCase):
    def setUp(self):
        self.event = EventStub(capacity=2)
        self.ledger = []

    def admit(self, user_id, event=None):
        row = policy.attempt_register(event or self.event, self.ledger, user_id, now=NOW)
        row.id = len(self.ledger) + 1
        self.ledger.append(row)
        return row

    def registered_count(self):
        return policy.capacity_snapshot(self.event, self.ledger).registered_count

    def test_new_row_is_registered_and_stamped(self):
        row = self.admit('a')
        self.assertEqual(row.status, policy.REGISTERED)
        self.assertEqual(row.registration_date, NOW)
        self.assertEqual(row.event_id, self.event.id)

    def test_capacity_scenario(self):
        self.admit('a')
        self.assertEqual(self.registered_count(), 1)
        self.admit('b')
        self.assertEqual(self.registered_count(), 2)
        with self.assertRaises(EventFull):
            self.admit('c')

        policy.cancel(self.ledger, self.event.id, 'a')
        self.assertEqual(self.registered_count(), 1)
        self.admit('c')
        self.assertEqual(self.registered_count(), 2)

    def test_full_event_rejects_next_user(self):
        for capacity in (1, 3, 5):
            event = EventStub(capacity=capacity)
            ledger = [policy.RegistrationRow(event_id=1, user_id=n, id=n) for n in range(capacity)]
            with self.assertRaises(EventFull):
                policy.attempt_register(event, ledger, 'late', now=NOW)

    def test_second_attempt_while_active_is_rejected(self):
        self.admit('a')
        with self.assertRaises(AlreadyRegistered):
            self.admit('a')

    def test_already_registered_wins_over_full(self):
        self.event.capacity = 1
        self.admit('a')
        with self.assertRaises(AlreadyRegistered):
            self.admit('a')

    def test_attended_row_still_counts_as_registered(self):
        row = self.admit('a')
        policy.mark_attended(self.ledger, row.id, now=NOW)
        with self.assertRaises(AlreadyRegistered):
            self.admit('a')
        self.assertEqual(self.registered_count(), 1)

    def test_deadline_in_past_rejects_even_with_room(self):
        event = EventStub(capacity=100, registration_deadline=NOW - timedelta(hours=1))
        with self.assertRaises(DeadlinePassed):
            policy.attempt_register(event, [], 'a', now=NOW)

    def test_deadline_in_past_rejects_full_event_too(self):
        for capacity in (1, 3):
            event = EventStub(capacity=capacity, registration_deadline=NOW - timedelta(hours=1))
            ledger = [policy.RegistrationRow(event_id=1, user_id=n, id=n) for n in range(capacity)]
            self.assertTrue(policy.capacity_snapshot(event, ledger).is_full)
            with self.assertRaises(DeadlinePassed):
                policy.attempt_register(event, ledger, 'late', now=NOW)

    def test_deadline_in_future_admits(self):
        event = EventStub(capacity=1, registration_deadline=NOW + timedelta(minutes=5))
        row = policy.attempt_register(event, [], 'a', now=NOW)
        self.assertEqual(row.user_id, 'a')

    def test_cancel_then_register_again(self):
        self.admit('a')
        cancelled = policy.cancel(self.ledger, self.event.id, 'a')
        self.assertEqual(cancelled.status, policy.CANCELLED)
        row = self.admit('a')
        self.assertEqual(row.status, policy.REGISTERED)

    def test_cancel_without_registration(self):
        with self.assertRaises(NotRegistered):
            policy.cancel(self.ledger, self.event.id, 'nobody')

    def test_cancel_twice(self):
        self.admit('a')
        policy.cancel(self.ledger, self.event.id, 'a')
        with self.assertRaises(NotRegistered):
            policy.cancel(self.ledger, self.event.id, 'a')

    def test_count_after_registrations_and_cancellations(self):
        self.event.capacity = 10
        users = ['u%d' % n for n in range(6)]
        for user in users:
            self.admit(user)
        for user in users[:4]:
            policy.cancel(self.ledger, self.event.id, user)
        self.assertEqual(self.registered_count(), 2)

    def test_snapshot_available_and_full(self):
        self.admit('a')
        snapshot = policy.capacity_snapshot(self.event, self.ledger)
        self.assertEqual(snapshot.available, 1)
        self.assertFalse(snapshot.is_full)
        self.admit('b')
        self.assertTrue(policy.capacity_snapshot(self.event, self.ledger).is_full)


class AttendanceTest(SimpleTestCase):
    def setUp(self):
        self.row = policy.RegistrationRow(event_id=1, user_id='a', id=7)

    def test_mark_attended_sets_check_in(self):
        policy.mark_attended([self.row], 7, now=NOW)
        self.assertEqual(self.row.status, policy.ATTENDED)
        self.assertEqual(self.row.check_in_time, NOW)

    def test_mark_attended_again_keeps_first_check_in(self):
        policy.mark_attended([self.row], 7, now=NOW)
        policy.mark_attended([self.row], 7, now=NOW + timedelta(hours=1))
        self.assertEqual(self.row.status, policy.ATTENDED)
        self.assertEqual(self.row.check_in_time, NOW)

    def test_cancelled_row_cannot_attend(self):
        self.row.status = policy.CANCELLED
        with self.assertRaises(NotRegistered):
            policy.mark_attended([self.row], 7, now=NOW)

    def test_unknown_registration(self):
        with self.assertRaises(NotRegistered):
            policy.mark_attended([self.row], 99, now=NOW)


class ScheduleTest(SimpleTestCase):
    def test_default_deadline_is_an_hour_before_start(self):
        start = NOW + timedelta(days=3)
        self.assertEqual(policy.default_registration_deadline(start), start - timedelta(hours=1))

    def test_deadline_must_precede_start(self):
        start = NOW + timedelta(days=1)
        problems = policy.validate_schedule(start, start + timedelta(hours=1), start)
        self.assertEqual([name for name, _ in problems], ['registration_deadline'])

    def test_end_before_start(self):
        start = NOW + timedelta(days=1)
        problems = policy.validate_schedule(start, start - timedelta(minutes=1))
        self.assertEqual([name for name, _ in problems], ['end_time'])

    def test_valid_window(self):
        start = NOW + timedelta(days=1)
        self.assertEqual(policy.validate_schedule(start, start + timedelta(hours=2), start - timedelta(hours=3)), [])


class ApprovalTransitionTest(SimpleTestCase):
    def test_pending_can_be_approved_or_rejected(self):
        self.assertEqual(policy.transition_approval(policy.PENDING, policy.APPROVED), policy.APPROVED)
        self.assertEqual(policy.transition_approval(policy.PENDING, policy.REJECTED), policy.REJECTED)

    def test_rejected_can_be_reconsidered(self):
        self.assertEqual(policy.transition_approval(policy.REJECTED, policy.APPROVED), policy.APPROVED)

    def test_approved_is_terminal(self):
        for target in (policy.REJECTED, policy.PENDING, policy.APPROVED):
            with self.assertRaises(InvalidTransition):
                policy.transition_approval(policy.APPROVED, target)


class FeedbackAdmissionTest(SimpleTestCase):
    def setUp(self):
        self.past_event = EventStub(capacity=5, start_time=NOW - timedelta(days=1), end_time=NOW - timedelta(hours=20))
        self.ledger = [policy.RegistrationRow(event_id=1, user_id='a', id=1)]

    def test_unregistered_user_is_not_eligible(self):
        with self.assertRaises(NotEligible):
            policy.check_feedback(self.past_event, self.ledger, [], 'stranger', now=NOW)

    def test_cancelled_registration_is_not_eligible(self):
        self.ledger[0].status = policy.CANCELLED
        with self.assertRaises(NotEligible):
            policy.check_feedback(self.past_event, self.ledger, [], 'a', now=NOW)

    def test_registered_user_after_event_may_submit_once(self):
        policy.check_feedback(self.past_event, self.ledger, [], 'a', now=NOW)
        with self.assertRaises(AlreadySubmitted):
            policy.check_feedback(self.past_event, self.ledger, [FeedbackStub(user_id='a')], 'a', now=NOW)

    def test_feedback_waits_for_event_end(self):
        upcoming = EventStub(capacity=5)
        with self.assertRaises(FeedbackNotOpen):
            policy.check_feedback(upcoming, self.ledger, [], 'a', now=NOW)


class CertificateEligibilityTest(SimpleTestCase):
    def test_only_attendees(self):
        ledger = [policy.RegistrationRow(event_id=1, user_id='a', id=1)]
        with self.assertRaises(NotEligible):
            policy.check_certificate(ledger, [], 'a')

    def test_once_per_student(self):
        ledger = [policy.RegistrationRow(event_id=1, user_id='a', status=policy.ATTENDED, id=1)]
        policy.check_certificate(ledger, [], 'a')
        with self.assertRaises(CertificateAlreadyIssued):
            policy.check_certificate(ledger, [CertificateStub(student_id='a')], 'a')
