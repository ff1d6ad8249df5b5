from rest_framework import status


class DomainError(Exception):
    """
    Base class for rule violations raised by the registration policy and
    the service layer. Views turn these into error responses.
    """
    code = 'domain_error'
    default_message = 'The operation is not allowed.'
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message=None):
        super().__init__(message or self.default_message)


class AlreadyRegistered(DomainError):
    code = 'already_registered'
    default_message = 'User already registered for this event'


class DeadlinePassed(DomainError):
    code = 'deadline_passed'
    default_message = 'Registration deadline has passed'


class EventFull(DomainError):
    code = 'event_full'
    default_message = 'Event is at maximum capacity'


class NotRegistered(DomainError):
    code = 'not_registered'
    default_message = 'User not registered for this event'


class EventNotApproved(DomainError):
    code = 'event_not_approved'
    default_message = 'Event is not open for registration'


class NotEligible(DomainError):
    code = 'not_eligible'
    default_message = 'User is not eligible for this action'
    status_code = status.HTTP_403_FORBIDDEN


class FeedbackNotOpen(NotEligible):
    code = 'feedback_not_open'
    default_message = 'Feedback opens once the event has ended'


class AlreadySubmitted(DomainError):
    code = 'already_submitted'
    default_message = 'Feedback already submitted for this event'


class CertificateAlreadyIssued(DomainError):
    code = 'certificate_already_issued'
    default_message = 'Certificate already issued to this attendee'


class InvalidTransition(DomainError):
    code = 'invalid_transition'
    default_message = 'Approval state cannot change'


class NotAuthorized(DomainError):
    code = 'not_authorized'
    default_message = 'You do not have permission to perform this action'
    status_code = status.HTTP_403_FORBIDDEN
