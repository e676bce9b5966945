"""Domain exceptions for the lead and sequence services.

Services raise these; the HTTP layer maps them to status codes in
`app.api.v1.errors`.
"""


class LeadFlowError(Exception):
    """Base exception for all domain errors."""
    pass


class BusinessNotFound(LeadFlowError):
    pass


class LeadNotFound(LeadFlowError):
    pass


class SequenceNotFound(LeadFlowError):
    pass


class EnrollmentNotFound(LeadFlowError):
    pass


class AlreadyEnrolled(LeadFlowError):
    """Lead already has an active enrollment in this sequence."""
    pass


class LeadNotEnrollable(LeadFlowError):
    """Lead is booked or lost and cannot start a new sequence."""
    pass


class LeadUnsubscribed(LeadFlowError):
    """Lead opted out of automated messages."""
    pass


class LeadInUse(LeadFlowError):
    """Lead is referenced by sequence enrollments and cannot be deleted."""
    pass


class SequenceInUse(LeadFlowError):
    """Sequence has active enrollments; its steps cannot be changed."""
    pass


class InvalidStatusTransition(LeadFlowError):
    pass


class GenerationUnavailable(LeadFlowError):
    """Content generator failed: missing credentials, timeout, bad response."""
    pass
