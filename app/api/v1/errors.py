"""Translate domain exceptions into HTTP errors."""

from fastapi import HTTPException

from app.core.exceptions import (
    AlreadyEnrolled,
    BusinessNotFound,
    EnrollmentNotFound,
    LeadFlowError,
    LeadInUse,
    LeadNotEnrollable,
    LeadNotFound,
    LeadUnsubscribed,
    SequenceInUse,
    SequenceNotFound,
)

_STATUS_CODES = {
    BusinessNotFound: 404,
    LeadNotFound: 404,
    SequenceNotFound: 404,
    EnrollmentNotFound: 404,
    AlreadyEnrolled: 409,
    LeadInUse: 409,
    SequenceInUse: 409,
    LeadUnsubscribed: 409,
    LeadNotEnrollable: 409,
}


def http_error(exc: LeadFlowError) -> HTTPException:
    """404 for missing resources, 409 for conflicts, 400 for everything else."""
    for exc_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
