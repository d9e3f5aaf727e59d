"""Typed failures raised by the scheduling core.

Every error carries a machine-readable ``code`` and a human-readable
``reason`` that can be shown to staff as-is. The HTTP layer maps the error
``kind`` to a status code; services never build HTTP responses themselves.
"""

from __future__ import annotations

from typing import Any


class SchedulingError(Exception):
    kind = 'scheduling_error'
    status_code = 400
    default_code = 'scheduling_error'

    def __init__(self, reason: str, *, code: str | None = None, context: dict[str, Any] | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.code = code or self.default_code
        self.context = dict(context or {})

    def to_dict(self) -> dict[str, Any]:
        return {'error': self.kind, 'code': self.code, 'detail': self.reason}


class ValidationError(SchedulingError):
    kind = 'validation_error'
    status_code = 422
    default_code = 'validation_error'


class PreconditionFailed(SchedulingError):
    kind = 'precondition_failed'
    status_code = 409
    default_code = 'precondition_failed'


class ConflictError(SchedulingError):
    kind = 'conflict'
    status_code = 409
    default_code = 'conflict'


class NotFoundError(SchedulingError):
    kind = 'not_found'
    status_code = 404
    default_code = 'not_found'


class UpstreamError(SchedulingError):
    kind = 'upstream_error'
    status_code = 502
    default_code = 'upstream_error'


class IncompleteAssignment(ValidationError):
    default_code = 'incomplete_assignment'


class DuplicateTutor(ValidationError):
    default_code = 'duplicate_tutor'


class UnknownContractStatus(ValidationError):
    default_code = 'unknown_contract_status'

    def __init__(self, raw: Any) -> None:
        super().__init__(f'Unrecognized contract status: {raw!r}', context={'raw': raw})
        self.raw = raw


class TutorRequired(PreconditionFailed):
    default_code = 'tutor_required'


class InvalidTransition(PreconditionFailed):
    default_code = 'invalid_transition'


class TooLateToReschedule(PreconditionFailed):
    default_code = 'too_late_to_reschedule'


class LocationNotSet(PreconditionFailed):
    default_code = 'location_not_set'


class TutorNotVerified(PreconditionFailed):
    default_code = 'tutor_not_verified'


class AlreadyAssigned(PreconditionFailed):
    default_code = 'already_assigned'
