from __future__ import annotations

import logging
from enum import Enum
from typing import Any


logger = logging.getLogger(__name__)


class VerificationStatus(str, Enum):
    NOT_VERIFIED = 'not_verified'
    APPROVED = 'approved'
    REJECTED = 'rejected'


_ALIASES = {
    'approved': VerificationStatus.APPROVED,
    # Legacy records used these for approved tutors.
    'active': VerificationStatus.APPROVED,
    'verified': VerificationStatus.APPROVED,
    'rejected': VerificationStatus.REJECTED,
    'not_verified': VerificationStatus.NOT_VERIFIED,
    'not verified': VerificationStatus.NOT_VERIFIED,
    'notverified': VerificationStatus.NOT_VERIFIED,
    'pending': VerificationStatus.NOT_VERIFIED,
    '': VerificationStatus.NOT_VERIFIED,
}


def parse_verification_status(raw: Any) -> VerificationStatus:
    if isinstance(raw, VerificationStatus):
        return raw
    clean = str(raw if raw is not None else '').strip().lower()
    status = _ALIASES.get(clean)
    if status is None:
        logger.warning('verification_status_unrecognized', extra={'raw_status': raw})
        return VerificationStatus.NOT_VERIFIED
    return status


def is_verified(raw: Any) -> bool:
    return parse_verification_status(raw) == VerificationStatus.APPROVED
