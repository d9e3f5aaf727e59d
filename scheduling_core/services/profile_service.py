from __future__ import annotations

import logging
from typing import Any, Iterable

from sqlalchemy.orm import Session

from scheduling_core.core.errors import NotFoundError, UpstreamError
from scheduling_core.core.verification import parse_verification_status
from scheduling_core.integrations.client_factory import get_profile_client
from scheduling_core.integrations.clients import BaseProfileClient
from scheduling_core.models import Tutor


logger = logging.getLogger(__name__)

UNKNOWN_TUTOR_NAME = 'Unknown tutor'


def tutor_to_dict(row: Tutor) -> dict[str, Any]:
    return {
        'user_id': row.id,
        'full_name': row.full_name or '',
        'email': row.email or '',
        'latitude': row.latitude,
        'longitude': row.longitude,
        'verification_status': parse_verification_status(row.verification_status).value,
        'center_id': row.center_id,
    }


def _profile_name(profile: dict[str, Any] | None) -> str:
    if not profile:
        return ''
    for key in ('fullName', 'full_name', 'FullName', 'name', 'username'):
        value = str(profile.get(key) or '').strip()
        if value:
            return value
    return ''


def load_tutors(db: Session, tutor_ids: Iterable[str | None]) -> dict[str, Tutor]:
    ids = sorted({str(tutor_id) for tutor_id in tutor_ids if tutor_id})
    if not ids:
        return {}
    return {row.id: row for row in db.query(Tutor).filter(Tutor.id.in_(ids)).all()}


def resolve_tutor_name(
    tutor_id: str | None,
    tutors_by_id: dict[str, Tutor],
    *,
    profile_client: BaseProfileClient | None = None,
) -> str | None:
    """Display name for a tutor: own name, then profile service, then email, then id."""
    if not tutor_id:
        return None
    row = tutors_by_id.get(tutor_id)
    if row is not None and (row.full_name or '').strip():
        return row.full_name.strip()

    client = profile_client or get_profile_client()
    try:
        name = _profile_name(client.get_user(tutor_id))
    except UpstreamError as exc:
        # A name lookup must not break a list view.
        logger.warning('tutor_name_lookup_failed', extra={'tutor_id': tutor_id, 'error': exc.reason})
        name = ''
    if name:
        return name
    if row is not None and (row.email or '').strip():
        return row.email.strip()
    return tutor_id or UNKNOWN_TUTOR_NAME


def get_user_profile(db: Session, user_id: str, *, profile_client: BaseProfileClient | None = None) -> dict[str, Any]:
    row = db.query(Tutor).filter(Tutor.id == user_id).first()
    if row is not None:
        return tutor_to_dict(row)
    client = profile_client or get_profile_client()
    profile = client.get_user(user_id)
    if not profile:
        raise NotFoundError(f'User {user_id} was not found.', context={'user_id': user_id})
    return {
        'user_id': user_id,
        'full_name': _profile_name(profile),
        'email': str(profile.get('email') or ''),
        'latitude': profile.get('latitude'),
        'longitude': profile.get('longitude'),
        'verification_status': parse_verification_status(profile.get('verificationStatus') or profile.get('verification_status')).value,
        'center_id': profile.get('centerId') or profile.get('center_id'),
    }
