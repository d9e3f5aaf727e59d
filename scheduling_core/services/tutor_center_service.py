from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from scheduling_core.config import settings
from scheduling_core.core.errors import AlreadyAssigned, NotFoundError, TutorNotVerified
from scheduling_core.core.geo import CenterMatch, suggest_centers
from scheduling_core.core.verification import VerificationStatus, parse_verification_status
from scheduling_core.models import Center, Tutor
from scheduling_core.services.record_lock import commit_or_conflict, load_for_update, record_lock


logger = logging.getLogger(__name__)


def center_match_to_dict(match: CenterMatch) -> dict[str, Any]:
    center = match.center
    return {
        'center_id': center.id,
        'name': center.name,
        'address': center.address or '',
        'latitude': center.latitude,
        'longitude': center.longitude,
        'tutor_count': int(center.tutor_count or 0),
        'distance_km': round(match.distance_km, 3),
    }


def list_unassigned_tutors(db: Session) -> list[Tutor]:
    rows = db.query(Tutor).filter(Tutor.center_id.is_(None)).order_by(Tutor.full_name.asc(), Tutor.id.asc()).all()
    return [row for row in rows if parse_verification_status(row.verification_status) != VerificationStatus.REJECTED]


def _get_tutor(db: Session, tutor_id: str) -> Tutor:
    row = db.query(Tutor).filter(Tutor.id == tutor_id).first()
    if row is None:
        raise NotFoundError(f'Tutor {tutor_id} was not found.', context={'tutor_id': tutor_id})
    return row


def suggest_centers_for_tutor(db: Session, tutor_id: str, *, radius_km: float | None = None) -> list[CenterMatch]:
    tutor = _get_tutor(db, tutor_id)
    radius = settings.default_search_radius_km if radius_km is None else radius_km
    matches = suggest_centers(tutor.latitude, tutor.longitude, radius, db.query(Center).all())
    logger.info(
        'centers_suggested',
        extra={'tutor_id': tutor_id, 'radius_km': radius, 'matches': len(matches)},
    )
    return matches


def assign_tutor_to_center(db: Session, tutor_id: str, center_id: str) -> Tutor:
    with record_lock('tutor', tutor_id):
        try:
            tutor = load_for_update(db, Tutor, tutor_id, label='Tutor')
            previous_center_id = tutor.center_id
            with record_lock('center', center_id, previous_center_id):
                center = load_for_update(db, Center, center_id, label='Center')
                status = parse_verification_status(tutor.verification_status)
                if status != VerificationStatus.APPROVED:
                    raise TutorNotVerified(
                        f'{tutor.full_name or tutor.id} is {status.value.replace("_", " ")} and cannot join a center.',
                        context={'tutor_id': tutor_id, 'verification_status': status.value},
                    )
                if previous_center_id == center.id:
                    raise AlreadyAssigned(
                        f'{tutor.full_name or tutor.id} already works at {center.name}.',
                        context={'tutor_id': tutor_id, 'center_id': center_id},
                    )

                if previous_center_id:
                    previous = load_for_update(db, Center, previous_center_id, label='Center')
                    previous.tutor_count = max(0, int(previous.tutor_count or 0) - 1)
                tutor.center_id = center.id
                center.tutor_count = int(center.tutor_count or 0) + 1
                commit_or_conflict(db, entity='tutor', entity_id=tutor_id)
        except Exception:
            db.rollback()
            raise

    db.refresh(tutor)
    logger.info(
        'tutor_assigned_to_center',
        extra={'tutor_id': tutor_id, 'center_id': center_id, 'previous_center_id': previous_center_id},
    )
    return tutor
