from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from scheduling_core.core.assignment_rules import validate_assignment
from scheduling_core.core.contract_status import (
    ContractStatus,
    check_transition,
    normalize_contract_status,
    parse_contract_status,
)
from scheduling_core.core.errors import (
    ConflictError,
    NotFoundError,
    PreconditionFailed,
    TutorNotVerified,
    ValidationError,
)
from scheduling_core.core.timeparse import format_hhmm, parse_date_value, slots_overlap
from scheduling_core.core.verification import VerificationStatus, is_verified
from scheduling_core.integrations.clients import BaseProfileClient
from scheduling_core.models import Contract, Tutor
from scheduling_core.services.profile_service import load_tutors, resolve_tutor_name, tutor_to_dict
from scheduling_core.services.record_lock import commit_or_conflict, load_for_update, record_lock


logger = logging.getLogger(__name__)

ASSIGNABLE_STATUSES = frozenset({ContractStatus.PENDING, ContractStatus.ACTIVE})
BINDING_STATUSES = (ContractStatus.PENDING.value, ContractStatus.ACTIVE.value)
MAX_PAGE_SIZE = 200


def _normalized_status_column():
    return func.lower(func.trim(Contract.status))


def contract_to_dict(
    row: Contract,
    tutors_by_id: dict[str, Tutor] | None = None,
    *,
    profile_client: BaseProfileClient | None = None,
) -> dict[str, Any]:
    tutors = tutors_by_id if tutors_by_id is not None else {}
    return {
        'id': row.id,
        'child_id': row.child_id,
        'package_id': row.package_id,
        'center_id': row.center_id,
        'status': normalize_contract_status(row.status, contract_id=row.id).value,
        'start_date': row.start_date.isoformat() if row.start_date else None,
        'end_date': row.end_date.isoformat() if row.end_date else None,
        'start_time': format_hhmm(row.start_time),
        'end_time': format_hhmm(row.end_time),
        'is_online': bool(row.is_online),
        'main_tutor_id': row.main_tutor_id,
        'main_tutor_name': resolve_tutor_name(row.main_tutor_id, tutors, profile_client=profile_client),
        'substitute_tutor1_id': row.substitute_tutor1_id,
        'substitute_tutor1_name': resolve_tutor_name(row.substitute_tutor1_id, tutors, profile_client=profile_client),
        'substitute_tutor2_id': row.substitute_tutor2_id,
        'substitute_tutor2_name': resolve_tutor_name(row.substitute_tutor2_id, tutors, profile_client=profile_client),
        'version': row.version,
        'created_at': row.created_at.isoformat() if row.created_at else None,
    }


def list_contracts(
    db: Session,
    *,
    status: str | None = None,
    center_id: str | None = None,
    tutor_id: str | None = None,
    needs_tutor: bool | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Contract]:
    """Page through contracts, newest first.

    Stored statuses are compared case- and whitespace-insensitively. Rows with
    an unrecognized status are listed under ``pending``, the same way they are
    rendered.
    """
    query = db.query(Contract)
    if status is not None and str(status).strip():
        wanted = parse_contract_status(status)
        column = _normalized_status_column()
        if wanted == ContractStatus.PENDING:
            known = [item.value for item in ContractStatus if item != ContractStatus.PENDING]
            query = query.filter(or_(column == wanted.value, column.is_(None), column.not_in(known)))
        else:
            query = query.filter(column == wanted.value)
    if center_id:
        query = query.filter(Contract.center_id == center_id)
    if tutor_id:
        query = query.filter(
            (Contract.main_tutor_id == tutor_id)
            | (Contract.substitute_tutor1_id == tutor_id)
            | (Contract.substitute_tutor2_id == tutor_id)
        )
    if needs_tutor is True:
        query = query.filter(Contract.main_tutor_id.is_(None))
    elif needs_tutor is False:
        query = query.filter(Contract.main_tutor_id.is_not(None))
    limit = max(1, min(int(limit), MAX_PAGE_SIZE))
    offset = max(0, int(offset))
    return query.order_by(Contract.created_at.desc(), Contract.id.asc()).offset(offset).limit(limit).all()


def serialize_contracts(
    db: Session,
    rows: list[Contract],
    *,
    profile_client: BaseProfileClient | None = None,
) -> list[dict[str, Any]]:
    tutors = load_tutors(db, (tutor_id for row in rows for tutor_id in row.roster_ids()))
    return [contract_to_dict(row, tutors, profile_client=profile_client) for row in rows]


def get_contract(db: Session, contract_id: str) -> Contract:
    row = db.query(Contract).filter(Contract.id == contract_id).first()
    if row is None:
        raise NotFoundError(f'Contract {contract_id} was not found.', context={'contract_id': contract_id})
    return row


def _busy_tutor_ids(
    db: Session,
    *,
    start_date: date | None,
    end_date: date | None,
    start_time: str | None,
    end_time: str | None,
    exclude_contract_id: str | None = None,
) -> set[str]:
    """Tutors on another pending/active contract whose dates and time slot clash."""
    if start_date is None or end_date is None:
        return set()
    query = db.query(Contract).filter(
        _normalized_status_column().in_(BINDING_STATUSES),
        Contract.start_date <= end_date,
        Contract.end_date >= start_date,
    )
    if exclude_contract_id:
        query = query.filter(Contract.id != exclude_contract_id)
    busy: set[str] = set()
    for other in query.all():
        if slots_overlap(start_time, end_time, other.start_time, other.end_time):
            busy.update(other.roster_ids())
    return busy


def list_candidate_tutors(
    db: Session,
    *,
    contract_id: str | None = None,
    center_id: str | None = None,
    is_online: bool = False,
    start_date: Any = None,
    end_date: Any = None,
    start_time: str | None = None,
    end_time: str | None = None,
) -> list[Tutor]:
    """Verified tutors who could take on a contract.

    With ``contract_id`` the center, online flag and schedule come from the
    contract itself; otherwise from the arguments.
    """
    if contract_id:
        contract = get_contract(db, contract_id)
        center_id = contract.center_id
        is_online = bool(contract.is_online)
        window_start, window_end = contract.start_date, contract.end_date
        start_time, end_time = contract.start_time, contract.end_time
    else:
        if not is_online and not center_id:
            raise ValidationError('Pass a center_id, or is_online=true for online contracts.', code='center_required')
        window_start = parse_date_value(start_date)
        window_end = parse_date_value(end_date) or window_start

    query = db.query(Tutor)
    if not is_online:
        query = query.filter(Tutor.center_id == center_id)
    rows = [row for row in query.order_by(Tutor.full_name.asc(), Tutor.id.asc()).all() if is_verified(row.verification_status)]

    busy = _busy_tutor_ids(
        db,
        start_date=window_start,
        end_date=window_end,
        start_time=start_time,
        end_time=end_time,
        exclude_contract_id=contract_id,
    )
    return [row for row in rows if row.id not in busy]


def candidate_tutors_to_dict(rows: list[Tutor]) -> list[dict[str, Any]]:
    return [tutor_to_dict(row) for row in rows]


def assign_tutors(
    db: Session,
    contract_id: str,
    *,
    main_tutor_id: str | None,
    substitute_tutor1_id: str | None,
    substitute_tutor2_id: str | None,
    expected_version: int | None = None,
) -> Contract:
    roster = validate_assignment(main_tutor_id, substitute_tutor1_id, substitute_tutor2_id)

    with record_lock('contract', contract_id):
        try:
            contract = load_for_update(db, Contract, contract_id, label='Contract')
            status = normalize_contract_status(contract.status, contract_id=contract.id)
            if status not in ASSIGNABLE_STATUSES:
                raise PreconditionFailed(
                    f'Tutors can only be assigned to pending or active contracts; this one is {status.value}.',
                    code='contract_not_assignable',
                    context={'contract_id': contract_id, 'status': status.value},
                )
            if expected_version is not None and int(expected_version) != contract.version:
                raise ConflictError(
                    'The contract was changed by someone else. Reload it and try again.',
                    context={'contract_id': contract_id, 'expected_version': expected_version, 'version': contract.version},
                )

            current = (contract.main_tutor_id, contract.substitute_tutor1_id, contract.substitute_tutor2_id)
            if current == tuple(roster):
                logger.info('tutors_assignment_unchanged', extra={'contract_id': contract_id})
                db.rollback()
                return contract
            if any(current) and expected_version is None:
                raise ConflictError(
                    'The contract already has a different tutor roster. Reload it and confirm the change.',
                    context={'contract_id': contract_id, 'version': contract.version},
                )

            tutors = load_tutors(db, roster)
            missing = [tutor_id for tutor_id in roster if tutor_id not in tutors]
            if missing:
                raise NotFoundError(f'Tutor {missing[0]} was not found.', context={'tutor_ids': missing})
            unverified = [tutor_id for tutor_id in roster if not is_verified(tutors[tutor_id].verification_status)]
            if unverified:
                name = tutors[unverified[0]].full_name or unverified[0]
                raise TutorNotVerified(
                    f'{name} is not a verified tutor and cannot be assigned.',
                    context={'tutor_ids': unverified, 'required': VerificationStatus.APPROVED.value},
                )

            contract.main_tutor_id = roster.main
            contract.substitute_tutor1_id = roster.substitute1
            contract.substitute_tutor2_id = roster.substitute2
            commit_or_conflict(db, entity='contract', entity_id=contract_id)
        except Exception:
            db.rollback()
            raise

    db.refresh(contract)
    logger.info(
        'tutors_assigned',
        extra={
            'contract_id': contract_id,
            'main_tutor_id': roster.main,
            'substitute_tutor1_id': roster.substitute1,
            'substitute_tutor2_id': roster.substitute2,
            'version': contract.version,
        },
    )
    return contract


def update_contract_status(
    db: Session,
    contract_id: str,
    new_status: Any,
    *,
    expected_version: int | None = None,
) -> Contract:
    target = parse_contract_status(new_status)

    with record_lock('contract', contract_id):
        try:
            contract = load_for_update(db, Contract, contract_id, label='Contract')
            if expected_version is not None and int(expected_version) != contract.version:
                raise ConflictError(
                    'The contract was changed by someone else. Reload it and try again.',
                    context={'contract_id': contract_id, 'expected_version': expected_version, 'version': contract.version},
                )
            current = normalize_contract_status(contract.status, contract_id=contract.id)
            check_transition(current, target, main_tutor_id=contract.main_tutor_id)
            contract.status = target.value
            commit_or_conflict(db, entity='contract', entity_id=contract_id)
        except Exception:
            db.rollback()
            raise

    db.refresh(contract)
    logger.info(
        'contract_status_changed',
        extra={'contract_id': contract_id, 'from_status': current.value, 'to_status': target.value},
    )
    return contract
