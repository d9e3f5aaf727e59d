from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy.orm import Session

from scheduling_core.core.contract_status import ContractStatus, normalize_contract_status
from scheduling_core.core.errors import (
    NotFoundError,
    PreconditionFailed,
    UpstreamError,
    ValidationError,
)
from scheduling_core.core.reschedule_cutoff import ensure_outside_cutoff, split_legacy_reason
from scheduling_core.core.time_provider import TimeProvider, default_time_provider
from scheduling_core.core.timeparse import format_hhmm, parse_date_value, parse_time_slot, slots_overlap
from scheduling_core.core.verification import is_verified
from scheduling_core.integrations.client_factory import get_wallet_client
from scheduling_core.integrations.clients import BaseWalletClient
from scheduling_core.models import (
    Booking,
    BookingStatus,
    Contract,
    RefundInstruction,
    RefundStatus,
    RequestOrigin,
    RescheduleRequest,
    RescheduleStatus,
    RescheduleType,
    Tutor,
)
from scheduling_core.services.observability_counters import record_observability_event
from scheduling_core.services.profile_service import load_tutors
from scheduling_core.services.record_lock import commit_or_conflict, load_for_update, record_lock


logger = logging.getLogger(__name__)

ACTIVE_BOOKING_STATUSES = (BookingStatus.SCHEDULED.value, BookingStatus.RESCHEDULED.value)
OPEN_CONTRACT_STATUSES = frozenset({ContractStatus.PENDING, ContractStatus.ACTIVE})
REFUND_REASON = 'reschedule_no_substitute'
MAX_PAGE_SIZE = 200


def _clean(value: Any) -> str:
    return str(value or '').strip()


def _parse_choice(enum_cls, raw: Any, *, field: str):
    try:
        return enum_cls(_clean(raw).lower())
    except ValueError:
        allowed = ', '.join(item.value for item in enum_cls)
        raise ValidationError(f'{field} must be one of: {allowed}.', code=f'invalid_{field}') from None


def request_to_dict(row: RescheduleRequest) -> dict[str, Any]:
    return {
        'id': row.id,
        'booking_id': row.booking_id,
        'contract_id': row.contract_id,
        'requested_by': row.requested_by,
        'request_type': row.request_type,
        'original_session_date': row.original_session_date,
        'original_start_time': row.original_start_time,
        'original_end_time': row.original_end_time,
        'original_tutor_id': row.original_tutor_id,
        'requested_date': row.requested_date.isoformat() if row.requested_date else None,
        'requested_time_slot': row.requested_time_slot,
        'requested_tutor_id': row.requested_tutor_id,
        'reason': row.reason or '',
        'status': row.status,
        'approved_tutor_id': row.approved_tutor_id,
        'staff_note': row.staff_note or '',
        'rejected_reason': row.rejected_reason,
        'resolved_at': row.resolved_at.isoformat() if row.resolved_at else None,
        'created_at': row.created_at.isoformat() if row.created_at else None,
        'version': row.version,
    }


def refund_to_dict(row: RefundInstruction) -> dict[str, Any]:
    return {
        'id': row.id,
        'booking_id': row.booking_id,
        'contract_id': row.contract_id,
        'request_id': row.request_id,
        'status': row.status,
        'attempts': row.attempts,
        'last_error': row.last_error or '',
        'delivered_at': row.delivered_at.isoformat() if row.delivered_at else None,
    }


def list_reschedule_requests(
    db: Session,
    *,
    status: str | None = None,
    requested_by: str | None = None,
    contract_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[RescheduleRequest]:
    query = db.query(RescheduleRequest)
    if _clean(status):
        query = query.filter(RescheduleRequest.status == _parse_choice(RescheduleStatus, status, field='status').value)
    if _clean(requested_by):
        origin = _parse_choice(RequestOrigin, requested_by, field='requested_by')
        query = query.filter(RescheduleRequest.requested_by == origin.value)
    if contract_id:
        query = query.filter(RescheduleRequest.contract_id == contract_id)
    limit = max(1, min(int(limit), MAX_PAGE_SIZE))
    offset = max(0, int(offset))
    return (
        query.order_by(RescheduleRequest.created_at.desc(), RescheduleRequest.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def get_reschedule_request(db: Session, request_id: str) -> RescheduleRequest:
    row = db.query(RescheduleRequest).filter(RescheduleRequest.id == request_id).first()
    if row is None:
        raise NotFoundError(f'Reschedule request {request_id} was not found.', context={'request_id': request_id})
    return row


def _ensure_pending(request: RescheduleRequest) -> None:
    if request.status != RescheduleStatus.PENDING.value:
        raise PreconditionFailed(
            f'This request is already {request.status}; only pending requests can be handled.',
            code='request_not_pending',
            context={'request_id': request.id, 'status': request.status},
        )


def submit_reschedule_request(
    db: Session,
    *,
    booking_id: str,
    reason: str | None = None,
    requested_by: str | None = None,
    request_type: str | None = None,
    requested_date: Any = None,
    requested_time_slot: str | None = None,
    requested_tutor_id: str | None = None,
) -> RescheduleRequest:
    legacy_change, clean_reason = split_legacy_reason(reason)

    if _clean(requested_by):
        origin = _parse_choice(RequestOrigin, requested_by, field='requested_by')
    else:
        origin = RequestOrigin.TUTOR if legacy_change else RequestOrigin.PARENT
        logger.info(
            'reschedule_origin_inferred_from_reason',
            extra={'booking_id': booking_id, 'requested_by': origin.value, 'legacy_prefix': legacy_change},
        )
    if _clean(request_type):
        rtype = _parse_choice(RescheduleType, request_type, field='request_type')
    else:
        rtype = RescheduleType.CHANGE_TUTOR if legacy_change else RescheduleType.RESCHEDULE

    new_date = parse_date_value(requested_date)
    if _clean(requested_date) and new_date is None:
        raise ValidationError(f'Requested date {requested_date!r} is not a valid date.', code='invalid_date')
    slot = parse_time_slot(requested_time_slot)
    if rtype == RescheduleType.RESCHEDULE and new_date is None and slot is None:
        raise ValidationError('Give a new date or time slot for the session.', code='nothing_to_change')

    with record_lock('booking', booking_id):
        try:
            booking = load_for_update(db, Booking, booking_id, label='Booking')
            if booking.status not in ACTIVE_BOOKING_STATUSES:
                raise PreconditionFailed(
                    f'This session is {booking.status} and can no longer be rescheduled.',
                    code='booking_not_schedulable',
                    context={'booking_id': booking_id, 'status': booking.status},
                )
            existing = (
                db.query(RescheduleRequest.id)
                .filter(
                    RescheduleRequest.booking_id == booking_id,
                    RescheduleRequest.status == RescheduleStatus.PENDING.value,
                )
                .first()
            )
            if existing is not None:
                raise PreconditionFailed(
                    'This session already has a pending reschedule request.',
                    code='duplicate_pending_request',
                    context={'booking_id': booking_id, 'request_id': existing.id},
                )

            row = RescheduleRequest(
                booking_id=booking.id,
                contract_id=booking.contract_id,
                requested_by=origin.value,
                request_type=rtype.value,
                original_session_date=booking.session_date.isoformat(),
                original_start_time=format_hhmm(booking.start_time),
                original_end_time=format_hhmm(booking.end_time),
                original_tutor_id=booking.tutor_id,
                requested_date=new_date,
                requested_start_time=slot[0] if slot else None,
                requested_end_time=slot[1] if slot else None,
                requested_tutor_id=_clean(requested_tutor_id) or None,
                reason=clean_reason,
                status=RescheduleStatus.PENDING.value,
            )
            db.add(row)
            commit_or_conflict(db, entity='reschedule request', entity_id=booking_id)
        except Exception:
            db.rollback()
            raise

    db.refresh(row)
    logger.info(
        'reschedule_submitted',
        extra={'request_id': row.id, 'booking_id': booking_id, 'requested_by': row.requested_by, 'request_type': row.request_type},
    )
    return row


def _tutor_is_free(
    db: Session,
    tutor_id: str,
    session_date: date,
    start_time: str,
    end_time: str,
    *,
    exclude_booking_id: str,
) -> bool:
    bookings = (
        db.query(Booking)
        .filter(
            Booking.tutor_id == tutor_id,
            Booking.session_date == session_date,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.id != exclude_booking_id,
        )
        .all()
    )
    return not any(slots_overlap(start_time, end_time, other.start_time, other.end_time) for other in bookings)


def _target_slot(
    request: RescheduleRequest,
    booking: Booking,
    *,
    new_session_date: date | None = None,
    new_slot: tuple[str, str] | None = None,
) -> tuple[date, str, str]:
    target_date = new_session_date or request.requested_date or booking.session_date
    if new_slot is not None:
        return target_date, new_slot[0], new_slot[1]
    if request.requested_start_time and request.requested_end_time:
        return target_date, request.requested_start_time, request.requested_end_time
    return target_date, booking.start_time, booking.end_time


def _available_sub_tutors(
    db: Session,
    request: RescheduleRequest,
    contract: Contract,
    booking: Booking,
    *,
    session_date: date,
    start_time: str,
    end_time: str,
) -> list[Tutor]:
    roster = contract.roster_ids()
    if request.request_type == RescheduleType.CHANGE_TUTOR.value:
        original = request.original_tutor_id or booking.tutor_id
        roster = [tutor_id for tutor_id in roster if tutor_id != original]
    tutors = load_tutors(db, roster)
    available: list[Tutor] = []
    for tutor_id in roster:
        tutor = tutors.get(tutor_id)
        if tutor is None or not is_verified(tutor.verification_status):
            continue
        if _tutor_is_free(db, tutor_id, session_date, start_time, end_time, exclude_booking_id=booking.id):
            available.append(tutor)
    return available


def _load_context(db: Session, request: RescheduleRequest, *, for_update: bool) -> tuple[Booking, Contract]:
    if for_update:
        booking = load_for_update(db, Booking, request.booking_id, label='Booking')
    else:
        booking = db.query(Booking).filter(Booking.id == request.booking_id).first()
        if booking is None:
            raise NotFoundError(f'Booking {request.booking_id} was not found.', context={'booking_id': request.booking_id})
    contract = db.query(Contract).filter(Contract.id == request.contract_id).first()
    if contract is None:
        raise NotFoundError(f'Contract {request.contract_id} was not found.', context={'contract_id': request.contract_id})
    return booking, contract


def _ensure_still_open(booking: Booking, contract: Contract) -> None:
    if booking.status not in ACTIVE_BOOKING_STATUSES:
        raise PreconditionFailed(
            f'This session is {booking.status} and can no longer be rescheduled.',
            code='booking_not_schedulable',
            context={'booking_id': booking.id, 'status': booking.status},
        )
    status = normalize_contract_status(contract.status, contract_id=contract.id)
    if status not in OPEN_CONTRACT_STATUSES:
        raise PreconditionFailed(
            f'The contract is {status.value}; its sessions can no longer be changed.',
            code='contract_not_active',
            context={'contract_id': contract.id, 'status': status.value},
        )


def list_available_sub_tutors(db: Session, request_id: str) -> list[Tutor]:
    request = get_reschedule_request(db, request_id)
    booking, contract = _load_context(db, request, for_update=False)
    session_date, start_time, end_time = _target_slot(request, booking)
    return _available_sub_tutors(
        db, request, contract, booking, session_date=session_date, start_time=start_time, end_time=end_time
    )


def approve_reschedule(
    db: Session,
    request_id: str,
    *,
    new_tutor_id: str | None = None,
    note: str | None = None,
    new_session_date: Any = None,
    new_time_slot: str | None = None,
    time_provider: TimeProvider = default_time_provider,
) -> RescheduleRequest:
    chosen = _clean(new_tutor_id) or None
    override_date = parse_date_value(new_session_date)
    if _clean(new_session_date) and override_date is None:
        raise ValidationError(f'Session date {new_session_date!r} is not a valid date.', code='invalid_date')
    if override_date is not None and override_date < time_provider.today():
        raise ValidationError('A session cannot be moved into the past.', code='invalid_date')
    override_slot = parse_time_slot(new_time_slot)

    with record_lock('reschedule_request', request_id):
        try:
            request = load_for_update(db, RescheduleRequest, request_id, label='Reschedule request')
            _ensure_pending(request)
            ensure_outside_cutoff(request, time_provider.now())
            booking, contract = _load_context(db, request, for_update=True)
            _ensure_still_open(booking, contract)
            session_date, start_time, end_time = _target_slot(
                request, booking, new_session_date=override_date, new_slot=override_slot
            )
            candidates = _available_sub_tutors(
                db, request, contract, booking, session_date=session_date, start_time=start_time, end_time=end_time
            )
            if not candidates:
                raise PreconditionFailed(
                    'No tutor on this contract is free for that slot; cancel the session with a refund instead.',
                    code='no_substitute_available',
                    context={'request_id': request_id},
                )
            candidate_ids = [tutor.id for tutor in candidates]

            if chosen is not None:
                if chosen not in candidate_ids:
                    raise PreconditionFailed(
                        'That tutor is not available for this session.',
                        code='tutor_not_available',
                        context={'request_id': request_id, 'tutor_id': chosen, 'available': candidate_ids},
                    )
            elif request.request_type == RescheduleType.CHANGE_TUTOR.value:
                preferred = _clean(request.requested_tutor_id)
                if preferred and preferred in candidate_ids:
                    chosen = preferred
                else:
                    raise ValidationError(
                        'Pick the substitute tutor who will take this session.',
                        code='substitute_required',
                        context={'request_id': request_id, 'available': candidate_ids},
                    )
            elif booking.tutor_id and not _tutor_is_free(
                db, booking.tutor_id, session_date, start_time, end_time, exclude_booking_id=booking.id
            ):
                raise PreconditionFailed(
                    'The current tutor is busy at the new time; pick one of the available substitutes.',
                    code='tutor_not_available',
                    context={'request_id': request_id, 'tutor_id': booking.tutor_id, 'available': candidate_ids},
                )

            booking.session_date = session_date
            booking.start_time = format_hhmm(start_time)
            booking.end_time = format_hhmm(end_time)
            if chosen is not None:
                booking.tutor_id = chosen
            booking.status = BookingStatus.RESCHEDULED.value

            request.status = RescheduleStatus.APPROVED.value
            request.approved_tutor_id = booking.tutor_id
            request.staff_note = _clean(note)
            request.resolved_at = time_provider.local_naive_now()
            commit_or_conflict(db, entity='reschedule request', entity_id=request_id)
        except Exception:
            db.rollback()
            raise

    db.refresh(request)
    logger.info(
        'reschedule_approved',
        extra={
            'request_id': request_id,
            'booking_id': request.booking_id,
            'tutor_id': request.approved_tutor_id,
            'session_date': session_date.isoformat(),
        },
    )
    return request


def reject_reschedule(
    db: Session,
    request_id: str,
    *,
    reason: str | None,
    time_provider: TimeProvider = default_time_provider,
) -> RescheduleRequest:
    clean_reason = _clean(reason)
    if not clean_reason:
        raise ValidationError('A reason is required to reject a request.', code='reason_required')

    with record_lock('reschedule_request', request_id):
        try:
            request = load_for_update(db, RescheduleRequest, request_id, label='Reschedule request')
            _ensure_pending(request)
            request.status = RescheduleStatus.REJECTED.value
            request.rejected_reason = clean_reason
            request.resolved_at = time_provider.local_naive_now()
            commit_or_conflict(db, entity='reschedule request', entity_id=request_id)
        except Exception:
            db.rollback()
            raise

    db.refresh(request)
    logger.info('reschedule_rejected', extra={'request_id': request_id, 'booking_id': request.booking_id})
    return request


def _refund_payload(instruction: RefundInstruction) -> dict[str, Any]:
    return {
        'instruction_id': instruction.id,
        'booking_id': instruction.booking_id,
        'contract_id': instruction.contract_id,
        'request_id': instruction.request_id,
        'reason': REFUND_REASON,
    }


def _deliver_refund(
    db: Session,
    instruction: RefundInstruction,
    *,
    wallet_client: BaseWalletClient | None,
    time_provider: TimeProvider,
) -> RefundInstruction:
    client = wallet_client or get_wallet_client()
    try:
        client.request_refund(_refund_payload(instruction))
    except UpstreamError as exc:
        instruction.status = RefundStatus.FAILED.value
        instruction.attempts = int(instruction.attempts or 0) + 1
        instruction.last_error = exc.reason[:1000]
        db.commit()
        record_observability_event('refund_delivery_failed')
        logger.error(
            'refund_delivery_failed',
            extra={'instruction_id': instruction.id, 'booking_id': instruction.booking_id, 'error': exc.reason},
        )
        raise UpstreamError(
            f'The session was cancelled but the refund could not be sent to the wallet: {exc.reason}',
            context={**exc.context, 'instruction_id': instruction.id, 'booking_id': instruction.booking_id},
        ) from exc

    instruction.status = RefundStatus.DELIVERED.value
    instruction.attempts = int(instruction.attempts or 0) + 1
    instruction.last_error = ''
    instruction.delivered_at = time_provider.local_naive_now()
    db.commit()
    db.refresh(instruction)
    logger.info('refund_delivered', extra={'instruction_id': instruction.id, 'booking_id': instruction.booking_id})
    return instruction


def cancel_with_refund(
    db: Session,
    request_id: str,
    *,
    booking_id: str | None = None,
    wallet_client: BaseWalletClient | None = None,
    time_provider: TimeProvider = default_time_provider,
) -> tuple[RescheduleRequest, RefundInstruction]:
    """Cancel the session behind a request when nobody can cover it.

    The booking, the request and a single refund instruction are committed
    together; the wallet is called afterwards. A failed delivery leaves the
    instruction ``failed`` for :func:`redeliver_refund`.
    """
    with record_lock('reschedule_request', request_id):
        try:
            request = load_for_update(db, RescheduleRequest, request_id, label='Reschedule request')
            if _clean(booking_id) and _clean(booking_id) != request.booking_id:
                raise ValidationError(
                    'The booking does not belong to this reschedule request.',
                    code='booking_mismatch',
                    context={'request_id': request_id, 'booking_id': booking_id},
                )
            _ensure_pending(request)
            ensure_outside_cutoff(request, time_provider.now())
            booking, contract = _load_context(db, request, for_update=True)
            _ensure_still_open(booking, contract)
            session_date, start_time, end_time = _target_slot(request, booking)
            candidates = _available_sub_tutors(
                db, request, contract, booking, session_date=session_date, start_time=start_time, end_time=end_time
            )
            if candidates:
                raise PreconditionFailed(
                    'A substitute tutor is available; approve the request with a substitute instead of cancelling.',
                    code='substitute_available',
                    context={'request_id': request_id, 'available': [tutor.id for tutor in candidates]},
                )

            booking.status = BookingStatus.CANCELLED.value
            request.status = RescheduleStatus.CANCELLED.value
            request.staff_note = 'Session cancelled and refunded: no substitute tutor was available.'
            request.resolved_at = time_provider.local_naive_now()
            instruction = RefundInstruction(
                booking_id=booking.id,
                contract_id=contract.id,
                request_id=request.id,
                status=RefundStatus.PENDING.value,
                attempts=0,
            )
            db.add(instruction)
            commit_or_conflict(db, entity='reschedule request', entity_id=request_id)
        except Exception:
            db.rollback()
            raise

    db.refresh(request)
    db.refresh(instruction)
    logger.info(
        'reschedule_session_cancelled',
        extra={'request_id': request_id, 'booking_id': request.booking_id, 'instruction_id': instruction.id},
    )
    with record_lock('refund_instruction', instruction.id):
        db.refresh(instruction)
        if instruction.status != RefundStatus.DELIVERED.value:
            _deliver_refund(db, instruction, wallet_client=wallet_client, time_provider=time_provider)
    return request, instruction


def redeliver_refund(
    db: Session,
    instruction_id: str,
    *,
    wallet_client: BaseWalletClient | None = None,
    time_provider: TimeProvider = default_time_provider,
) -> RefundInstruction:
    with record_lock('refund_instruction', instruction_id):
        instruction = (
            db.query(RefundInstruction)
            .filter(RefundInstruction.id == instruction_id)
            .populate_existing()
            .first()
        )
        if instruction is None:
            raise NotFoundError(f'Refund instruction {instruction_id} was not found.', context={'instruction_id': instruction_id})
        if instruction.status == RefundStatus.DELIVERED.value:
            raise PreconditionFailed(
                'This refund was already delivered.',
                code='refund_already_delivered',
                context={'instruction_id': instruction_id},
            )
        return _deliver_refund(db, instruction, wallet_client=wallet_client, time_provider=time_provider)
