from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from scheduling_core.db import get_db
from scheduling_core.route_logging import EndpointNameRoute
from scheduling_core.schemas import (
    CancelSessionRequest,
    RescheduleApproveRequest,
    RescheduleRejectRequest,
    RescheduleSubmitRequest,
)
from scheduling_core.services.profile_service import tutor_to_dict
from scheduling_core.services.reschedule_service import (
    approve_reschedule,
    cancel_with_refund,
    get_reschedule_request,
    list_available_sub_tutors,
    list_reschedule_requests,
    redeliver_refund,
    refund_to_dict,
    reject_reschedule,
    request_to_dict,
    submit_reschedule_request,
)


router = APIRouter(prefix='/reschedule', tags=['Reschedule'], route_class=EndpointNameRoute)
refunds_router = APIRouter(prefix='/refunds', tags=['Refunds'], route_class=EndpointNameRoute)


@router.get('')
def list_all(
    status: str | None = None,
    requested_by: str | None = None,
    contract_id: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    rows = list_reschedule_requests(
        db,
        status=status,
        requested_by=requested_by,
        contract_id=contract_id,
        limit=limit,
        offset=offset,
    )
    return {'items': [request_to_dict(row) for row in rows], 'limit': limit, 'offset': offset}


@router.post('', status_code=201)
def submit(payload: RescheduleSubmitRequest, db: Session = Depends(get_db)):
    row = submit_reschedule_request(
        db,
        booking_id=payload.booking_id,
        reason=payload.reason,
        requested_by=payload.requested_by,
        request_type=payload.request_type,
        requested_date=payload.requested_date,
        requested_time_slot=payload.requested_time_slot,
        requested_tutor_id=payload.requested_tutor_id,
    )
    return request_to_dict(row)


@router.get('/{request_id}')
def get_one(request_id: str, db: Session = Depends(get_db)):
    return request_to_dict(get_reschedule_request(db, request_id))


@router.get('/{request_id}/available-sub-tutors')
def available_sub_tutors(request_id: str, db: Session = Depends(get_db)):
    return [tutor_to_dict(row) for row in list_available_sub_tutors(db, request_id)]


@router.put('/{request_id}/approve')
def approve(request_id: str, payload: RescheduleApproveRequest, db: Session = Depends(get_db)):
    row = approve_reschedule(
        db,
        request_id,
        new_tutor_id=payload.new_tutor_id,
        note=payload.note,
        new_session_date=payload.new_session_date,
        new_time_slot=payload.new_time_slot,
    )
    return request_to_dict(row)


@router.put('/{request_id}/reject')
def reject(request_id: str, payload: RescheduleRejectRequest, db: Session = Depends(get_db)):
    return request_to_dict(reject_reschedule(db, request_id, reason=payload.reason))


@router.post('/{request_id}/cancel-session')
def cancel_session(request_id: str, payload: CancelSessionRequest | None = None, db: Session = Depends(get_db)):
    request_row, instruction = cancel_with_refund(
        db,
        request_id,
        booking_id=payload.booking_id if payload else None,
    )
    return {
        'message': 'Session cancelled and refund sent.',
        'request': request_to_dict(request_row),
        'refund': refund_to_dict(instruction),
    }


@refunds_router.post('/{instruction_id}/redeliver')
def redeliver(instruction_id: str, db: Session = Depends(get_db)):
    return refund_to_dict(redeliver_refund(db, instruction_id))
