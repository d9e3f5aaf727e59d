from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from scheduling_core.db import get_db
from scheduling_core.route_logging import EndpointNameRoute
from scheduling_core.schemas import AssignTutorsRequest, ContractStatusUpdateRequest
from scheduling_core.services.contract_service import (
    assign_tutors,
    candidate_tutors_to_dict,
    contract_to_dict,
    get_contract,
    list_candidate_tutors,
    list_contracts,
    serialize_contracts,
    update_contract_status,
)
from scheduling_core.services.profile_service import load_tutors


router = APIRouter(prefix='/contracts', tags=['Contracts'], route_class=EndpointNameRoute)


def _contract_payload(db: Session, row) -> dict:
    return contract_to_dict(row, load_tutors(db, row.roster_ids()))


@router.get('')
def list_all(
    status: str | None = None,
    center_id: str | None = None,
    tutor_id: str | None = None,
    needs_tutor: bool | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    rows = list_contracts(
        db,
        status=status,
        center_id=center_id,
        tutor_id=tutor_id,
        needs_tutor=needs_tutor,
        limit=limit,
        offset=offset,
    )
    return {'items': serialize_contracts(db, rows), 'limit': limit, 'offset': offset}


@router.get('/candidate-tutors')
def candidate_tutors_by_center(
    center_id: str | None = None,
    is_online: bool = False,
    start_date: date | None = None,
    end_date: date | None = None,
    start_time: str | None = None,
    end_time: str | None = None,
    db: Session = Depends(get_db),
):
    rows = list_candidate_tutors(
        db,
        center_id=center_id,
        is_online=is_online,
        start_date=start_date,
        end_date=end_date,
        start_time=start_time,
        end_time=end_time,
    )
    return candidate_tutors_to_dict(rows)


@router.get('/{contract_id}')
def get_one(contract_id: str, db: Session = Depends(get_db)):
    return _contract_payload(db, get_contract(db, contract_id))


@router.get('/{contract_id}/candidate-tutors')
def candidate_tutors(contract_id: str, db: Session = Depends(get_db)):
    return candidate_tutors_to_dict(list_candidate_tutors(db, contract_id=contract_id))


@router.put('/{contract_id}/assign-tutors')
def assign(contract_id: str, payload: AssignTutorsRequest, db: Session = Depends(get_db)):
    row = assign_tutors(
        db,
        contract_id,
        main_tutor_id=payload.main_tutor_id,
        substitute_tutor1_id=payload.substitute_tutor1_id,
        substitute_tutor2_id=payload.substitute_tutor2_id,
        expected_version=payload.expected_version,
    )
    return _contract_payload(db, row)


@router.put('/{contract_id}/status')
def change_status(contract_id: str, payload: ContractStatusUpdateRequest, db: Session = Depends(get_db)):
    row = update_contract_status(db, contract_id, payload.status, expected_version=payload.expected_version)
    return _contract_payload(db, row)
