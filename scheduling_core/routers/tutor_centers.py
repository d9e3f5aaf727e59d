from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from scheduling_core.db import get_db
from scheduling_core.route_logging import EndpointNameRoute
from scheduling_core.services.profile_service import tutor_to_dict
from scheduling_core.services.tutor_center_service import (
    assign_tutor_to_center,
    center_match_to_dict,
    list_unassigned_tutors,
    suggest_centers_for_tutor,
)


router = APIRouter(tags=['Tutor Centers'], route_class=EndpointNameRoute)


@router.get('/tutors/unassigned')
def unassigned_tutors(db: Session = Depends(get_db)):
    return [tutor_to_dict(row) for row in list_unassigned_tutors(db)]


@router.get('/tutors/{tutor_id}/suggested-centers')
def suggested_centers(
    tutor_id: str,
    radius_km: float | None = Query(default=None),
    db: Session = Depends(get_db),
):
    matches = suggest_centers_for_tutor(db, tutor_id, radius_km=radius_km)
    return [center_match_to_dict(match) for match in matches]


@router.post('/centers/{center_id}/tutors/{tutor_id}')
def assign_to_center(center_id: str, tutor_id: str, db: Session = Depends(get_db)):
    return tutor_to_dict(assign_tutor_to_center(db, tutor_id, center_id))
