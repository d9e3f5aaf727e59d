from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from scheduling_core.db import get_db
from scheduling_core.route_logging import EndpointNameRoute
from scheduling_core.services.profile_service import get_user_profile


router = APIRouter(prefix='/users', tags=['Users'], route_class=EndpointNameRoute)


@router.get('/{user_id}')
def get_one(user_id: str, db: Session = Depends(get_db)):
    return get_user_profile(db, user_id)
