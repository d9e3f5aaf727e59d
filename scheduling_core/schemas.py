from datetime import date
from typing import Literal

from pydantic import BaseModel, Field


class AssignTutorsRequest(BaseModel):
    main_tutor_id: str | None = None
    substitute_tutor1_id: str | None = None
    substitute_tutor2_id: str | None = None
    expected_version: int | None = Field(default=None, ge=1)


class ContractStatusUpdateRequest(BaseModel):
    # Unknown values surface as unknown_contract_status.
    status: str
    expected_version: int | None = Field(default=None, ge=1)


class RescheduleSubmitRequest(BaseModel):
    booking_id: str
    reason: str = ''
    requested_by: Literal['parent', 'tutor'] | None = None
    request_type: Literal['reschedule', 'change_tutor'] | None = None
    requested_date: date | None = None
    requested_time_slot: str | None = None
    requested_tutor_id: str | None = None


class RescheduleApproveRequest(BaseModel):
    new_tutor_id: str | None = None
    note: str = ''
    new_session_date: date | None = None
    new_time_slot: str | None = None


class RescheduleRejectRequest(BaseModel):
    reason: str = ''


class CancelSessionRequest(BaseModel):
    booking_id: str | None = None
