import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from scheduling_core.core.contract_status import ContractStatus
from scheduling_core.core.verification import VerificationStatus
from scheduling_core.db import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class BookingStatus(str, Enum):
    SCHEDULED = 'scheduled'
    RESCHEDULED = 'rescheduled'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class RescheduleStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    CANCELLED = 'cancelled'


class RequestOrigin(str, Enum):
    PARENT = 'parent'
    TUTOR = 'tutor'


class RescheduleType(str, Enum):
    RESCHEDULE = 'reschedule'
    CHANGE_TUTOR = 'change_tutor'


class RefundStatus(str, Enum):
    PENDING = 'pending'
    DELIVERED = 'delivered'
    FAILED = 'failed'


class Center(Base):
    __tablename__ = 'centers'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(180), index=True)
    address: Mapped[str] = mapped_column(String(255), default='')
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    tutor_count: Mapped[int] = mapped_column(Integer, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tutors: Mapped[list['Tutor']] = relationship('Tutor', back_populates='center')

    __mapper_args__ = {'version_id_col': version}


class Tutor(Base):
    __tablename__ = 'tutors'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    full_name: Mapped[str] = mapped_column(String(180), default='', index=True)
    email: Mapped[str] = mapped_column(String(255), default='')
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    verification_status: Mapped[str] = mapped_column(String(20), default=VerificationStatus.NOT_VERIFIED.value, index=True)
    center_id: Mapped[str | None] = mapped_column(ForeignKey('centers.id'), nullable=True, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    center: Mapped['Center | None'] = relationship('Center', back_populates='tutors')

    __mapper_args__ = {'version_id_col': version}


class Contract(Base):
    __tablename__ = 'contracts'
    __table_args__ = (
        Index('ix_contracts_status_created', 'status', 'created_at'),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    child_id: Mapped[str] = mapped_column(String(36), index=True)
    package_id: Mapped[str] = mapped_column(String(36), index=True)
    center_id: Mapped[str | None] = mapped_column(ForeignKey('centers.id'), nullable=True, index=True)
    main_tutor_id: Mapped[str | None] = mapped_column(ForeignKey('tutors.id'), nullable=True, index=True)
    substitute_tutor1_id: Mapped[str | None] = mapped_column(ForeignKey('tutors.id'), nullable=True, index=True)
    substitute_tutor2_id: Mapped[str | None] = mapped_column(ForeignKey('tutors.id'), nullable=True, index=True)
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date] = mapped_column(Date)
    start_time: Mapped[str] = mapped_column(String(10), default='')
    end_time: Mapped[str] = mapped_column(String(10), default='')
    is_online: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(20), default=ContractStatus.PENDING.value, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    main_tutor: Mapped['Tutor | None'] = relationship('Tutor', foreign_keys=[main_tutor_id])
    substitute_tutor1: Mapped['Tutor | None'] = relationship('Tutor', foreign_keys=[substitute_tutor1_id])
    substitute_tutor2: Mapped['Tutor | None'] = relationship('Tutor', foreign_keys=[substitute_tutor2_id])
    bookings: Mapped[list['Booking']] = relationship('Booking', back_populates='contract')

    __mapper_args__ = {'version_id_col': version}

    def roster_ids(self) -> list[str]:
        return [
            tutor_id
            for tutor_id in (self.main_tutor_id, self.substitute_tutor1_id, self.substitute_tutor2_id)
            if tutor_id
        ]


class Booking(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        Index('ix_bookings_tutor_date', 'tutor_id', 'session_date'),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    contract_id: Mapped[str] = mapped_column(ForeignKey('contracts.id'), index=True)
    session_date: Mapped[date] = mapped_column(Date, index=True)
    start_time: Mapped[str] = mapped_column(String(10))
    end_time: Mapped[str] = mapped_column(String(10))
    tutor_id: Mapped[str | None] = mapped_column(ForeignKey('tutors.id'), nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(20), default=BookingStatus.SCHEDULED.value, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    contract: Mapped['Contract'] = relationship('Contract', back_populates='bookings')

    __mapper_args__ = {'version_id_col': version}


class RescheduleRequest(Base):
    __tablename__ = 'reschedule_requests'
    __table_args__ = (
        Index(
            'uq_reschedule_requests_pending_booking',
            'booking_id',
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
        Index('ix_reschedule_requests_status_created', 'status', 'created_at'),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    booking_id: Mapped[str] = mapped_column(ForeignKey('bookings.id'), index=True)
    contract_id: Mapped[str] = mapped_column(ForeignKey('contracts.id'), index=True)
    requested_by: Mapped[str] = mapped_column(String(20), default=RequestOrigin.PARENT.value, index=True)
    request_type: Mapped[str] = mapped_column(String(20), default=RescheduleType.RESCHEDULE.value)
    original_session_date: Mapped[str] = mapped_column(String(40), default='')
    original_start_time: Mapped[str] = mapped_column(String(40), default='')
    original_end_time: Mapped[str] = mapped_column(String(40), default='')
    original_tutor_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    requested_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    requested_start_time: Mapped[str | None] = mapped_column(String(10), nullable=True)
    requested_end_time: Mapped[str | None] = mapped_column(String(10), nullable=True)
    requested_tutor_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    reason: Mapped[str] = mapped_column(Text, default='')
    status: Mapped[str] = mapped_column(String(20), default=RescheduleStatus.PENDING.value, index=True)
    approved_tutor_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    staff_note: Mapped[str] = mapped_column(Text, default='')
    rejected_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    booking: Mapped['Booking'] = relationship('Booking')
    contract: Mapped['Contract'] = relationship('Contract')

    __mapper_args__ = {'version_id_col': version}

    @property
    def requested_time_slot(self) -> str | None:
        if not self.requested_start_time or not self.requested_end_time:
            return None
        return f'{self.requested_start_time}-{self.requested_end_time}'


class RefundInstruction(Base):
    __tablename__ = 'refund_instructions'
    __table_args__ = (
        UniqueConstraint('booking_id', name='uq_refund_instructions_booking'),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    booking_id: Mapped[str] = mapped_column(ForeignKey('bookings.id'), index=True)
    contract_id: Mapped[str] = mapped_column(ForeignKey('contracts.id'), index=True)
    request_id: Mapped[str] = mapped_column(ForeignKey('reschedule_requests.id'), index=True)
    status: Mapped[str] = mapped_column(String(20), default=RefundStatus.PENDING.value, index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str] = mapped_column(Text, default='')
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
