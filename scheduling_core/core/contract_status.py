from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from scheduling_core.core.errors import InvalidTransition, TutorRequired, UnknownContractStatus
from scheduling_core.services.observability_counters import record_observability_event


logger = logging.getLogger(__name__)


class ContractStatus(str, Enum):
    PENDING = 'pending'
    UNPAID = 'unpaid'
    ACTIVE = 'active'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


TERMINAL_STATUSES = frozenset({ContractStatus.COMPLETED, ContractStatus.CANCELLED})

ALLOWED_TRANSITIONS: dict[ContractStatus, frozenset[ContractStatus]] = {
    ContractStatus.PENDING: frozenset({ContractStatus.ACTIVE, ContractStatus.CANCELLED}),
    ContractStatus.ACTIVE: frozenset({ContractStatus.COMPLETED, ContractStatus.CANCELLED}),
    # unpaid is only reached through a failed payment and can only be dropped.
    ContractStatus.UNPAID: frozenset({ContractStatus.CANCELLED}),
    ContractStatus.COMPLETED: frozenset(),
    ContractStatus.CANCELLED: frozenset(),
}


def parse_contract_status(raw: Any) -> ContractStatus:
    if isinstance(raw, ContractStatus):
        return raw
    clean = str(raw if raw is not None else '').strip().lower()
    try:
        return ContractStatus(clean)
    except ValueError:
        raise UnknownContractStatus(raw) from None


def normalize_contract_status(raw: Any, *, contract_id: str | None = None) -> ContractStatus:
    """Lenient form of :func:`parse_contract_status` for read paths.

    Unknown values fall back to ``pending`` and are logged, so one bad row
    cannot break a whole list.
    """
    try:
        return parse_contract_status(raw)
    except UnknownContractStatus:
        record_observability_event('contract_status_unrecognized')
        logger.warning(
            'contract_status_unrecognized',
            extra={'contract_id': contract_id, 'raw_status': raw},
        )
        return ContractStatus.PENDING


def check_transition(current: ContractStatus, target: ContractStatus, *, main_tutor_id: str | None) -> None:
    if current == target:
        raise InvalidTransition(f'Contract is already {current.value}.')
    if current in TERMINAL_STATUSES:
        raise InvalidTransition(f'Contract is {current.value}; no further status changes are allowed.')
    if target not in ALLOWED_TRANSITIONS[current]:
        if current == ContractStatus.PENDING and target == ContractStatus.COMPLETED:
            raise InvalidTransition('A pending contract must be activated before it can be completed.')
        if current == ContractStatus.UNPAID:
            raise InvalidTransition('An unpaid contract can only be cancelled.')
        raise InvalidTransition(f'Cannot change contract status from {current.value} to {target.value}.')
    if target == ContractStatus.ACTIVE and not str(main_tutor_id or '').strip():
        raise TutorRequired('Assign a main tutor before activating this contract.')
