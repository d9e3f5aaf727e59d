from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from scheduling_core.core.errors import ConflictError, NotFoundError
from scheduling_core.services.observability_counters import record_observability_event


logger = logging.getLogger(__name__)
ModelT = TypeVar('ModelT')

_registry_lock = threading.Lock()
_record_locks: dict[str, tuple[threading.Lock, int]] = {}


def _lock_key(entity: str, entity_id: str) -> str:
    return f'{entity}:{entity_id}'


@contextmanager
def record_lock(entity: str, *entity_ids: str) -> Iterator[None]:
    """Serialize mutations of the given records inside this process.

    Keys are acquired in sorted order so two callers locking the same pair
    cannot deadlock. Cross-process races are caught by the version columns.
    """
    keys = sorted({_lock_key(entity, str(entity_id)) for entity_id in entity_ids if entity_id})
    acquired: list[str] = []
    try:
        for key in keys:
            with _registry_lock:
                lock, refs = _record_locks.get(key, (threading.Lock(), 0))
                _record_locks[key] = (lock, refs + 1)
            lock.acquire()
            acquired.append(key)
        yield
    finally:
        for key in reversed(acquired):
            with _registry_lock:
                lock, refs = _record_locks[key]
                lock.release()
                if refs <= 1:
                    _record_locks.pop(key, None)
                else:
                    _record_locks[key] = (lock, refs - 1)


def load_for_update(db: Session, model: type[ModelT], entity_id: str, *, label: str) -> ModelT:
    row = db.query(model).filter(model.id == str(entity_id)).with_for_update().first()
    if row is None:
        raise NotFoundError(f'{label} {entity_id} was not found.', context={'entity_id': entity_id})
    return row


def commit_or_conflict(db: Session, *, entity: str, entity_id: str) -> None:
    try:
        db.commit()
    except (StaleDataError, IntegrityError) as exc:
        db.rollback()
        record_observability_event('write_conflict')
        logger.warning(
            'write_conflict_detected',
            extra={'entity': entity, 'entity_id': entity_id, 'error': str(exc)},
        )
        raise ConflictError(
            f'The {entity} was changed by someone else at the same time. Reload it and try again.',
            context={'entity': entity, 'entity_id': entity_id},
        ) from exc
