import tempfile
import threading
import unittest
from datetime import date
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from scheduling_core.core.errors import (
    ConflictError,
    DuplicateTutor,
    IncompleteAssignment,
    InvalidTransition,
    NotFoundError,
    PreconditionFailed,
    TutorNotVerified,
    TutorRequired,
    UnknownContractStatus,
)
from scheduling_core.db import Base
from scheduling_core.integrations.clients import BaseProfileClient
from scheduling_core.models import Booking, Center, Contract, RefundInstruction, RescheduleRequest, Tutor
from scheduling_core.services.contract_service import (
    assign_tutors,
    contract_to_dict,
    list_candidate_tutors,
    list_contracts,
    update_contract_status,
)
from scheduling_core.services.observability_counters import clear_observability_events, count_observability_events


class StubProfileClient(BaseProfileClient):
    def __init__(self, profiles):
        self.profiles = profiles
        self.calls = []

    async def get_user_async(self, user_id):
        self.calls.append(user_id)
        return self.profiles.get(user_id)


class ContractServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / 'test_contract_service.db'
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        clear_observability_events()
        db = self._session_factory()
        try:
            db.query(RefundInstruction).delete()
            db.query(RescheduleRequest).delete()
            db.query(Booking).delete()
            db.query(Contract).delete()
            db.query(Tutor).delete()
            db.query(Center).delete()
            db.commit()

            center = Center(id='center-1', name='District 1', latitude=10.7769, longitude=106.7009)
            other_center = Center(id='center-2', name='Thu Duc', latitude=10.85, longitude=106.772)
            db.add_all([center, other_center])
            db.commit()
            db.add_all(
                [
                    Tutor(id='T1', full_name='Tutor One', verification_status='approved', center_id='center-1'),
                    Tutor(id='T2', full_name='Tutor Two', verification_status='Active', center_id='center-1'),
                    Tutor(id='T3', full_name='Tutor Three', verification_status='approved', center_id='center-1'),
                    Tutor(id='T4', full_name='Tutor Four', verification_status='approved', center_id='center-1'),
                    Tutor(id='T5', full_name='', email='t5@example.com', verification_status='approved', center_id='center-2'),
                    Tutor(id='TP', full_name='Pending Tutor', verification_status='pending', center_id='center-1'),
                ]
            )
            db.commit()
        finally:
            db.close()

    def _seed_contract(self, db, contract_id, *, status='pending', main=None, sub1=None, sub2=None,
                       start=date(2026, 3, 1), end=date(2026, 3, 31), slot=('17:00', '18:30'),
                       center_id='center-1', is_online=False):
        row = Contract(
            id=contract_id,
            child_id=f'child-{contract_id}',
            package_id='pkg-1',
            center_id=center_id,
            main_tutor_id=main,
            substitute_tutor1_id=sub1,
            substitute_tutor2_id=sub2,
            start_date=start,
            end_date=end,
            start_time=slot[0],
            end_time=slot[1],
            is_online=is_online,
            status=status,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    def test_activation_without_main_tutor_fails(self):
        db = self._session_factory()
        try:
            self._seed_contract(db, 'c-a')
            with self.assertRaises(TutorRequired):
                update_contract_status(db, 'c-a', 'active')
            db.expire_all()
            row = db.query(Contract).filter(Contract.id == 'c-a').one()
            self.assertEqual(row.status, 'pending')
        finally:
            db.close()

    def test_activation_with_main_tutor_succeeds(self):
        db = self._session_factory()
        try:
            self._seed_contract(db, 'c-c', main='T1', sub1='T2', sub2='T3')
            with self.assertLogs('scheduling_core.services.contract_service', level='INFO') as logs:
                row = update_contract_status(db, 'c-c', ' Active ')
            self.assertEqual(row.status, 'active')
            self.assertEqual(row.version, 2)
            self.assertTrue(any('contract_status_changed' in line for line in logs.output))
        finally:
            db.close()

    def test_status_update_rejects_unknown_and_invalid_targets(self):
        db = self._session_factory()
        try:
            self._seed_contract(db, 'c-s', status='completed', main='T1', sub1='T2', sub2='T3')
            with self.assertRaises(UnknownContractStatus):
                update_contract_status(db, 'c-s', 'archived')
            with self.assertRaises(InvalidTransition):
                update_contract_status(db, 'c-s', 'cancelled')
            with self.assertRaises(NotFoundError):
                update_contract_status(db, 'missing', 'cancelled')
        finally:
            db.close()

    def test_stale_expected_version_on_status_update(self):
        db = self._session_factory()
        try:
            self._seed_contract(db, 'c-v', main='T1', sub1='T2', sub2='T3')
            with self.assertRaises(ConflictError):
                update_contract_status(db, 'c-v', 'active', expected_version=7)
        finally:
            db.close()

    def test_duplicate_roster_is_not_persisted(self):
        db = self._session_factory()
        try:
            self._seed_contract(db, 'c-b')
            with self.assertRaises(DuplicateTutor):
                assign_tutors(db, 'c-b', main_tutor_id='T1', substitute_tutor1_id='T1', substitute_tutor2_id='T2')
            with self.assertRaises(IncompleteAssignment):
                assign_tutors(db, 'c-b', main_tutor_id='T1', substitute_tutor1_id='', substitute_tutor2_id='T2')
            db.expire_all()
            row = db.query(Contract).filter(Contract.id == 'c-b').one()
            self.assertEqual(row.roster_ids(), [])
            self.assertEqual(row.version, 1)
        finally:
            db.close()

    def test_assign_tutors_then_activate(self):
        db = self._session_factory()
        try:
            self._seed_contract(db, 'c-1')
            row = assign_tutors(db, 'c-1', main_tutor_id='T1', substitute_tutor1_id='T2', substitute_tutor2_id='T3')
            self.assertEqual(row.roster_ids(), ['T1', 'T2', 'T3'])
            self.assertEqual(row.version, 2)
            row = update_contract_status(db, 'c-1', 'active')
            self.assertEqual(row.status, 'active')
            self.assertTrue(row.main_tutor_id)
        finally:
            db.close()

    def test_assign_rejects_unverified_and_unknown_tutors(self):
        db = self._session_factory()
        try:
            self._seed_contract(db, 'c-u')
            with self.assertRaises(TutorNotVerified):
                assign_tutors(db, 'c-u', main_tutor_id='TP', substitute_tutor1_id='T2', substitute_tutor2_id='T3')
            with self.assertRaises(NotFoundError):
                assign_tutors(db, 'c-u', main_tutor_id='T1', substitute_tutor1_id='ghost', substitute_tutor2_id='T3')
            db.expire_all()
            self.assertEqual(db.query(Contract).filter(Contract.id == 'c-u').one().roster_ids(), [])
        finally:
            db.close()

    def test_assign_rejects_closed_contracts(self):
        db = self._session_factory()
        try:
            self._seed_contract(db, 'c-x', status='cancelled')
            with self.assertRaises(PreconditionFailed) as ctx:
                assign_tutors(db, 'c-x', main_tutor_id='T1', substitute_tutor1_id='T2', substitute_tutor2_id='T3')
            self.assertEqual(ctx.exception.code, 'contract_not_assignable')
        finally:
            db.close()

    def test_reassignment_requires_current_version(self):
        db = self._session_factory()
        try:
            self._seed_contract(db, 'c-r', main='T1', sub1='T2', sub2='T3')
            same = assign_tutors(db, 'c-r', main_tutor_id='T1', substitute_tutor1_id='T2', substitute_tutor2_id='T3')
            self.assertEqual(same.version, 1)

            with self.assertRaises(ConflictError):
                assign_tutors(db, 'c-r', main_tutor_id='T4', substitute_tutor1_id='T2', substitute_tutor2_id='T3')
            with self.assertRaises(ConflictError):
                assign_tutors(
                    db, 'c-r', main_tutor_id='T4', substitute_tutor1_id='T2', substitute_tutor2_id='T3', expected_version=5
                )
            row = assign_tutors(
                db, 'c-r', main_tutor_id='T4', substitute_tutor1_id='T2', substitute_tutor2_id='T3', expected_version=1
            )
            self.assertEqual(row.main_tutor_id, 'T4')
            self.assertEqual(row.version, 2)
        finally:
            db.close()

    def test_concurrent_assignments_have_one_winner(self):
        seed = self._session_factory()
        try:
            self._seed_contract(seed, 'c-race')
        finally:
            seed.close()

        barrier = threading.Barrier(2)
        outcomes = []
        outcomes_lock = threading.Lock()

        def worker(roster):
            db = self._session_factory()
            try:
                barrier.wait()
                assign_tutors(
                    db, 'c-race', main_tutor_id=roster[0], substitute_tutor1_id=roster[1], substitute_tutor2_id=roster[2]
                )
                result = 'ok'
            except ConflictError:
                result = 'conflict'
            finally:
                db.close()
            with outcomes_lock:
                outcomes.append(result)

        threads = [
            threading.Thread(target=worker, args=(('T1', 'T2', 'T3'),)),
            threading.Thread(target=worker, args=(('T4', 'T3', 'T2'),)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sorted(outcomes), ['conflict', 'ok'])
        db = self._session_factory()
        try:
            row = db.query(Contract).filter(Contract.id == 'c-race').one()
            self.assertIn(tuple(row.roster_ids()), {('T1', 'T2', 'T3'), ('T4', 'T3', 'T2')})
            self.assertEqual(row.version, 2)
        finally:
            db.close()

    def test_list_contracts_filters_on_normalized_status(self):
        db = self._session_factory()
        try:
            self._seed_contract(db, 'c-p')
            self._seed_contract(db, 'c-act', status=' Active ', main='T1', sub1='T2', sub2='T3')
            self._seed_contract(db, 'c-odd', status='archived')

            active = list_contracts(db, status='ACTIVE')
            self.assertEqual([row.id for row in active], ['c-act'])
            pending = list_contracts(db, status='pending')
            self.assertEqual({row.id for row in pending}, {'c-p', 'c-odd'})
            needing = list_contracts(db, needs_tutor=True)
            self.assertEqual({row.id for row in needing}, {'c-p', 'c-odd'})
            by_tutor = list_contracts(db, tutor_id='T3')
            self.assertEqual([row.id for row in by_tutor], ['c-act'])
            with self.assertRaises(UnknownContractStatus):
                list_contracts(db, status='archived')

            payload = contract_to_dict(db.query(Contract).filter(Contract.id == 'c-odd').one())
            self.assertEqual(payload['status'], 'pending')
            self.assertEqual(count_observability_events('contract_status_unrecognized'), 1)
        finally:
            db.close()

    def test_tutor_name_fallback_chain(self):
        db = self._session_factory()
        try:
            row = self._seed_contract(db, 'c-n', main='T1', sub1='T5', sub2='ghost-tutor')
            tutors = {tutor.id: tutor for tutor in db.query(Tutor).all()}

            profiles = StubProfileClient({'ghost-tutor': {'fullName': 'Ghost From Directory'}})
            payload = contract_to_dict(row, tutors, profile_client=profiles)
            self.assertEqual(payload['main_tutor_name'], 'Tutor One')
            self.assertEqual(payload['substitute_tutor1_name'], 't5@example.com')
            self.assertEqual(payload['substitute_tutor2_name'], 'Ghost From Directory')
            self.assertNotIn('T1', profiles.calls)

            payload = contract_to_dict(row, tutors, profile_client=StubProfileClient({}))
            self.assertEqual(payload['substitute_tutor2_name'], 'ghost-tutor')
        finally:
            db.close()

    def test_candidate_tutors_exclude_overlapping_contracts(self):
        db = self._session_factory()
        try:
            self._seed_contract(db, 'c-target')
            self._seed_contract(
                db, 'c-busy', status='active', main='T1', sub1='T2', sub2='T5',
                start=date(2026, 3, 15), end=date(2026, 4, 15), slot=('18:00', '19:00'),
            )
            self._seed_contract(
                db, 'c-other-slot', status='active', main='T3', sub1='T4', sub2='T5',
                start=date(2026, 3, 1), end=date(2026, 3, 31), slot=('08:00', '09:00'),
            )
            self._seed_contract(
                db, 'c-done', status='completed', main='T4', sub1='T3', sub2='T5',
            )

            ids = [row.id for row in list_candidate_tutors(db, contract_id='c-target')]
            self.assertEqual(ids, ['T4', 'T3'])

            online = self._seed_contract(db, 'c-online', is_online=True, center_id=None, slot=('20:00', '21:00'))
            ids = {row.id for row in list_candidate_tutors(db, contract_id=online.id)}
            self.assertEqual(ids, {'T1', 'T2', 'T3', 'T4', 'T5'})
        finally:
            db.close()

    def test_candidate_tutors_by_center_without_schedule(self):
        db = self._session_factory()
        try:
            ids = [row.id for row in list_candidate_tutors(db, center_id='center-1')]
            self.assertEqual(ids, ['T4', 'T1', 'T3', 'T2'])
        finally:
            db.close()


if __name__ == '__main__':
    unittest.main()
