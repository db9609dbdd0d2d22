#!/usr/bin/env python3
"""
Tests for the repositories and the unit of work.

Tests cover:
1. Guarded status writes (compare-and-set) across sessions
2. The one-active-payment index
3. Follow-up chain walking
4. Commit, rollback and outbox flushing in shortlist_uow
"""

import tempfile
import unittest
from decimal import Decimal

from core.errors import ConflictError
from database.models import Payment, ShortlistEvent, ShortlistRequest
from database.repository import BrokerRepository
from database.uow import shortlist_uow
from tests import make_sqlite_session_factory
from tests.fixtures.broker_fixtures import T0, seed_company
from tests.mocks.payment_mocks import RecordingDispatcher


class RepositoryTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.session_factory = make_sqlite_session_factory(self.tmp.name)
        self.company_id = seed_company(self.session_factory)
        self.request_id = self.add_request()

    def tearDown(self):
        self.tmp.cleanup()

    def add_request(self, status: str = 'submitted', **fields) -> object:
        with shortlist_uow(self.session_factory) as repo:
            request = repo.requests.add(ShortlistRequest(
                company_id=self.company_id, role_title="Backend Engineer", status=status, **fields
            ))
            return request.id


class TestCompareAndSet(RepositoryTestCase):
    def test_status_write_updates_row_and_instance(self):
        with shortlist_uow(self.session_factory) as repo:
            request = repo.requests.get(self.request_id)
            repo.requests.compare_and_set_status(request, 'submitted', 'processing')
            self.assertEqual(request.status, 'processing')

        with shortlist_uow(self.session_factory) as repo:
            self.assertEqual(repo.requests.get(self.request_id).status, 'processing')

    def test_wrong_expected_status_conflicts(self):
        with shortlist_uow(self.session_factory) as repo:
            request = repo.requests.get(self.request_id)
            with self.assertRaises(ConflictError):
                repo.requests.compare_and_set_status(request, 'processing', 'pricing_pending')

    def test_stale_reader_loses_the_race(self):
        """Two sessions read 'submitted'; only the first write wins."""
        session_a = self.session_factory()
        session_b = self.session_factory()
        try:
            repo_a, repo_b = BrokerRepository(session_a), BrokerRepository(session_b)
            request_a = repo_a.requests.get(self.request_id)
            request_b = repo_b.requests.get(self.request_id)

            repo_a.requests.compare_and_set_status(request_a, 'submitted', 'processing')
            session_a.commit()

            with self.assertRaises(ConflictError):
                repo_b.requests.compare_and_set_status(request_b, 'submitted', 'processing')
            session_b.rollback()
        finally:
            session_a.close()
            session_b.close()

    def test_field_update_is_conditioned_on_status(self):
        with shortlist_uow(self.session_factory) as repo:
            request = repo.requests.get(self.request_id)
            repo.requests.update_fields(request, 'submitted', scope_notes="Call first")
            self.assertEqual(request.scope_notes, "Call first")
            with self.assertRaises(ConflictError):
                repo.requests.update_fields(request, 'completed', scope_notes="Too late")


class TestPaymentRepository(RepositoryTestCase):
    def make_payment(self, status: str) -> Payment:
        return Payment(
            company_id=self.company_id,
            shortlist_request_id=self.request_id,
            provider='stripe',
            amount_authorized=Decimal("500.00"),
            status=status,
        )

    def test_second_active_payment_conflicts(self):
        with shortlist_uow(self.session_factory) as repo:
            repo.payments.add(self.make_payment('authorized'))

        with self.assertRaises(ConflictError):
            with shortlist_uow(self.session_factory) as repo:
                repo.payments.add(self.make_payment('none'))

    def test_failed_attempts_do_not_block_a_new_one(self):
        with shortlist_uow(self.session_factory) as repo:
            repo.payments.add(self.make_payment('failed'))
            repo.payments.add(self.make_payment('expired'))
            active = repo.payments.add(self.make_payment('authorized'))

            self.assertEqual(repo.payments.get_active_for_request(self.request_id).id, active.id)
            self.assertEqual(len(repo.payments.list_for_request(self.request_id)), 3)

    def test_released_payment_is_settleable_not_active(self):
        with shortlist_uow(self.session_factory) as repo:
            released = repo.payments.add(self.make_payment('released'))

            self.assertIsNone(repo.payments.get_active_for_request(self.request_id))
            self.assertEqual(repo.payments.get_settleable_for_request(self.request_id).id, released.id)


class TestFollowUpChain(RepositoryTestCase):
    def test_chain_is_nearest_first(self):
        middle_id = self.add_request('completed', previous_request_id=self.request_id)
        latest_id = self.add_request(previous_request_id=middle_id)

        with shortlist_uow(self.session_factory) as repo:
            chain = repo.requests.get_chain(repo.requests.get(latest_id))
            self.assertEqual([r.id for r in chain], [middle_id, self.request_id])

    def test_completed_requests_for_company(self):
        completed_id = self.add_request('completed', created_at=T0)

        with shortlist_uow(self.session_factory) as repo:
            found = repo.requests.find_completed_for_company(self.company_id, T0, exclude_id=self.request_id)
            self.assertEqual([r.id for r in found], [completed_id])


class TestUnitOfWork(RepositoryTestCase):
    def test_outbox_flushed_after_commit(self):
        dispatcher = RecordingDispatcher()

        with shortlist_uow(self.session_factory, dispatcher=dispatcher) as repo:
            repo.outbox.append({'email_id': 'e-1', 'email_event': 'pricing_ready'})
            self.assertEqual(dispatcher.jobs, [])

        self.assertEqual(dispatcher.events(), ['pricing_ready'])

    def test_rollback_discards_writes_and_outbox(self):
        dispatcher = RecordingDispatcher()

        with self.assertRaises(ConflictError):
            with shortlist_uow(self.session_factory, dispatcher=dispatcher) as repo:
                repo.events.append(ShortlistEvent(
                    shortlist_request_id=self.request_id, event_type='cancelled', actor_type='system',
                ))
                repo.outbox.append({'email_id': 'e-1', 'email_event': 'cancelled'})
                raise ConflictError("lost the race")

        self.assertEqual(dispatcher.jobs, [])
        with shortlist_uow(self.session_factory) as repo:
            self.assertEqual(repo.events.count_for_request(self.request_id), 0)

    def test_dispatch_failure_is_not_raised(self):
        with shortlist_uow(self.session_factory, dispatcher=RecordingDispatcher(fail=True)) as repo:
            repo.events.append(ShortlistEvent(
                shortlist_request_id=self.request_id, event_type='created', actor_type='company',
            ))
            repo.outbox.append({'email_id': 'e-1', 'email_event': 'processing_started'})

        with shortlist_uow(self.session_factory) as repo:
            self.assertEqual(repo.events.count_for_request(self.request_id, 'created'), 1)


if __name__ == '__main__':
    unittest.main()
