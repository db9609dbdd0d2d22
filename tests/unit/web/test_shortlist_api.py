#!/usr/bin/env python3
"""
Unit tests for the shortlist HTTP API.

Runs the real routers and state machine against a SQLite database with
scripted payment adapters; only the app context and session factory are
swapped through FastAPI dependency overrides.

Usage:
    python -m pytest tests/unit/web/test_shortlist_api.py -v
"""

import tempfile
import unittest

from fastapi.testclient import TestClient

from core.errors import ErrorKind
from core.payments.results import AuthorizationResult, CaptureResult
from tests import make_sqlite_session_factory
from tests.fixtures.broker_fixtures import FixedClock, build_context, seed_candidate, seed_company
from tests.mocks.payment_mocks import FakeAdapter, RecordingDispatcher, failing
from web.backend.app import app
from web.backend.dependencies import get_app_context, get_session_factory

OPERATOR_HEADERS = {'X-Actor-Type': 'operator', 'X-Actor-Id': 'op-1'}


class ShortlistApiTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        session_factory = make_sqlite_session_factory(self.tmp.name)
        self.company_id = seed_company(session_factory)
        seed_candidate(session_factory)
        seed_candidate(
            session_factory, full_name="Max Muster", email="max@candidates.test",
            seniority=1, availability="passive", skills=(("Python", 0.6),),
        )

        self.stripe = FakeAdapter('stripe')
        self.dispatcher = RecordingDispatcher()
        self.clock = FixedClock()
        context = build_context(
            self.clock,
            adapters=[self.stripe, FakeAdapter('paypal', requires_confirmation=True)],
            dispatcher=self.dispatcher,
        )
        app.dependency_overrides[get_app_context] = lambda: context
        app.dependency_overrides[get_session_factory] = lambda: session_factory
        self.client = TestClient(app, raise_server_exceptions=False)
        self.company_headers = {
            'X-Actor-Type': 'company',
            'X-Actor-Id': 'user-1',
            'X-Company-Id': str(self.company_id),
        }

    def tearDown(self):
        app.dependency_overrides.clear()
        self.tmp.cleanup()

    def create_shortlist(self) -> str:
        response = self.client.post('/api/shortlists', headers=self.company_headers, json={
            'role_title': "Backend Engineer",
            'required_skills': ["Python", "PostgreSQL"],
            'seniority': "senior",
            'location_city': "Berlin",
            'location_country': "Germany",
            'location_timezone': "Europe/Berlin",
        })
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()['shortlist']['id']

    def admin(self, method: str, request_id: str, path: str, **kwargs):
        return self.client.request(
            method, f'/api/admin/shortlists/{request_id}/{path}', headers=OPERATOR_HEADERS, **kwargs
        )

    def prepare_scope(self) -> str:
        """
        Create, process, approve the top candidate and propose 500.00 for one.

        The clock moves between steps so emails and events order by time.
        """
        request_id = self.create_shortlist()
        self.assertEqual(self.admin('POST', request_id, 'process', json={}).status_code, 200)
        self.clock.advance(minutes=5)
        top = self.admin('GET', request_id, 'candidates').json()['candidates'][0]
        response = self.admin('PUT', request_id, 'rankings', json={
            'rankings': [{'candidate_id': top['candidate_id'], 'admin_approved': True}],
        })
        self.assertEqual(response.status_code, 200, response.text)
        response = self.admin('POST', request_id, 'propose', json={
            'price': "500.00", 'candidate_count': 1, 'notes': "Strong fits",
        })
        self.assertEqual(response.status_code, 200, response.text)
        return request_id


class TestShortlistApi(ShortlistApiTestCase):
    def test_health(self):
        response = self.client.get('/health')
        self.assertEqual(response.json(), {'status': 'healthy', 'service': 'shortlist-broker'})

    def test_create_returns_submitted(self):
        response = self.client.post('/api/shortlists', headers=self.company_headers, json={
            'role_title': "Data Engineer", 'required_skills': ["Python"],
        })

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['shortlist']['status'], 'submitted')
        self.assertEqual(body['shortlist']['company_id'], str(self.company_id))
        self.assertEqual(body['candidates'], [])

    def test_missing_actor_header(self):
        response = self.client.post('/api/shortlists', json={'role_title': "Data Engineer"})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['success'], False)
        self.assertEqual(response.json()['type'], 'HTTPException')

    def test_company_without_company_id(self):
        headers = {'X-Actor-Type': 'company', 'X-Actor-Id': 'user-1'}
        response = self.client.post('/api/shortlists', headers=headers, json={'role_title': "Data Engineer"})
        self.assertEqual(response.status_code, 401)

    def test_invalid_request_id(self):
        response = self.client.get('/api/shortlists/not-a-uuid', headers=self.company_headers)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], "Invalid request_id format")

    def test_company_cannot_use_operator_routes(self):
        request_id = self.create_shortlist()

        response = self.client.post(
            f'/api/admin/shortlists/{request_id}/process', headers=self.company_headers, json={}
        )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['type'], 'permission_denied')

    def test_other_company_gets_not_found(self):
        request_id = self.create_shortlist()
        headers = dict(self.company_headers, **{'X-Company-Id': '00000000-0000-0000-0000-000000000001'})

        response = self.client.get(f'/api/shortlists/{request_id}', headers=headers)

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['type'], 'not_found')

    def test_invalid_body_is_rejected(self):
        request_id = self.create_shortlist()
        response = self.admin('POST', request_id, 'propose', json={'price': "0", 'candidate_count': 1})
        self.assertEqual(response.status_code, 422)


class TestLifecycleOverHttp(ShortlistApiTestCase):
    def test_full_flow(self):
        request_id = self.prepare_scope()

        preview = self.client.get(f'/api/shortlists/{request_id}', headers=self.company_headers).json()
        self.assertEqual(preview['shortlist']['status'], 'pricing_pending')
        self.assertEqual(preview['shortlist']['proposed_price'], "500.00")
        self.assertEqual(len(preview['candidates']), 1)
        self.assertNotIn('full_name', preview['candidates'][0])
        self.assertNotIn('candidate_id', preview['candidates'][0])
        self.assertEqual(preview['candidates'][0]['rank'], 1)

        response = self.client.post(f'/api/shortlists/{request_id}/approve', headers=self.company_headers)
        self.assertEqual(response.json()['status'], 'pricing_approved')

        response = self.client.post(
            f'/api/shortlists/{request_id}/payment/authorize', headers=self.company_headers, json={'provider': 'stripe'}
        )
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(body['status'], 'authorized')
        self.assertEqual(body['client_secret'], "secret_1")
        self.assertEqual(body['payment']['amount_authorized'], "500.00")

        response = self.admin('POST', request_id, 'deliver', json={})
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(body['status'], 'completed')
        self.assertEqual(body['shortlist']['outcome'], 'fulfilled')
        self.assertEqual(body['payment']['status'], 'captured')
        self.assertEqual(body['payment']['amount_captured'], "500.00")

        delivered = self.client.get(f'/api/shortlists/{request_id}', headers=self.company_headers).json()
        self.assertEqual(delivered['candidates'][0]['full_name'], "Jane Doe")
        self.assertEqual(delivered['candidates'][0]['email'], "jane@candidates.test")

        events = self.admin('GET', request_id, 'events').json()
        self.assertEqual(events['events'][0]['event_type'], 'created')
        self.assertEqual(events['events'][-1]['new_status'], 'completed')
        self.assertEqual(events['count'], len(events['events']))
        self.assertIn('pricing_ready', self.dispatcher.events())

    def test_authorize_before_approval_is_a_guard_violation(self):
        request_id = self.prepare_scope()

        response = self.client.post(
            f'/api/shortlists/{request_id}/payment/authorize', headers=self.company_headers, json={}
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['type'], 'guard_violation')

    def test_provider_failure_is_generic_for_companies(self):
        request_id = self.prepare_scope()
        self.client.post(f'/api/shortlists/{request_id}/approve', headers=self.company_headers)
        self.stripe.authorize_result = failing(AuthorizationResult, message="card declined: insufficient funds")

        response = self.client.post(
            f'/api/shortlists/{request_id}/payment/authorize', headers=self.company_headers, json={'provider': 'stripe'}
        )

        self.assertEqual(response.status_code, 402)
        self.assertEqual(response.json()['error'], "payment provider error")
        self.assertEqual(response.json()['type'], 'provider_terminal')

        payment = self.client.get(f'/api/shortlists/{request_id}/payment', headers=self.company_headers).json()
        self.assertEqual(payment['status'], 'pricing_approved')
        self.assertEqual(payment['payment']['status'], 'failed')

    def test_payment_errors_are_generic_for_companies(self):
        request_id = self.prepare_scope()
        self.client.post(f'/api/shortlists/{request_id}/approve', headers=self.company_headers)
        self.client.post(
            f'/api/shortlists/{request_id}/payment/authorize', headers=self.company_headers, json={'provider': 'stripe'}
        )
        self.stripe.capture_result = failing(
            CaptureResult, ErrorKind.PROVIDER_UNKNOWN_OUTCOME, "Stripe error: read timed out (acct_1Xyz)"
        )

        response = self.admin('POST', request_id, 'deliver', json={})
        self.assertEqual(response.status_code, 402)
        self.assertEqual(response.json()['type'], 'provider_unknown_outcome')

        company_view = self.client.get(f'/api/shortlists/{request_id}/payment', headers=self.company_headers).json()
        self.assertEqual(company_view['status'], 'authorized')
        self.assertEqual(company_view['payment']['error_message'], "payment provider error")
        self.assertNotIn('acct_1Xyz', str(company_view))

        operator_view = self.client.get(f'/api/shortlists/{request_id}/payment', headers=OPERATOR_HEADERS).json()
        self.assertEqual(operator_view['payment']['error_message'], "Stripe error: read timed out (acct_1Xyz)")
        self.assertTrue(operator_view['payment']['reconciliation_required'])

    def test_reconcile_completes_after_unknown_capture(self):
        request_id = self.prepare_scope()
        self.client.post(f'/api/shortlists/{request_id}/approve', headers=self.company_headers)
        self.client.post(
            f'/api/shortlists/{request_id}/payment/authorize', headers=self.company_headers, json={'provider': 'stripe'}
        )
        self.stripe.capture_result = failing(CaptureResult, ErrorKind.PROVIDER_UNKNOWN_OUTCOME, "read timed out")
        self.admin('POST', request_id, 'deliver', json={})

        response = self.client.post(
            f'/api/admin/shortlists/{request_id}/reconcile', headers=self.company_headers,
            json={'resolution': 'captured'},
        )
        self.assertEqual(response.status_code, 403)

        response = self.admin('POST', request_id, 'reconcile', json={'resolution': 'captured', 'note': "Seen in dashboard"})
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(body['status'], 'completed')
        self.assertEqual(body['payment']['status'], 'captured')
        self.assertEqual(body['payment']['amount_captured'], "500.00")
        self.assertFalse(body['payment']['reconciliation_required'])

    def test_decline_returns_to_processing(self):
        request_id = self.prepare_scope()

        response = self.client.post(
            f'/api/shortlists/{request_id}/decline', headers=self.company_headers, json={'reason': "Over budget"}
        )

        self.assertEqual(response.json()['status'], 'processing')
        self.assertIsNone(response.json()['shortlist']['proposed_price'])

    def test_pricing_suggestion(self):
        request_id = self.prepare_scope()

        response = self.admin('GET', request_id, 'pricing-suggestion', params={'candidate_count': 5})

        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(body['suggested_price'], "500.00")
        self.assertEqual(body['seniority'], 'senior')
        self.assertEqual(body['candidate_count'], 5)

    def test_no_match_requires_reason(self):
        request_id = self.create_shortlist()
        response = self.admin('POST', request_id, 'no-match', json={'reason': ""})
        self.assertEqual(response.status_code, 422)

    def test_email_history_and_resend(self):
        request_id = self.prepare_scope()

        emails = self.admin('GET', request_id, 'emails').json()
        self.assertEqual([e['email_event'] for e in emails['emails']], ['processing_started', 'pricing_ready'])

        response = self.admin('POST', request_id, 'emails/resend-last')
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()['email']['email_event'], 'pricing_ready')
        self.assertTrue(response.json()['email']['is_resend'])


if __name__ == '__main__':
    unittest.main()
