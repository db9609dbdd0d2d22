#!/usr/bin/env python3
"""
Tests for ShortlistNotifier: recipients, once-per-event dedup, resend.
"""

import tempfile
import unittest

from core.actors import Actor
from core.config_loader import NotificationConfig
from core.enums import ShortlistEmailEvent
from core.errors import NotFoundError
from database.models import ShortlistRequest
from database.repository import BrokerRepository
from notification.dispatcher import ShortlistNotifier
from tests import make_sqlite_session_factory
from tests.fixtures.broker_fixtures import FixedClock, seed_company

OPERATOR = Actor.operator('op-1')


class TestShortlistNotifier(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        session_factory = make_sqlite_session_factory(self.tmp.name)
        company_id = seed_company(session_factory)
        self.session = session_factory()
        self.repo = BrokerRepository(self.session)
        self.request = self.repo.requests.add(ShortlistRequest(
            company_id=company_id, role_title="Data Engineer", status='processing',
        ))
        self.clock = FixedClock()
        self.config = NotificationConfig(operator_email="ops@broker.test", base_url="https://broker.test")
        self.notifier = self.make_notifier(self.config)

    def tearDown(self):
        self.session.close()
        self.tmp.cleanup()

    def make_notifier(self, config):
        return ShortlistNotifier(self.repo.emails, self.repo.companies, self.repo.outbox, config=config, clock=self.clock)

    def test_company_event_goes_to_contact(self):
        email = self.notifier.notify(self.request, ShortlistEmailEvent.PROCESSING_STARTED, OPERATOR)

        self.assertEqual(email.sent_to, "hiring@acme.test")
        self.assertEqual(email.sent_by, 'op-1')
        self.assertEqual(email.delivery_status, 'queued')
        job = self.repo.outbox[0]
        self.assertEqual(job['email_id'], str(email.id))
        self.assertEqual(job['recipient'], "hiring@acme.test")
        self.assertEqual(job['channel_type'], 'email')
        self.assertEqual(job['metadata']['action_url'], f"https://broker.test/shortlists/{self.request.id}")

    def test_operator_event_goes_to_operators(self):
        email = self.notifier.notify(self.request, ShortlistEmailEvent.PRICING_APPROVED)

        self.assertEqual(email.sent_to, "ops@broker.test")
        self.assertIn("Acme GmbH", email.subject)

    def test_event_is_sent_once(self):
        self.notifier.notify(self.request, ShortlistEmailEvent.PRICING_READY, OPERATOR)
        duplicate = self.notifier.notify(self.request, ShortlistEmailEvent.PRICING_READY, OPERATOR)

        self.assertIsNone(duplicate)
        self.assertEqual(len(self.repo.outbox), 1)
        self.assertEqual(len(self.notifier.history(self.request)), 1)

    def test_disabled_notifications_stage_nothing(self):
        notifier = self.make_notifier(NotificationConfig(enabled=False))
        self.assertIsNone(notifier.notify(self.request, ShortlistEmailEvent.PRICING_READY))
        self.assertEqual(self.repo.outbox, [])

    def test_resend_last(self):
        """Resend repeats the latest event and does not reset the dedup."""
        self.notifier.notify(self.request, ShortlistEmailEvent.PROCESSING_STARTED, OPERATOR)
        self.clock.advance(hours=1)
        self.notifier.notify(self.request, ShortlistEmailEvent.PRICING_READY, OPERATOR)
        self.clock.advance(hours=1)

        resent = self.notifier.resend_last(self.request, OPERATOR)

        self.assertEqual(resent.email_event, 'pricing_ready')
        self.assertTrue(resent.is_resend)
        self.assertTrue(self.repo.outbox[-1]['metadata']['is_resend'])
        self.assertEqual(
            [e.email_event for e in self.notifier.history(self.request)],
            ['processing_started', 'pricing_ready', 'pricing_ready'],
        )
        self.assertIsNone(self.notifier.notify(self.request, ShortlistEmailEvent.PRICING_READY, OPERATOR))

    def test_resend_without_history(self):
        with self.assertRaises(NotFoundError):
            self.notifier.resend_last(self.request, OPERATOR)


if __name__ == '__main__':
    unittest.main()
