#!/usr/bin/env python3
"""
Tests for the Stripe, PayPal and USDC adapters.

Provider SDKs and HTTP sessions are mocked; the tests check request
shaping and the mapping of provider responses onto typed results.
"""

import unittest
import uuid
from decimal import Decimal
from unittest.mock import Mock, patch

import requests
import stripe

from core.config_loader import PayPalConfig, PaymentsConfig, StripeConfig, UsdcConfig
from core.errors import ErrorKind, ValidationError
from core.payments import AdapterRegistry, AuthorizationRequest, PayPalAdapter, StripeAdapter, UsdcAdapter
from core.payments.base import classify_status_code
from core.payments.registry import build_adapter_registry
from core.payments.usdc_adapter import USDC_MINT

ESCROW = "EscrowWa11et1111111111111111111111111111111"


def auth_request(amount="500.00") -> AuthorizationRequest:
    return AuthorizationRequest(
        request_id=uuid.uuid4(),
        company_id=uuid.uuid4(),
        amount=Decimal(amount),
        currency="USD",
        description="Candidate shortlist: Backend Engineer",
        customer_email="hiring@acme.test",
    )


def http_response(payload=None, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    response.content = b'{}' if payload is not None else b''
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(response=response)
    else:
        response.raise_for_status.return_value = None
    return response


class TestStripeAdapter(unittest.TestCase):
    def setUp(self):
        self.adapter = StripeAdapter(StripeConfig(secret_key="sk_test_123"))

    @patch('stripe.PaymentIntent')
    def test_authorize_creates_manual_capture_intent(self, mock_intent):
        mock_intent.create.return_value = Mock(id="pi_1", client_secret="pi_1_secret")
        request = auth_request("499.99")

        result = self.adapter.authorize(request, idempotency_key="authorize-abc")

        self.assertTrue(result.success)
        self.assertEqual(result.reference, "pi_1")
        self.assertEqual(result.client_secret, "pi_1_secret")
        self.assertTrue(result.requires_confirmation)
        kwargs = mock_intent.create.call_args.kwargs
        self.assertEqual(kwargs['amount'], 49999)
        self.assertEqual(kwargs['currency'], "usd")
        self.assertEqual(kwargs['capture_method'], "manual")
        self.assertEqual(kwargs['idempotency_key'], "authorize-abc")
        self.assertEqual(kwargs['api_key'], "sk_test_123")
        self.assertEqual(kwargs['metadata']['shortlist_request_id'], str(request.request_id))

    def test_authorize_without_key_fails_terminally(self):
        result = StripeAdapter(StripeConfig()).authorize(auth_request())
        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.PROVIDER_TERMINAL)

    @patch('stripe.PaymentIntent')
    def test_card_error_is_terminal(self, mock_intent):
        mock_intent.create.side_effect = stripe.CardError("Your card was declined.", None, "card_declined")
        result = self.adapter.authorize(auth_request())
        self.assertEqual(result.error_kind, ErrorKind.PROVIDER_TERMINAL)

    @patch('stripe.PaymentIntent')
    def test_rate_limit_is_transient(self, mock_intent):
        mock_intent.create.side_effect = stripe.RateLimitError("Too many requests")
        result = self.adapter.authorize(auth_request())
        self.assertEqual(result.error_kind, ErrorKind.PROVIDER_TRANSIENT)

    @patch('stripe.PaymentIntent')
    def test_capture_timeout_is_unknown_outcome(self, mock_intent):
        mock_intent.capture.side_effect = stripe.APIConnectionError("read timed out")
        result = self.adapter.capture_full("pi_1", Decimal("500.00"), idempotency_key="capture-1")
        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.PROVIDER_UNKNOWN_OUTCOME)

    @patch('stripe.PaymentIntent')
    def test_partial_capture_sends_minor_units(self, mock_intent):
        mock_intent.capture.return_value = Mock(id="pi_1", amount_received=37500)

        result = self.adapter.capture_partial("pi_1", Decimal("500.00"), Decimal("375.00"), idempotency_key="capture-1")

        self.assertEqual(result.amount_captured, Decimal("375.00"))
        self.assertEqual(mock_intent.capture.call_args.kwargs['amount_to_capture'], 37500)

    @patch('stripe.PaymentIntent')
    def test_release_cancels_intent(self, mock_intent):
        result = self.adapter.release("pi_1", idempotency_key="release-1")
        self.assertTrue(result.success)
        mock_intent.cancel.assert_called_once_with("pi_1", api_key="sk_test_123", idempotency_key="release-1")

    @patch('stripe.PaymentIntent')
    def test_validity_follows_intent_status(self, mock_intent):
        mock_intent.retrieve.return_value = Mock(status="requires_capture")
        self.assertTrue(self.adapter.is_valid("pi_1"))
        mock_intent.retrieve.return_value = Mock(status="canceled")
        self.assertFalse(self.adapter.is_valid("pi_1"))
        mock_intent.retrieve.side_effect = stripe.APIConnectionError("down")
        self.assertIsNone(self.adapter.is_valid("pi_1"))

    @patch('stripe.PaymentIntent')
    def test_confirm_checks_held_amount(self, mock_intent):
        mock_intent.retrieve.return_value = Mock(status="requires_capture", amount=40000)
        result = self.adapter.confirm("pi_1", Decimal("500.00"))
        self.assertFalse(result.success)


class TestPayPalAdapter(unittest.TestCase):
    def setUp(self):
        self.session = Mock()
        self.now = [0.0]
        self.adapter = PayPalAdapter(
            PayPalConfig(client_id="client", client_secret="secret"),
            session=self.session,
            clock=lambda: self.now[0],
        )
        self.token_calls = 0
        self.posts = {}
        self.gets = {}
        self.session.post.side_effect = self._post
        self.session.get.side_effect = self._get

    def _post(self, url, **kwargs):
        if url.endswith("/v1/oauth2/token"):
            self.token_calls += 1
            return http_response({'access_token': f"token-{self.token_calls}", 'expires_in': 3600})
        path = url.replace(self.adapter.base_url, "")
        self.last_post = (path, kwargs)
        return self.posts[path]

    def _get(self, url, **kwargs):
        return self.gets[url.replace(self.adapter.base_url, "")]

    def order_with_authorization(self, order_id="ORDER-1", authorization_id="AUTH-1"):
        authorizations = [{'id': authorization_id}] if authorization_id else []
        self.gets[f"/v2/checkout/orders/{order_id}"] = http_response({
            'id': order_id,
            'purchase_units': [{'payments': {'authorizations': authorizations}}],
        })

    def test_uses_sandbox_by_default(self):
        self.assertEqual(self.adapter.base_url, "https://api-m.sandbox.paypal.com")

    def test_token_is_cached_until_shortly_before_expiry(self):
        self.assertEqual(self.adapter._get_access_token(), "token-1")
        self.now[0] = 3539.0
        self.assertEqual(self.adapter._get_access_token(), "token-1")
        self.now[0] = 3540.0
        self.assertEqual(self.adapter._get_access_token(), "token-2")
        self.assertEqual(self.token_calls, 2)

    def test_authorize_returns_approval_url(self):
        self.posts["/v2/checkout/orders"] = http_response({
            'id': "ORDER-1",
            'links': [
                {'rel': 'self', 'href': "https://api.paypal.test/orders/ORDER-1"},
                {'rel': 'approve', 'href': "https://www.paypal.test/checkoutnow?token=ORDER-1"},
            ],
        })

        result = self.adapter.authorize(auth_request(), idempotency_key="authorize-1")

        self.assertTrue(result.success)
        self.assertEqual(result.reference, "ORDER-1")
        self.assertEqual(result.approval_url, "https://www.paypal.test/checkoutnow?token=ORDER-1")
        self.assertTrue(result.requires_confirmation)
        path, kwargs = self.last_post
        self.assertEqual(kwargs['headers']['PayPal-Request-Id'], "authorize-1")
        self.assertEqual(kwargs['headers']['Authorization'], "Bearer token-1")
        self.assertEqual(kwargs['json']['intent'], "AUTHORIZE")
        self.assertEqual(kwargs['json']['purchase_units'][0]['amount']['value'], "500.00")

    def test_partial_capture(self):
        self.order_with_authorization()
        self.posts["/v2/payments/authorizations/AUTH-1/capture"] = http_response(
            {'id': "CAP-1", 'amount': {'value': "375.00"}}
        )

        result = self.adapter.capture_partial("ORDER-1", Decimal("500.00"), Decimal("375.00"), "capture-1")

        self.assertTrue(result.success)
        self.assertEqual(result.amount_captured, Decimal("375.00"))
        self.assertEqual(result.capture_reference, "CAP-1")
        _, kwargs = self.last_post
        self.assertEqual(kwargs['json']['amount']['value'], "375.00")
        self.assertTrue(kwargs['json']['final_capture'])

    def test_capture_server_error_is_unknown_outcome(self):
        self.order_with_authorization()
        self.posts["/v2/payments/authorizations/AUTH-1/capture"] = http_response({}, status_code=502)

        result = self.adapter.capture_full("ORDER-1", Decimal("500.00"), "capture-1")

        self.assertEqual(result.error_kind, ErrorKind.PROVIDER_UNKNOWN_OUTCOME)

    def test_capture_without_authorization(self):
        self.order_with_authorization(authorization_id=None)
        result = self.adapter.capture_full("ORDER-1", Decimal("500.00"))
        self.assertEqual(result.error_kind, ErrorKind.PROVIDER_TERMINAL)

    def test_release_of_unapproved_order_is_a_no_op(self):
        self.order_with_authorization(authorization_id=None)
        self.assertTrue(self.adapter.release("ORDER-1").success)
        self.assertFalse(self.posts)

    def test_release_voids_authorization(self):
        self.order_with_authorization()
        self.posts["/v2/payments/authorizations/AUTH-1/void"] = http_response(None, status_code=204)

        self.assertTrue(self.adapter.release("ORDER-1", "release-1").success)

    def test_confirm_authorizes_approved_order(self):
        self.order_with_authorization(authorization_id=None)
        self.posts["/v2/checkout/orders/ORDER-1/authorize"] = http_response({'status': "COMPLETED"})

        self.assertTrue(self.adapter.confirm("ORDER-1", Decimal("500.00")).success)

    def test_validity(self):
        self.order_with_authorization()
        self.gets["/v2/payments/authorizations/AUTH-1"] = http_response({'status': "CREATED"})
        self.assertTrue(self.adapter.is_valid("ORDER-1"))
        self.gets["/v2/payments/authorizations/AUTH-1"] = http_response({'status': "EXPIRED"})
        self.assertFalse(self.adapter.is_valid("ORDER-1"))

    def test_status_code_classification(self):
        self.assertEqual(classify_status_code(503, moves_money=False), ErrorKind.PROVIDER_TRANSIENT)
        self.assertEqual(classify_status_code(503, moves_money=True), ErrorKind.PROVIDER_UNKNOWN_OUTCOME)
        self.assertEqual(classify_status_code(429, moves_money=True), ErrorKind.PROVIDER_TRANSIENT)
        self.assertEqual(classify_status_code(422, moves_money=True), ErrorKind.PROVIDER_TERMINAL)


class TestUsdcAdapter(unittest.TestCase):
    def setUp(self):
        self.session = Mock()
        self.adapter = UsdcAdapter(UsdcConfig(escrow_wallet=ESCROW, revenue_wallet="Revenue111"), session=self.session)

    def transaction(self, amount="500", destination=ESCROW, err=None):
        return {
            'jsonrpc': '2.0',
            'result': {
                'meta': {'err': err},
                'transaction': {'message': {'instructions': [
                    {'program': 'system', 'parsed': {'type': 'createAccount', 'info': {}}},
                    {'program': 'spl-token', 'parsed': {'type': 'transferChecked', 'info': {
                        'destination': destination,
                        'mint': USDC_MINT,
                        'tokenAmount': {'uiAmountString': amount},
                    }}},
                ]}},
            },
        }

    def test_authorize_returns_escrow_address(self):
        result = self.adapter.authorize(auth_request())
        self.assertTrue(result.success)
        self.assertEqual(result.escrow_address, ESCROW)
        self.assertTrue(result.requires_confirmation)
        self.assertFalse(self.adapter.authorization_expires)

    def test_authorize_without_escrow_wallet(self):
        result = UsdcAdapter(UsdcConfig(), session=self.session).authorize(auth_request())
        self.assertFalse(result.success)

    def test_confirm_requires_signature(self):
        result = self.adapter.confirm("pending_1", Decimal("500"))
        self.assertEqual(result.error_kind, ErrorKind.VALIDATION)

    def test_confirm_verifies_transfer_to_escrow(self):
        self.session.post.return_value = http_response(self.transaction("500.000000"))

        result = self.adapter.confirm("pending_1", Decimal("500.00"), provider_reference="5igSig")

        self.assertTrue(result.success)
        self.assertEqual(result.reference, "5igSig")
        rpc = self.session.post.call_args.kwargs['json']
        self.assertEqual(rpc['method'], 'getTransaction')
        self.assertEqual(rpc['params'][0], "5igSig")

    def test_confirm_rejects_short_transfer(self):
        self.session.post.return_value = http_response(self.transaction("499.99"))
        result = self.adapter.confirm("pending_1", Decimal("500.00"), provider_reference="5igSig")
        self.assertEqual(result.error_kind, ErrorKind.PROVIDER_TERMINAL)

    def test_confirm_rejects_transfer_elsewhere(self):
        self.session.post.return_value = http_response(self.transaction(destination="SomeoneElse"))
        result = self.adapter.confirm("pending_1", Decimal("500.00"), provider_reference="5igSig")
        self.assertFalse(result.success)

    def test_failed_transaction(self):
        self.session.post.return_value = http_response(self.transaction(err={'InstructionError': [0, 'Custom']}))
        result = self.adapter.confirm("pending_1", Decimal("500.00"), provider_reference="5igSig")
        self.assertEqual(result.error_message, "Transaction failed on-chain")

    def test_unconfirmed_transaction_is_transient(self):
        self.session.post.return_value = http_response({'jsonrpc': '2.0', 'result': None})
        result = self.adapter.confirm("pending_1", Decimal("500.00"), provider_reference="5igSig")
        self.assertEqual(result.error_kind, ErrorKind.PROVIDER_TRANSIENT)

    def test_capture_requires_revenue_wallet(self):
        adapter = UsdcAdapter(UsdcConfig(escrow_wallet=ESCROW), session=self.session)
        self.assertFalse(adapter.capture_full("ref", Decimal("500")).success)
        self.assertEqual(
            self.adapter.capture_partial("ref", Decimal("500"), Decimal("250")).amount_captured, Decimal("250")
        )


class TestAdapterRegistry(unittest.TestCase):
    def test_default_registry_has_all_rails(self):
        registry = build_adapter_registry(PaymentsConfig())
        self.assertEqual(registry.available(), ['paypal', 'stripe', 'usdc'])
        self.assertIsInstance(registry.get('STRIPE'), StripeAdapter)

    def test_unknown_provider(self):
        with self.assertRaises(ValidationError):
            AdapterRegistry().get('venmo')


if __name__ == '__main__':
    unittest.main()
