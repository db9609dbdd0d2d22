#!/usr/bin/env python3
"""
PayPal adapter - redirect rail using AUTHORIZE-intent orders.

The provider reference is always the order id; the authorization id is
looked up from the order whenever a capture, void or validity check needs
it.
"""

import logging
import threading
import time
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

import requests
from tenacity import (
    retry,
    stop_after_attempt,
    wait_fixed,
    retry_if_exception,
    before_sleep_log
)

from core.config_loader import PayPalConfig
from core.errors import ErrorKind
from core.payments.base import PaymentProviderAdapter, _is_retryable_error, classify_request_error
from core.payments.results import (
    AuthorizationRequest,
    AuthorizationResult,
    ConfirmationResult,
    CaptureResult,
    ReleaseResult,
)

logger = logging.getLogger(__name__)

SANDBOX_BASE_URL = "https://api-m.sandbox.paypal.com"
LIVE_BASE_URL = "https://api-m.paypal.com"

# Refresh this long before PayPal says the token expires
TOKEN_REFRESH_MARGIN_SECONDS = 60

VALID_AUTHORIZATION_STATUSES = ("CREATED", "PENDING")


class PayPalAdapter(PaymentProviderAdapter):
    """
    PayPal Orders v2 / Payments v2 client.

    Responsibilities:
    - Own a requests.Session for connection reuse
    - Cache the OAuth access token privately until shortly before expiry
    - Retry idempotent reads (token fetch, order/authorization lookups)
    """

    def __init__(
        self,
        config: Optional[PayPalConfig] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.config = config or PayPalConfig()
        self.base_url = SANDBOX_BASE_URL if self.config.use_sandbox else LIVE_BASE_URL
        self.request_timeout_seconds = self.config.request_timeout_seconds
        self.session = session or requests.Session()
        self._clock = clock

        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    @property
    def provider_name(self) -> str:
        return 'paypal'

    def validate_config(self) -> bool:
        return bool(self.config.client_id and self.config.client_secret)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_fixed(1),
        retry=retry_if_exception(_is_retryable_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    def _fetch_token(self) -> Dict[str, Any]:
        response = self.session.post(
            f"{self.base_url}/v1/oauth2/token",
            auth=(self.config.client_id, self.config.client_secret),
            data={'grant_type': 'client_credentials'},
            headers={'Accept': 'application/json'},
            timeout=self.request_timeout_seconds
        )
        response.raise_for_status()
        return response.json()

    def _get_access_token(self) -> str:
        with self._token_lock:
            now = self._clock()
            if self._access_token and now < self._token_expires_at:
                return self._access_token

            payload = self._fetch_token()
            self._access_token = payload['access_token']
            expires_in = float(payload.get('expires_in', 0))
            self._token_expires_at = now + max(0.0, expires_in - TOKEN_REFRESH_MARGIN_SECONDS)
            logger.debug(f"PayPal access token refreshed, valid for {expires_in:.0f}s")
            return self._access_token

    def _headers(self, request_id: Optional[str] = None) -> Dict[str, str]:
        headers = {
            'Authorization': f"Bearer {self._get_access_token()}",
            'Content-Type': 'application/json',
        }
        if request_id:
            headers['PayPal-Request-Id'] = request_id
        return headers

    def _post(self, path: str, payload: Optional[Dict] = None, request_id: Optional[str] = None) -> Dict[str, Any]:
        response = self.session.post(
            f"{self.base_url}{path}",
            json=payload or {},
            headers=self._headers(request_id),
            timeout=self.request_timeout_seconds
        )
        response.raise_for_status()
        return response.json() if response.content else {}

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_fixed(1),
        retry=retry_if_exception(_is_retryable_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    def _get(self, path: str) -> Dict[str, Any]:
        response = self.session.get(
            f"{self.base_url}{path}",
            headers=self._headers(),
            timeout=self.request_timeout_seconds
        )
        response.raise_for_status()
        return response.json()

    def _authorization_id(self, order_id: str) -> Optional[str]:
        order = self._get(f"/v2/checkout/orders/{order_id}")
        units = order.get('purchase_units') or []
        if not units:
            return None
        authorizations = (units[0].get('payments') or {}).get('authorizations') or []
        if not authorizations:
            return None
        return authorizations[0].get('id')

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def authorize(self, request: AuthorizationRequest, idempotency_key: Optional[str] = None) -> AuthorizationResult:
        if not self.validate_config():
            return AuthorizationResult.failure(ErrorKind.PROVIDER_TERMINAL, "PayPal credentials not configured")

        order_request = {
            'intent': 'AUTHORIZE',
            'purchase_units': [{
                'reference_id': str(request.request_id),
                'description': request.description or f"Shortlist request {request.request_id}",
                'amount': {
                    'currency_code': request.currency,
                    'value': f"{Decimal(request.amount):.2f}",
                },
                'custom_id': str(request.company_id),
            }],
            'application_context': {
                'return_url': self.config.return_url,
                'cancel_url': self.config.cancel_url,
            },
        }

        try:
            order = self._post("/v2/checkout/orders", order_request, request_id=idempotency_key)
        except requests.RequestException as e:
            logger.error(f"PayPal order creation failed for shortlist {request.request_id}: {e}")
            return AuthorizationResult.failure(
                classify_request_error(e, moves_money=False), f"PayPal error: {e}"
            )

        approval_url = next(
            (link.get('href') for link in order.get('links', []) if link.get('rel') == 'approve'),
            None
        )
        logger.info(f"PayPal order created: {order.get('id')}")
        return AuthorizationResult(
            success=True,
            reference=order.get('id'),
            approval_url=approval_url,
            requires_confirmation=True,
        )

    def confirm(
        self,
        reference: str,
        expected_amount: Decimal,
        provider_reference: Optional[str] = None
    ) -> ConfirmationResult:
        """Authorize the order the customer approved on PayPal."""
        try:
            if self._authorization_id(reference):
                logger.info(f"PayPal order {reference} already authorized")
                return ConfirmationResult(success=True, reference=reference)

            result = self._post(f"/v2/checkout/orders/{reference}/authorize", request_id=f"confirm-{reference}")
        except requests.RequestException as e:
            logger.error(f"PayPal order authorization failed for {reference}: {e}")
            return ConfirmationResult.failure(classify_request_error(e, moves_money=False), f"PayPal error: {e}")

        if result.get('status') != 'COMPLETED':
            return ConfirmationResult.failure(
                ErrorKind.PROVIDER_TERMINAL,
                f"PayPal order {reference} authorization status is {result.get('status')}"
            )
        logger.info(f"PayPal order authorized: {reference}")
        return ConfirmationResult(success=True, reference=reference)

    def _capture(self, reference: str, payload: Dict, idempotency_key: Optional[str]) -> CaptureResult:
        try:
            authorization_id = self._authorization_id(reference)
        except requests.RequestException as e:
            logger.error(f"PayPal authorization lookup failed for order {reference}: {e}")
            return CaptureResult.failure(classify_request_error(e, moves_money=False), f"PayPal error: {e}")
        if not authorization_id:
            return CaptureResult.failure(ErrorKind.PROVIDER_TERMINAL, "Authorization not found")

        try:
            capture = self._post(
                f"/v2/payments/authorizations/{authorization_id}/capture",
                payload,
                request_id=idempotency_key
            )
        except requests.RequestException as e:
            logger.error(f"PayPal capture failed for order {reference}: {e}")
            return CaptureResult.failure(classify_request_error(e, moves_money=True), f"PayPal error: {e}")

        captured = Decimal(str((capture.get('amount') or {}).get('value', '0')))
        logger.info(f"PayPal capture successful: {authorization_id} for {captured}")
        return CaptureResult(success=True, amount_captured=captured, capture_reference=capture.get('id'))

    def capture_full(self, reference: str, amount: Decimal, idempotency_key: Optional[str] = None) -> CaptureResult:
        return self._capture(reference, {}, idempotency_key)

    def capture_partial(
        self,
        reference: str,
        original_amount: Decimal,
        capture_amount: Decimal,
        idempotency_key: Optional[str] = None
    ) -> CaptureResult:
        payload = {
            'amount': {
                'currency_code': 'USD',
                'value': f"{Decimal(capture_amount):.2f}",
            },
            'final_capture': True,
        }
        return self._capture(reference, payload, idempotency_key)

    def release(self, reference: str, idempotency_key: Optional[str] = None) -> ReleaseResult:
        try:
            authorization_id = self._authorization_id(reference)
        except requests.RequestException as e:
            logger.error(f"PayPal authorization lookup failed for order {reference}: {e}")
            return ReleaseResult.failure(classify_request_error(e, moves_money=False), f"PayPal error: {e}")

        if not authorization_id:
            # Customer never approved; nothing is held
            logger.info(f"PayPal order {reference} has no authorization to void")
            return ReleaseResult(success=True)

        try:
            self._post(f"/v2/payments/authorizations/{authorization_id}/void", request_id=idempotency_key)
        except requests.RequestException as e:
            logger.error(f"PayPal void failed for order {reference}: {e}")
            return ReleaseResult.failure(classify_request_error(e, moves_money=True), f"PayPal error: {e}")

        logger.info(f"PayPal authorization voided: {authorization_id}")
        return ReleaseResult(success=True)

    def is_valid(self, reference: str) -> Optional[bool]:
        try:
            authorization_id = self._authorization_id(reference)
            if not authorization_id:
                return False
            authorization = self._get(f"/v2/payments/authorizations/{authorization_id}")
        except requests.RequestException as e:
            logger.error(f"Failed to check PayPal authorization validity for {reference}: {e}")
            return None

        # CREATED, CAPTURED, DENIED, EXPIRED, PARTIALLY_CAPTURED, VOIDED, PENDING
        return authorization.get('status') in VALID_AUTHORIZATION_STATUSES
