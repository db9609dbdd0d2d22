#!/usr/bin/env python3
"""
USDC adapter - escrow rail on Solana.

There is no card-style authorization: the company transfers USDC to the
escrow wallet and submits the transaction signature, which is verified
on-chain through the JSON-RPC API. Capture and release move funds out of
escrow and are carried out by a separate signing service; here they are
recorded and logged.
"""

import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import requests
from tenacity import (
    retry,
    stop_after_attempt,
    wait_fixed,
    retry_if_exception,
    before_sleep_log
)

from core.config_loader import UsdcConfig
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

# USDC token mint on Solana mainnet
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

TRANSFER_INSTRUCTION_TYPES = ("transferChecked", "transfer")


class UsdcAdapter(PaymentProviderAdapter):
    """Escrow-style USDC payments verified against a Solana RPC node."""

    def __init__(self, config: Optional[UsdcConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or UsdcConfig()
        self.session = session or requests.Session()

    @property
    def provider_name(self) -> str:
        return 'usdc'

    def validate_config(self) -> bool:
        return bool(self.config.escrow_wallet)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_fixed(2),
        retry=retry_if_exception(_is_retryable_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    def _get_transaction(self, signature: str) -> Dict[str, Any]:
        rpc_request = {
            'jsonrpc': '2.0',
            'id': 1,
            'method': 'getTransaction',
            'params': [
                signature,
                {'encoding': 'jsonParsed', 'maxSupportedTransactionVersion': 0},
            ],
        }
        response = self.session.post(
            self.config.rpc_url,
            json=rpc_request,
            timeout=self.config.request_timeout_seconds
        )
        response.raise_for_status()
        return response.json()

    def authorize(self, request: AuthorizationRequest, idempotency_key: Optional[str] = None) -> AuthorizationResult:
        if not self.config.escrow_wallet:
            return AuthorizationResult.failure(ErrorKind.PROVIDER_TERMINAL, "Escrow wallet not configured")

        logger.info(f"USDC escrow requested: {request.amount} USDC for shortlist {request.request_id}")
        return AuthorizationResult(
            success=True,
            reference=f"pending_{request.request_id}_{time.time_ns()}",
            escrow_address=self.config.escrow_wallet,
            requires_confirmation=True,
        )

    def confirm(
        self,
        reference: str,
        expected_amount: Decimal,
        provider_reference: Optional[str] = None
    ) -> ConfirmationResult:
        """Verify the company's transfer into escrow; provider_reference is the tx signature."""
        if not provider_reference:
            return ConfirmationResult.failure(ErrorKind.VALIDATION, "Transaction signature is required")
        if not self.config.escrow_wallet:
            return ConfirmationResult.failure(ErrorKind.PROVIDER_TERMINAL, "Escrow wallet not configured")

        try:
            rpc_response = self._get_transaction(provider_reference)
        except requests.RequestException as e:
            logger.error(f"Solana RPC error for {provider_reference}: {e}")
            return ConfirmationResult.failure(classify_request_error(e, moves_money=False), f"Solana RPC error: {e}")

        if rpc_response.get('error'):
            logger.error(f"Solana transaction lookup failed: {provider_reference}")
            return ConfirmationResult.failure(ErrorKind.PROVIDER_TERMINAL, "Transaction not found")

        result = rpc_response.get('result')
        if not result:
            # Not yet visible at the node's commitment level
            return ConfirmationResult.failure(ErrorKind.PROVIDER_TRANSIENT, "Transaction not yet confirmed")

        if (result.get('meta') or {}).get('err') is not None:
            logger.error(f"Solana transaction failed: {provider_reference}")
            return ConfirmationResult.failure(ErrorKind.PROVIDER_TERMINAL, "Transaction failed on-chain")

        amount = self._escrowed_amount(result)
        if amount is None or amount < Decimal(expected_amount):
            logger.warning(f"USDC transfer not found in transaction: {provider_reference}")
            return ConfirmationResult.failure(
                ErrorKind.PROVIDER_TERMINAL,
                f"No transfer of at least {expected_amount} USDC to the escrow wallet"
            )

        logger.info(f"USDC escrow verified: {provider_reference} with {amount} USDC")
        return ConfirmationResult(success=True, reference=provider_reference)

    def _escrowed_amount(self, transaction: Dict[str, Any]) -> Optional[Decimal]:
        """Largest parsed transfer into the escrow wallet, if any."""
        message = (transaction.get('transaction') or {}).get('message') or {}
        best: Optional[Decimal] = None
        for instruction in message.get('instructions', []):
            parsed = instruction.get('parsed')
            if not isinstance(parsed, dict) or parsed.get('type') not in TRANSFER_INSTRUCTION_TYPES:
                continue
            info = parsed.get('info') or {}
            if info.get('destination') != self.config.escrow_wallet:
                continue
            if info.get('mint') not in (None, USDC_MINT):
                continue
            try:
                amount = Decimal(str((info.get('tokenAmount') or {}).get('uiAmountString', '0')))
            except InvalidOperation:
                continue
            if best is None or amount > best:
                best = amount
        return best

    def capture_full(self, reference: str, amount: Decimal, idempotency_key: Optional[str] = None) -> CaptureResult:
        if not self.config.revenue_wallet:
            return CaptureResult.failure(ErrorKind.PROVIDER_TERMINAL, "Revenue wallet not configured")

        logger.info(f"USDC capture initiated: {amount} USDC to revenue wallet for {reference}")
        return CaptureResult(
            success=True,
            amount_captured=Decimal(amount),
            capture_reference=f"capture_{reference}_{time.time_ns()}",
        )

    def capture_partial(
        self,
        reference: str,
        original_amount: Decimal,
        capture_amount: Decimal,
        idempotency_key: Optional[str] = None
    ) -> CaptureResult:
        if not self.config.revenue_wallet:
            return CaptureResult.failure(ErrorKind.PROVIDER_TERMINAL, "Revenue wallet not configured")

        refund_amount = Decimal(original_amount) - Decimal(capture_amount)
        logger.info(
            f"USDC partial capture initiated: {capture_amount} to revenue, "
            f"{refund_amount} to refund for {reference}"
        )
        return CaptureResult(
            success=True,
            amount_captured=Decimal(capture_amount),
            capture_reference=f"partial_{reference}_{time.time_ns()}",
        )

    def release(self, reference: str, idempotency_key: Optional[str] = None) -> ReleaseResult:
        logger.info(f"USDC refund initiated for {reference}")
        return ReleaseResult(success=True)

    def is_valid(self, reference: str) -> Optional[bool]:
        # Escrowed funds do not expire
        return True

    @property
    def authorization_expires(self) -> bool:
        return False
