"""Payment rails and the provider-agnostic settlement engine."""

from core.payments.base import PaymentProviderAdapter
from core.payments.paypal_adapter import PayPalAdapter
from core.payments.registry import AdapterRegistry, build_adapter_registry
from core.payments.results import (
    AuthorizationRequest,
    AuthorizationResult,
    ConfirmationResult,
    CaptureResult,
    ReleaseResult,
)
from core.payments.settlement import (
    OutcomeKind,
    SettlementOutcome,
    SettlementResult,
    SettlementEngine,
)
from core.payments.stripe_adapter import StripeAdapter
from core.payments.usdc_adapter import UsdcAdapter

__all__ = [
    'PaymentProviderAdapter',
    'StripeAdapter',
    'PayPalAdapter',
    'UsdcAdapter',
    'AdapterRegistry',
    'build_adapter_registry',
    'AuthorizationRequest',
    'AuthorizationResult',
    'ConfirmationResult',
    'CaptureResult',
    'ReleaseResult',
    'OutcomeKind',
    'SettlementOutcome',
    'SettlementResult',
    'SettlementEngine',
]
