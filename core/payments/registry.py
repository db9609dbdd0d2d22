import logging
from typing import Dict, Iterable, Optional

from core.config_loader import PaymentsConfig
from core.enums import PaymentProvider
from core.errors import ValidationError
from core.payments.base import PaymentProviderAdapter
from core.payments.paypal_adapter import PayPalAdapter
from core.payments.stripe_adapter import StripeAdapter
from core.payments.usdc_adapter import UsdcAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Provider name -> adapter lookup used by the settlement engine."""

    def __init__(self, adapters: Optional[Iterable[PaymentProviderAdapter]] = None):
        self._adapters: Dict[str, PaymentProviderAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: PaymentProviderAdapter) -> None:
        self._adapters[adapter.provider_name] = adapter
        if not adapter.validate_config():
            logger.warning(f"Payment provider '{adapter.provider_name}' registered without complete configuration")

    def get(self, provider) -> PaymentProviderAdapter:
        name = provider.value if isinstance(provider, PaymentProvider) else str(provider or '').lower()
        adapter = self._adapters.get(name)
        if adapter is None:
            raise ValidationError(
                f"Unknown payment provider '{name}'. Available: {', '.join(sorted(self._adapters))}"
            )
        return adapter

    def available(self):
        return sorted(self._adapters)


def build_adapter_registry(config: Optional[PaymentsConfig] = None) -> AdapterRegistry:
    config = config or PaymentsConfig()
    return AdapterRegistry([
        StripeAdapter(config.stripe),
        PayPalAdapter(config.paypal),
        UsdcAdapter(config.usdc),
    ])
