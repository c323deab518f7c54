"""
Provider registry: closed name -> adapter mapping.

Adapters are built once per registry from settings and shared; they hold
no mutable state.
"""

from collections.abc import Callable

from paylink.config import Settings
from paylink.errors import UnknownProviderError
from paylink.models.enums import Provider
from paylink.providers.base import PaymentProvider
from paylink.providers.midtrans import MidtransProvider
from paylink.providers.xendit import XenditProvider

PROVIDER_FACTORIES: dict[str, Callable[[Settings], PaymentProvider]] = {
    Provider.MIDTRANS.value: lambda s: MidtransProvider(s.midtrans_server_key, sandbox=s.midtrans_sandbox),
    Provider.XENDIT.value: lambda s: XenditProvider(s.xendit_api_key, webhook_token=s.xendit_webhook_token),
}


class ProviderRegistry:
    def __init__(self, settings: Settings):
        self._adapters = {name: factory(settings) for name, factory in PROVIDER_FACTORIES.items()}

    @property
    def names(self) -> list[str]:
        return sorted(self._adapters)

    def get(self, name: str) -> PaymentProvider:
        """Resolve an adapter, raising UnknownProviderError for unregistered names."""
        try:
            return self._adapters[name]
        except KeyError:
            raise UnknownProviderError(name) from None
