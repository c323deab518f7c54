from paylink.providers.base import Notification, PaymentProvider, PaymentResult, Verification
from paylink.providers.registry import ProviderRegistry

__all__ = ["PaymentProvider", "PaymentResult", "Verification", "Notification", "ProviderRegistry"]
