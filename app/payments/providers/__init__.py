"""Payment provider implementations"""

from app.payments.providers.base import BasePaymentProvider
from app.payments.providers.gcash import GCashProvider
from app.payments.providers.maya import MayaProvider

__all__ = [
    "BasePaymentProvider",
    "GCashProvider",
    "MayaProvider",
]
