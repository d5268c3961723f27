"""Payment provider integration"""

from app.payments.amounts import clean_amount_for_topup
from app.payments.auth import AuthModuleClient
from app.payments.providers import BasePaymentProvider, GCashProvider, MayaProvider

__all__ = [
    "clean_amount_for_topup",
    "AuthModuleClient",
    "BasePaymentProvider",
    "GCashProvider",
    "MayaProvider",
]
