"""Payment provider schemas"""

from typing import Optional
from pydantic import BaseModel

from app.models.payment import PaymentStatus


class PaymentIntent(BaseModel):
    """Payment created at a provider, before the guest pays"""
    provider: str  # gcash, maya
    transaction_id: str
    provider_status: str
    checkout_url: Optional[str] = None
    client_key: Optional[str] = None


class PaymentResolution(BaseModel):
    """Status a provider reported for an existing payment"""
    provider_status: str
    status: Optional[PaymentStatus] = None  # None while the payment is unresolved
