"""
Inbound webhook payloads.
Only the fields the billing core reads are required; the rest are kept
as-is in the payment's clearing data.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class BTCPayWebhook(BaseModel):
    model_config = ConfigDict(extra="allow")

    deliveryId: Optional[str] = None
    webhookId: Optional[str] = None
    originalDeliveryId: Optional[str] = None
    isRedelivery: bool = False
    type: str
    timestamp: Optional[int] = None
    storeId: Optional[str] = None
    invoiceId: Optional[str] = None


class StripeEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    data: dict
