"""
Student schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator

from database.models import PaymentMethod


class SignupRequest(BaseModel):
    """New student signup form."""

    email: EmailStr
    full_name: str
    country: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.stripe

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Full name must have at least 2 characters")
        return v

    @field_validator("country")
    @classmethod
    def validate_country(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip().upper()
        if len(v) != 2 or not v.isalpha():
            raise ValueError("Country must be an ISO 3166 alpha-2 code")
        return v


class PaymentMethodRequest(BaseModel):
    payment_method: PaymentMethod


class StudentResponse(BaseModel):
    id: int
    email: str
    full_name: str
    country: Optional[str] = None
    payment_method: str
    community_handle: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}
