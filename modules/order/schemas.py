"""
Order Module - Schemas
========================
Validated checkout input.
"""

from typing import Optional

from pydantic import BaseModel, Field, model_validator

from modules.customer.models import format_address
from modules.order.models import DeliveryMethod, PaymentMethod


class NewAddress(BaseModel):
    city: str = Field(..., min_length=1, max_length=100)
    street: str = Field(..., min_length=1, max_length=255)
    house: str = Field(..., min_length=1, max_length=20)
    apartment: Optional[str] = Field(None, max_length=20)
    postal_code: str = Field(..., pattern=r"^[0-9]{6}$")
    entrance: Optional[str] = Field(None, max_length=10)
    floor: Optional[int] = Field(None, ge=1, le=100)
    intercom: Optional[str] = Field(None, max_length=20)

    @property
    def full_address(self) -> str:
        return format_address(self.city, self.street, self.house, self.apartment, self.postal_code)

    @property
    def delivery_details(self) -> str:
        """Courier hints that are not part of the saved address."""
        parts = []
        if self.entrance:
            parts.append(f"entrance {self.entrance}")
        if self.floor:
            parts.append(f"floor {self.floor}")
        if self.intercom:
            parts.append(f"intercom {self.intercom}")
        return ", ".join(parts)


class CheckoutData(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: str = Field(..., min_length=5, max_length=32)
    address: str = Field("", max_length=1000)
    address_id: Optional[int] = Field(None, gt=0)
    new_address: Optional[NewAddress] = None
    delivery_method: DeliveryMethod
    payment_method: PaymentMethod
    notes: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def address_required_for_delivery(self):
        if self.delivery_method == DeliveryMethod.PICKUP:
            return self
        if self.address_id is None and self.new_address is None and not self.address.strip():
            raise ValueError("Delivery address is required for courier and postal delivery")
        return self
