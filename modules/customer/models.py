"""
Customer Module - Models
=========================
Address: saved delivery addresses of logged-in customers.
Guests have no address book; their address travels with the order only.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from config.database import Base


def format_address(city, street, house, apartment=None, postal_code=None) -> str:
    """One-line postal address: city, street, house, apt., postal code."""
    parts = [city, street, house]
    if apartment:
        parts.append(f"apt. {apartment}")
    if postal_code:
        parts.append(postal_code)
    return ", ".join(p.strip() for p in parts if p and p.strip())


# ==========================================
# 📬 Address
# ==========================================

class Address(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    title = Column(String(100), nullable=False, default="Delivery address")  # Home, Office, ...
    city = Column(String(100), nullable=False)
    street = Column(String(255), nullable=False)
    house = Column(String(20), nullable=False)
    apartment = Column(String(20), nullable=True)
    postal_code = Column(String(10), nullable=True)
    phone = Column(String(32), nullable=True)
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def full_address(self) -> str:
        return format_address(self.city, self.street, self.house, self.apartment, self.postal_code)

    @property
    def short_address(self) -> str:
        return f"{self.title} ({self.street}, {self.house})"

    def __repr__(self):
        return f"<Address #{self.id} user={self.user_id}>"
