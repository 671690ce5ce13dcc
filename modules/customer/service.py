"""
Customer Module - Address Service
====================================
Address book lookups and saving, always scoped to an authenticated owner.
A guest owner has no saved addresses: lookups find nothing.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from common.exceptions import NotFoundError
from common.owner import OwnerKey, AuthenticatedOwner
from modules.customer.models import Address

logger = logging.getLogger("storefront.customer")


class AddressService:

    def get_addresses(self, db: Session, owner: OwnerKey) -> List[Address]:
        """Saved addresses of the owner, default first, newest next."""
        if not isinstance(owner, AuthenticatedOwner):
            return []
        return (
            db.query(Address)
            .filter(Address.user_id == owner.user_id)
            .order_by(Address.is_default.desc(), Address.id.desc())
            .all()
        )

    def get_address(self, db: Session, owner: OwnerKey, address_id: int) -> Address:
        """Owner-scoped lookup. Foreign, missing and guest lookups all raise NotFoundError."""
        if not isinstance(owner, AuthenticatedOwner):
            raise NotFoundError("Address")
        address = db.query(Address).filter(
            Address.id == address_id,
            Address.user_id == owner.user_id,
        ).first()
        if not address:
            raise NotFoundError("Address")
        return address

    def save_address(self, db: Session, owner: AuthenticatedOwner, data, phone: Optional[str] = None) -> Address:
        """
        Add an address to the owner's book. `data` carries city, street, house,
        apartment, postal_code. The first saved address becomes the default.
        """
        is_first = db.query(Address).filter(Address.user_id == owner.user_id).count() == 0
        address = Address(
            user_id=owner.user_id,
            city=data.city.strip(),
            street=data.street.strip(),
            house=data.house.strip(),
            apartment=data.apartment or None,
            postal_code=data.postal_code or None,
            phone=phone,
            is_default=is_first,
        )
        db.add(address)
        db.flush()

        logger.info(f"Saved address #{address.id} for {owner}")
        return address


# Singleton
address_service = AddressService()
