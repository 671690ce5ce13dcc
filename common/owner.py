"""
Storefront Core - Owner Keys
==============================
A cart or order belongs to exactly one of:
    AuthenticatedOwner(user_id)  : a logged-in user
    GuestOwner(session_id)       : an anonymous browser session

Every cart/order query goes through owner_filter() / owner_columns(), which
branch on the variant so a row is never matched by the wrong kind of key.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Union


@dataclass(frozen=True)
class AuthenticatedOwner:
    user_id: int

    def __post_init__(self):
        if not isinstance(self.user_id, int) or self.user_id <= 0:
            raise ValueError(f"Invalid user id: {self.user_id!r}")

    def __str__(self):
        return f"user #{self.user_id}"


@dataclass(frozen=True)
class GuestOwner:
    session_id: str

    def __post_init__(self):
        if not self.session_id:
            raise ValueError("Guest session id must not be empty")

    def __str__(self):
        return f"guest {self.session_id[:8]}"


OwnerKey = Union[AuthenticatedOwner, GuestOwner]


def owner_filter(model, owner: OwnerKey):
    """SQL criterion restricting `model` rows to those owned by `owner`."""
    if isinstance(owner, AuthenticatedOwner):
        return model.user_id == owner.user_id
    if isinstance(owner, GuestOwner):
        return (model.session_id == owner.session_id) & model.user_id.is_(None)
    raise TypeError(f"Unsupported owner key: {owner!r}")


def owner_columns(owner: Optional[OwnerKey]) -> Dict[str, Optional[object]]:
    """Column values identifying `owner` on a new row."""
    if owner is None:
        return {"user_id": None, "session_id": None}
    if isinstance(owner, AuthenticatedOwner):
        return {"user_id": owner.user_id, "session_id": None}
    if isinstance(owner, GuestOwner):
        return {"user_id": None, "session_id": owner.session_id}
    raise TypeError(f"Unsupported owner key: {owner!r}")


def owner_of(row) -> Optional[OwnerKey]:
    """Rebuild the owner key stored on a cart/order row."""
    if row.user_id is not None:
        return AuthenticatedOwner(row.user_id)
    if row.session_id:
        return GuestOwner(row.session_id)
    return None
