"""
Customer identity — who is buying.

Exactly one of two shapes, passed explicitly to every cart, coupon and
checkout call:

    Authenticated(user_id="u_1")
    Guest(session_id="sess_9", email="ana@example.com")
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Authenticated:
    user_id: str


@dataclass(frozen=True, slots=True)
class Guest:
    session_id: str
    email: str | None = None


type CustomerIdentity = Authenticated | Guest


def normalize_email(email: str) -> str:
    return email.strip().lower()


def usage_key(identity: CustomerIdentity) -> str | None:
    """
    Key under which coupon redemptions are recorded.

    None for a guest that has not supplied an email yet; such a guest
    cannot be checked for prior use until checkout collects one.
    """
    match identity:
        case Authenticated(user_id):
            return f"user:{user_id}"
        case Guest(_, email):
            if email is None or not email.strip():
                return None
            return f"guest:{normalize_email(email)}"


def owner_key(identity: CustomerIdentity) -> str:
    """Stable owner key for server-side records (payment intents)."""
    match identity:
        case Authenticated(user_id):
            return f"user:{user_id}"
        case Guest(session_id, _):
            return f"session:{session_id}"


def cart_owner(identity: CustomerIdentity) -> tuple[str | None, str | None]:
    """(user_id, session_id) — exactly one side is set."""
    match identity:
        case Authenticated(user_id):
            return user_id, None
        case Guest(session_id, _):
            return None, session_id


__all__ = (
    "Authenticated",
    "Guest",
    "CustomerIdentity",
    "normalize_email",
    "usage_key",
    "owner_key",
    "cart_owner",
)
