# storefront/domain/identity.py
from dataclasses import dataclass


@dataclass(frozen=True)
class UserIdentity:
    user_id: int


@dataclass(frozen=True)
class SessionIdentity:
    token: str


#tagged union passed explicitly to every cart call
Identity = UserIdentity | SessionIdentity


def describe(identity: Identity) -> str:
    if isinstance(identity, UserIdentity):
        return f"user {identity.user_id}"
    return f"guest {identity.token}"
