"""Request identity: registered customer or guest.

The rest of the storefront only ever sees an ``Owner``. Resolution from the
request (auth middleware headers) and payer-email lookups live here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from protean.exceptions import ValidationError

GUEST_PREFIX = "guest_"


@dataclass(frozen=True)
class Owner:
    """Opaque owner key plus a flag telling guests from registered users."""

    key: str
    is_guest: bool = False

    @classmethod
    def resolve(cls, user_id: str | None = None, guest_id: str | None = None) -> "Owner":
        """Build an owner from exactly one of a user id or a guest id."""
        if user_id and guest_id:
            raise ValidationError({"owner": ["Provide either a user id or a guest id, not both"]})
        if user_id:
            return cls(key=str(user_id), is_guest=False)
        if guest_id:
            return cls(key=str(guest_id), is_guest=True)
        raise ValidationError({"owner": ["A user id or guest id is required"]})

    @classmethod
    def guest_for_email(cls, email: str) -> "Owner":
        return cls(key=f"{GUEST_PREFIX}{email.strip().lower()}", is_guest=True)

    @property
    def user_id(self) -> str | None:
        return None if self.is_guest else self.key

    @property
    def guest_id(self) -> str | None:
        return self.key if self.is_guest else None


class CustomerDirectory(ABC):
    """Port onto the account system: who is registered under an email."""

    @abstractmethod
    def find_user_id(self, email: str) -> str | None: ...


class InMemoryCustomerDirectory(CustomerDirectory):
    """Directory backed by a dict; used in development and tests."""

    def __init__(self) -> None:
        self._users: dict[str, str] = {}

    def register(self, user_id: str, email: str) -> None:
        self._users[email.strip().lower()] = str(user_id)

    def find_user_id(self, email: str) -> str | None:
        if not email:
            return None
        return self._users.get(email.strip().lower())


_current_directory: CustomerDirectory | None = None


def get_directory() -> CustomerDirectory:
    """Return the active customer directory. Defaults to the in-memory one."""
    global _current_directory
    if _current_directory is None:
        _current_directory = InMemoryCustomerDirectory()
    return _current_directory


def set_directory(directory: CustomerDirectory) -> None:
    global _current_directory
    _current_directory = directory


def reset_directory() -> None:
    global _current_directory
    _current_directory = None
