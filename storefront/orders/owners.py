"""
Order ownership: a registered account OR inline guest contact, never both.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class RegisteredOwner:
    user_id: int


@dataclass(frozen=True)
class GuestOwner:
    name: str
    contact: str = ''
    email: str = ''

    def __post_init__(self):
        if not (self.name or '').strip():
            raise ValueError("Guest owner requires a name")
