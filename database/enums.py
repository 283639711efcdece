"""Enumerations persisted as TEXT columns."""

from enum import Enum


class UserRole(str, Enum):
    USER = "USER"
    SELLER = "SELLER"
    ADMIN = "ADMIN"


class TrackStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ARCHIVED = "ARCHIVED"


class ModerationStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ModerationType(str, Enum):
    TRACK_CREATE = "TRACK_CREATE"
    TRACK_UPDATE = "TRACK_UPDATE"
    TRACK_DELETE = "TRACK_DELETE"


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


def check_in(column: str, enum_cls) -> str:
    """Build a CHECK expression restricting a column to an enum's values."""
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"
