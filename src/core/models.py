"""
Simple Update Checker - Data Model
Programs, notification state and the two append-only history records.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from providers.base import VersionProvider

DISPLAY_FORMAT = "%d.%m.%Y %H:%M:%S"


def utc_now() -> datetime:
    """Current time as a naive UTC datetime (the format stored in the database)."""
    return datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)


def format_datetime(value: Optional[datetime]) -> str:
    """Format a timestamp for logs and tables."""
    if value is None:
        return "-"
    return value.strftime(DISPLAY_FORMAT)


class UpdateCheckType(Enum):
    """How an update check pass was triggered."""
    MANUAL = "manual"
    TIMED = "timed"

    @classmethod
    def from_identifier(cls, identifier: str) -> "UpdateCheckType":
        try:
            return cls(identifier.lower())
        except ValueError:
            raise ValueError(f"Unknown update check type: {identifier}") from None


@dataclass
class Program:
    """A tracked program and the versions recorded for it."""
    name: str
    current_version: str
    current_version_last_updated: datetime
    latest_version: str
    latest_version_last_updated: datetime
    provider: VersionProvider
    notification_sent: bool = True
    notification_sent_on: Optional[datetime] = None

    @classmethod
    def init(cls, name: str, provider: VersionProvider, version: str) -> "Program":
        """
        Create a freshly registered program.

        Current and latest version both start at the version observed at
        registration time, so there is nothing to notify about yet.
        """
        now = utc_now()
        return cls(
            name=name,
            current_version=version,
            current_version_last_updated=now,
            latest_version=version,
            latest_version_last_updated=now,
            provider=provider,
            notification_sent=True,
            notification_sent_on=None,
        )

    @property
    def has_update(self) -> bool:
        """True when the latest observed version has not been applied yet."""
        return self.current_version != self.latest_version

    @property
    def display_version(self) -> str:
        if self.has_update:
            return f"{self.current_version} -> {self.latest_version}"
        return self.current_version

    def copy(self, **changes) -> "Program":
        return replace(self, **changes)


@dataclass(frozen=True)
class NotificationInfo:
    """Notification state of a single program."""
    sent: bool
    sent_on: Optional[datetime] = None


@dataclass(frozen=True)
class UpdateCheckHistoryEntry:
    """Outcome of one completed update check pass."""
    date: datetime
    type: UpdateCheckType
    updates_available: int
    programs: str = ""

    @classmethod
    def from_programs(
        cls,
        check_type: UpdateCheckType,
        programs: list[Program],
        date: Optional[datetime] = None,
    ) -> "UpdateCheckHistoryEntry":
        return cls(
            date=date or utc_now(),
            type=check_type,
            updates_available=len(programs),
            programs=", ".join(p.name for p in programs),
        )


@dataclass(frozen=True)
class UpdateHistoryEntry:
    """A version that was adopted as the current version of a program."""
    date: datetime
    name: str
    old_version: str
    updated_to: str


@dataclass
class CheckOptions:
    """
    Options for a manual update check.

    Attributes:
        set_current_version: Promote the found version to the current
            version right away.
        allow_notification: Keep a manually found update eligible for the
            next timed notification. When False the update is marked as
            already notified.
    """
    set_current_version: bool = False
    allow_notification: bool = False
