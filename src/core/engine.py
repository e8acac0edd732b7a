"""
Simple Update Checker - Core Update Engine
Checks tracked programs for new versions and records the outcome.
"""

import logging
from datetime import datetime
from typing import Optional

from core.errors import ProviderError, StoreError
from core.models import (
    CheckOptions,
    Program,
    UpdateCheckHistoryEntry,
    UpdateCheckType,
    UpdateHistoryEntry,
    utc_now,
)
from core.store import ProgramStore
from providers import VersionProvider

logger = logging.getLogger(__name__)


class UpdateEngine:
    """
    Core engine that coordinates update checks against the program store.
    """

    def __init__(self, store: ProgramStore, access_token: Optional[str] = None):
        """
        Initialize the update engine.

        Args:
            store: Program store used for all reads and writes.
            access_token: Optional credential handed to rate-limited providers.
        """
        self.store = store
        self.access_token = access_token

    def add_program(self, name: str, provider: VersionProvider) -> Program:
        """
        Start tracking a program.

        The provider is queried once and the observed version becomes both
        the current and the latest version.

        Raises:
            StoreError: If a program with this name is already tracked.
            ProviderError: If the latest version could not be determined.
        """
        if not isinstance(provider, VersionProvider):
            raise ProviderError(f"{type(provider).__name__} is not a version provider")
        if self.store.get_program(name) is not None:
            raise StoreError(f"Program {name} already exists")
        version = provider.check_for_latest_version(self.access_token)
        program = Program.init(name, provider, version)
        self.store.insert_program(program)
        logger.info(f"Added {name} ({provider.identifier}: {provider.describe()}) at version {version}")
        return program

    def remove_program(self, name: str) -> bool:
        """Stop tracking a program. Returns False if it was not tracked."""
        removed = self.store.remove_program(name)
        if removed:
            logger.info(f"Removed {name}")
        return removed

    def check_for_updates(
        self,
        check_type: UpdateCheckType,
        options: Optional[CheckOptions] = None,
    ) -> list[Program]:
        """
        Run one update check pass over all tracked programs.

        Programs are processed one after another in name order. The first
        provider failure aborts the pass; programs handled before it keep
        their persisted changes but no history entry is written.

        Args:
            check_type: Whether the pass was triggered manually or by the timer.
            options: Manual check options, ignored for timed passes.

        Returns:
            Programs with an update that has not been applied yet, sorted by name.

        Raises:
            ProviderError: If looking up a version failed.
            StoreError: If persisting the results failed.
        """
        options = options or CheckOptions()
        programs = sorted(self.store.get_all_programs(), key=lambda p: p.name)
        logger.info(f"Checking {len(programs)} programs for updates ({check_type.value})")

        updates = []
        for program in programs:
            logger.debug(f"Checking {program.name} ({program.provider.describe()})")
            latest = program.provider.check_for_latest_version(self.access_token)
            updated = self._apply_check_result(program, latest, check_type, options, utc_now())
            if updated is not None:
                updates.append(updated)

        self.store.insert_update_check_history(
            UpdateCheckHistoryEntry.from_programs(check_type, updates)
        )
        logger.info(f"Found {len(updates)} updates")
        return updates

    def _apply_check_result(
        self,
        program: Program,
        latest: str,
        check_type: UpdateCheckType,
        options: CheckOptions,
        now: datetime,
    ) -> Optional[Program]:
        """
        Persist the outcome of a single version lookup.

        All version and notification flag writes of a pass happen here.

        Returns:
            The program with its updated fields, or None if it is up to date.
        """
        manual = check_type is UpdateCheckType.MANUAL
        suppress_notification = manual and not options.allow_notification
        set_current_version = manual and options.set_current_version

        if latest == program.latest_version and latest == program.current_version:
            return None

        if latest != program.latest_version:
            logger.info(f"New version for {program.name}: {program.latest_version} -> {latest}")
            # A new version opens a new notification window unless suppressed
            self.store.record_new_version(
                program.name,
                latest,
                now,
                set_current=set_current_version,
                notification_sent=suppress_notification,
            )
            program = program.copy(
                latest_version=latest,
                latest_version_last_updated=now,
                notification_sent=suppress_notification,
                notification_sent_on=None,
            )
            if set_current_version:
                program = program.copy(current_version=latest, current_version_last_updated=now)
            return program

        logger.debug(
            f"Update for {program.name} already recorded: "
            f"{program.current_version} -> {program.latest_version}"
        )
        if suppress_notification:
            self.store.set_notification_sent(program.name, True)
            program = program.copy(notification_sent=True)

        return program

    def apply_update(self, name: str) -> Optional[UpdateHistoryEntry]:
        """
        Adopt the latest version of a program as its current version.

        Returns:
            The recorded history entry, or None if the program was already
            up to date.

        Raises:
            StoreError: If the program does not exist.
        """
        program = self.store.get_program(name)
        if program is None:
            raise StoreError(f"Program {name} does not exist")
        if not program.has_update:
            logger.info(f"{name} is already at the latest version {program.current_version}")
            return None

        now = utc_now()
        self.store.update_current_version(name, program.latest_version, now)
        entry = UpdateHistoryEntry(
            date=now,
            name=name,
            old_version=program.current_version,
            updated_to=program.latest_version,
        )
        self.store.insert_performed_update(entry)
        logger.info(f"Updated {name}: {entry.old_version} -> {entry.updated_to}")
        return entry

    def apply_all_updates(self) -> list[UpdateHistoryEntry]:
        """Adopt the latest version for every program that has one pending."""
        entries = []
        for program in self.store.get_all_programs():
            if program.has_update:
                entry = self.apply_update(program.name)
                if entry is not None:
                    entries.append(entry)
        return entries
