"""
Simple Update Checker - Program Store
SQLite persistence for tracked programs, their provider settings and the
update check / update history tables.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from core.errors import ConsistencyError, ProviderError, StoreError
from core.models import (
    NotificationInfo,
    Program,
    UpdateCheckHistoryEntry,
    UpdateCheckType,
    UpdateHistoryEntry,
)
from providers import provider_from_row, registered_providers

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 100

# Applied in order, the schema version is kept in PRAGMA user_version
MIGRATIONS = [
    """
    CREATE TABLE programs (
        name VARCHAR(256) NOT NULL PRIMARY KEY,
        current_version VARCHAR(256) NOT NULL,
        current_version_last_updated DATETIME NOT NULL,
        latest_version VARCHAR(256) NOT NULL,
        latest_version_last_updated DATETIME NOT NULL,
        provider VARCHAR(256) NOT NULL,
        notification_sent BOOLEAN NOT NULL DEFAULT 1,
        notification_sent_on DATETIME
    );
    """,
    """
    CREATE TABLE update_check_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        date DATETIME NOT NULL,
        type VARCHAR(32) NOT NULL,
        updates_available INTEGER NOT NULL,
        programs TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE update_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        date DATETIME NOT NULL,
        name VARCHAR(256) NOT NULL,
        old_version VARCHAR(256) NOT NULL,
        updated_to VARCHAR(256) NOT NULL
    );
    """,
]

PROGRAM_COLUMNS = (
    "name, current_version, current_version_last_updated, latest_version, "
    "latest_version_last_updated, provider, notification_sent, notification_sent_on"
)


def _to_db(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(sep=" ") if value is not None else None


def _from_db(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value is not None else None


def _limit(max_entries: Optional[int]) -> int:
    # SQLite treats a negative LIMIT as no limit
    return -1 if max_entries is None else max_entries


class ProgramStore:
    """
    Access layer for the programs database.

    A single connection is shared by every caller. Each mutating operation
    runs in its own transaction and all access is serialized by a lock, so
    the store can be handed to the scheduler thread as well.
    """

    def __init__(self, connection: sqlite3.Connection, path: str = ":memory:"):
        self.path = path
        self._conn = connection
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()

    @classmethod
    def connect(cls, path: str) -> "ProgramStore":
        """
        Open (creating if missing) the database at ``path`` and apply migrations.

        Raises:
            StoreError: If the database cannot be opened or migrated.
        """
        if path != ":memory:":
            Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        try:
            connection = sqlite3.connect(
                str(Path(path).expanduser()) if path != ":memory:" else path,
                check_same_thread=False,
            )
            connection.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            raise StoreError(f"Unable to open database {path}: {e}") from e

        store = cls(connection, path)
        store.migrate()
        return store

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "ProgramStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.Error as e:
                raise StoreError(f"Database error: {e}") from e

    def _fetch(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"Database error: {e}") from e

    # ------------------------------------------------------------------ schema

    def schema_version(self) -> int:
        return self._fetch("PRAGMA user_version")[0][0]

    def migrate(self) -> None:
        """Apply pending migrations and create provider extension tables."""
        version = self.schema_version()
        for index, script in enumerate(MIGRATIONS[version:], start=version + 1):
            logger.debug(f"Applying migration {index}")
            with self._transaction() as conn:
                conn.execute(script)
                conn.execute(f"PRAGMA user_version = {index}")
        self.ensure_provider_tables()

    def ensure_provider_tables(self) -> None:
        """Create the extension table of every registered provider kind."""
        for provider_cls in registered_providers():
            columns = ", ".join(f"{column} VARCHAR(256) NOT NULL" for column in provider_cls.columns)
            with self._transaction() as conn:
                conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {provider_cls.table} ("
                    f"name VARCHAR(256) NOT NULL PRIMARY KEY REFERENCES programs(name), "
                    f"{columns})"
                )

    # ---------------------------------------------------------------- programs

    def insert_program(self, program: Program) -> None:
        """
        Add a program and its provider settings.

        Raises:
            StoreError: If a program with the same name already exists.
        """
        provider = program.provider
        row = provider.to_row()
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        try:
            with self._transaction() as conn:
                conn.execute(
                    f"INSERT INTO programs ({PROGRAM_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        program.name,
                        program.current_version,
                        _to_db(program.current_version_last_updated),
                        program.latest_version,
                        _to_db(program.latest_version_last_updated),
                        provider.identifier,
                        program.notification_sent,
                        _to_db(program.notification_sent_on),
                    ),
                )
                conn.execute(
                    f"INSERT INTO {provider.table} (name, {columns}) VALUES (?, {placeholders})",
                    (program.name, *row.values()),
                )
        except StoreError as e:
            if isinstance(e.__cause__, sqlite3.IntegrityError):
                raise StoreError(f"Program {program.name} already exists") from e.__cause__
            raise

    def remove_program(self, name: str) -> bool:
        """
        Remove a program and its provider settings.

        Returns:
            False if no program with that name existed.
        """
        rows = self._fetch("SELECT provider FROM programs WHERE name = ?", (name,))
        if not rows:
            return False
        provider_cls = self._provider_class(name, rows[0]["provider"])
        with self._transaction() as conn:
            conn.execute(f"DELETE FROM {provider_cls.table} WHERE name = ?", (name,))
            conn.execute("DELETE FROM programs WHERE name = ?", (name,))
        return True

    def get_program(self, name: str) -> Optional[Program]:
        """Retrieve a program by name, None if it is not tracked."""
        rows = self._fetch(f"SELECT {PROGRAM_COLUMNS} FROM programs WHERE name = ?", (name,))
        if not rows:
            return None
        return self._program_from_row(rows[0])

    def get_all_programs(self) -> list[Program]:
        """All tracked programs, sorted by name."""
        rows = self._fetch(f"SELECT {PROGRAM_COLUMNS} FROM programs ORDER BY name")
        return [self._program_from_row(row) for row in rows]

    def _provider_class(self, name: str, identifier: str) -> type:
        for provider_cls in registered_providers():
            if provider_cls.identifier == identifier:
                return provider_cls
        raise ConsistencyError(f"Unknown provider type '{identifier}' for program {name}")

    def _program_from_row(self, row: sqlite3.Row) -> Program:
        name = row["name"]
        provider_cls = self._provider_class(name, row["provider"])
        columns = ", ".join(provider_cls.columns)
        extension = self._fetch(
            f"SELECT {columns} FROM {provider_cls.table} WHERE name = ?", (name,)
        )
        if not extension:
            raise ConsistencyError(
                f"{provider_cls.identifier} entry missing for program: {name}"
            )
        try:
            provider = provider_from_row(row["provider"], dict(extension[0]))
        except (ProviderError, ValueError, KeyError) as e:
            raise ConsistencyError(f"Invalid provider settings for program {name}: {e}") from e

        return Program(
            name=name,
            current_version=row["current_version"],
            current_version_last_updated=_from_db(row["current_version_last_updated"]),
            latest_version=row["latest_version"],
            latest_version_last_updated=_from_db(row["latest_version_last_updated"]),
            provider=provider,
            notification_sent=bool(row["notification_sent"]),
            notification_sent_on=_from_db(row["notification_sent_on"]),
        )

    def _update_program(self, name: str, assignments: str, params: tuple) -> None:
        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE programs SET {assignments} WHERE name = ?", (*params, name)
            )
        if cursor.rowcount == 0:
            raise ConsistencyError(f"Unable to find program {name} in database")

    def update_latest_version(self, name: str, version: str, timestamp: datetime) -> None:
        self._update_program(
            name,
            "latest_version = ?, latest_version_last_updated = ?",
            (version, _to_db(timestamp)),
        )

    def update_current_version(self, name: str, version: str, timestamp: datetime) -> None:
        self._update_program(
            name,
            "current_version = ?, current_version_last_updated = ?",
            (version, _to_db(timestamp)),
        )

    def record_new_version(
        self,
        name: str,
        version: str,
        timestamp: datetime,
        set_current: bool = False,
        notification_sent: bool = False,
    ) -> None:
        """
        Store a newly observed latest version in a single write.

        The notification window is reset with it: ``notification_sent`` is
        stored as given and ``notification_sent_on`` is cleared. With
        ``set_current`` the version also becomes the current version.
        """
        assignments = (
            "latest_version = ?, latest_version_last_updated = ?, "
            "notification_sent = ?, notification_sent_on = NULL"
        )
        params = (version, _to_db(timestamp), notification_sent)
        if set_current:
            assignments += ", current_version = ?, current_version_last_updated = ?"
            params += (version, _to_db(timestamp))
        self._update_program(name, assignments, params)

    # ------------------------------------------------------------ notification

    def set_notification_sent(self, name: str, sent: bool) -> None:
        self._update_program(name, "notification_sent = ?", (sent,))

    def set_notification_sent_on(self, name: str, sent_on: Optional[datetime]) -> None:
        self._update_program(name, "notification_sent_on = ?", (_to_db(sent_on),))

    def get_notification_info(self, name: str) -> Optional[NotificationInfo]:
        rows = self._fetch(
            "SELECT notification_sent, notification_sent_on FROM programs WHERE name = ?",
            (name,),
        )
        if not rows:
            return None
        return NotificationInfo(
            sent=bool(rows[0]["notification_sent"]),
            sent_on=_from_db(rows[0]["notification_sent_on"]),
        )

    def mark_notifications_sent(self, names: list[str], sent_on: datetime) -> None:
        """
        Flag all ``names`` as notified at ``sent_on`` in one transaction.

        Raises:
            ConsistencyError: If any program is missing. Nothing is changed then.
        """
        with self._transaction() as conn:
            for name in names:
                cursor = conn.execute(
                    "UPDATE programs SET notification_sent = 1, notification_sent_on = ? "
                    "WHERE name = ?",
                    (_to_db(sent_on), name),
                )
                if cursor.rowcount == 0:
                    raise ConsistencyError(f"Unable to find program {name} in database")

    # ----------------------------------------------------------------- history

    def insert_update_check_history(self, entry: UpdateCheckHistoryEntry) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO update_check_history (date, type, updates_available, programs) "
                "VALUES (?, ?, ?, ?)",
                (_to_db(entry.date), entry.type.value, entry.updates_available, entry.programs),
            )

    def get_latest_update_check(self) -> Optional[UpdateCheckHistoryEntry]:
        checks = self.get_all_update_checks(max_entries=1)
        return checks[0] if checks else None

    def get_all_update_checks(
        self, max_entries: Optional[int] = DEFAULT_MAX_ENTRIES
    ) -> list[UpdateCheckHistoryEntry]:
        """Update check history, newest first, all entries if max_entries is None."""
        rows = self._fetch(
            "SELECT date, type, updates_available, programs FROM update_check_history "
            "ORDER BY date DESC, id DESC LIMIT ?",
            (_limit(max_entries),),
        )
        return [
            UpdateCheckHistoryEntry(
                date=_from_db(row["date"]),
                type=UpdateCheckType.from_identifier(row["type"]),
                updates_available=row["updates_available"],
                programs=row["programs"],
            )
            for row in rows
        ]

    def insert_performed_update(self, entry: UpdateHistoryEntry) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO update_history (date, name, old_version, updated_to) "
                "VALUES (?, ?, ?, ?)",
                (_to_db(entry.date), entry.name, entry.old_version, entry.updated_to),
            )

    def get_all_updates(
        self, max_entries: Optional[int] = DEFAULT_MAX_ENTRIES
    ) -> list[UpdateHistoryEntry]:
        """Performed updates, newest first, all entries if max_entries is None."""
        rows = self._fetch(
            "SELECT date, name, old_version, updated_to FROM update_history "
            "ORDER BY date DESC, id DESC LIMIT ?",
            (_limit(max_entries),),
        )
        return [
            UpdateHistoryEntry(
                date=_from_db(row["date"]),
                name=row["name"],
                old_version=row["old_version"],
                updated_to=row["updated_to"],
            )
            for row in rows
        ]
