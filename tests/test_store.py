"""
Tests for core.store - the SQLite program store.
"""

import sys
from pathlib import Path

# Add src and tests to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

import tempfile
import unittest
from datetime import datetime

from fakes import FakeProvider, make_program
from core.errors import ConsistencyError, StoreError
from core.models import (
    UpdateCheckHistoryEntry,
    UpdateCheckType,
    UpdateHistoryEntry,
    NotificationInfo,
)
from core.store import MIGRATIONS, ProgramStore
from providers import GithubProvider


class StoreTestCase(unittest.TestCase):

    def setUp(self):
        self.store = ProgramStore.connect(":memory:")

    def tearDown(self):
        self.store.close()


class TestPrograms(StoreTestCase):
    """Tests for program rows and provider extension rows."""

    def test_insert_and_get(self):
        program = make_program("alpha")
        self.store.insert_program(program)
        self.assertEqual(self.store.get_program("alpha"), program)

    def test_get_missing(self):
        self.assertIsNone(self.store.get_program("missing"))

    def test_github_provider_roundtrip(self):
        program = make_program("checker", provider=GithubProvider("LMH01/simple_update_checker"))
        self.store.insert_program(program)
        loaded = self.store.get_program("checker")
        self.assertEqual(loaded.provider, GithubProvider("LMH01/simple_update_checker"))

    def test_insert_duplicate(self):
        self.store.insert_program(make_program("alpha"))
        with self.assertRaises(StoreError) as ctx:
            self.store.insert_program(make_program("alpha", "2.0.0"))
        self.assertIn("already exists", str(ctx.exception))
        self.assertEqual(self.store.get_program("alpha").latest_version, "1.0.0")

    def test_get_all_sorted_by_name(self):
        for name in ("zeta", "alpha", "mid"):
            self.store.insert_program(make_program(name))
        names = [p.name for p in self.store.get_all_programs()]
        self.assertEqual(names, ["alpha", "mid", "zeta"])

    def test_remove(self):
        self.store.insert_program(make_program("alpha"))
        self.assertTrue(self.store.remove_program("alpha"))
        self.assertIsNone(self.store.get_program("alpha"))
        rows = self.store._fetch("SELECT * FROM fake_programs")
        self.assertEqual(rows, [])

    def test_remove_missing(self):
        self.assertFalse(self.store.remove_program("missing"))

    def test_missing_extension_row(self):
        self.store.insert_program(make_program("alpha"))
        with self.store._transaction() as conn:
            conn.execute("DELETE FROM fake_programs WHERE name = 'alpha'")
        with self.assertRaises(ConsistencyError):
            self.store.get_program("alpha")


class TestVersionsAndNotifications(StoreTestCase):
    """Tests for row level updates."""

    def setUp(self):
        super().setUp()
        self.store.insert_program(make_program("alpha"))

    def test_update_latest_version(self):
        stamp = datetime(2025, 4, 1, 12, 0, 0)
        self.store.update_latest_version("alpha", "1.1.0", stamp)
        program = self.store.get_program("alpha")
        self.assertEqual(program.latest_version, "1.1.0")
        self.assertEqual(program.latest_version_last_updated, stamp)
        self.assertEqual(program.current_version, "1.0.0")

    def test_update_current_version(self):
        stamp = datetime(2025, 4, 1, 12, 0, 0)
        self.store.update_current_version("alpha", "1.1.0", stamp)
        program = self.store.get_program("alpha")
        self.assertEqual(program.current_version, "1.1.0")
        self.assertEqual(program.current_version_last_updated, stamp)
        self.assertEqual(program.latest_version, "1.0.0")

    def test_update_missing_program(self):
        with self.assertRaises(ConsistencyError):
            self.store.update_latest_version("missing", "1.0.0", datetime.now())

    def test_notification_info(self):
        self.assertEqual(self.store.get_notification_info("alpha"), NotificationInfo(True, None))
        stamp = datetime(2025, 4, 2, 8, 30, 0)
        self.store.set_notification_sent("alpha", False)
        self.assertEqual(self.store.get_notification_info("alpha"), NotificationInfo(False, None))
        self.store.set_notification_sent("alpha", True)
        self.store.set_notification_sent_on("alpha", stamp)
        self.assertEqual(self.store.get_notification_info("alpha"), NotificationInfo(True, stamp))
        self.store.set_notification_sent_on("alpha", None)
        self.assertIsNone(self.store.get_notification_info("alpha").sent_on)

    def test_notification_info_missing(self):
        self.assertIsNone(self.store.get_notification_info("missing"))

    def test_record_new_version(self):
        stamp = datetime(2025, 4, 3, 7, 15, 0)
        self.store.set_notification_sent_on("alpha", datetime(2025, 4, 1, 9, 0, 0))

        self.store.record_new_version("alpha", "1.2.0", stamp)

        program = self.store.get_program("alpha")
        self.assertEqual(program.latest_version, "1.2.0")
        self.assertEqual(program.latest_version_last_updated, stamp)
        self.assertEqual(program.current_version, "1.0.0")
        self.assertEqual(self.store.get_notification_info("alpha"), NotificationInfo(False, None))

    def test_record_new_version_set_current_suppressed(self):
        stamp = datetime(2025, 4, 3, 7, 15, 0)
        self.store.record_new_version(
            "alpha", "1.2.0", stamp, set_current=True, notification_sent=True,
        )
        program = self.store.get_program("alpha")
        self.assertEqual(program.current_version, "1.2.0")
        self.assertEqual(program.current_version_last_updated, stamp)
        self.assertEqual(self.store.get_notification_info("alpha"), NotificationInfo(True, None))

    def test_mark_notifications_sent(self):
        self.store.insert_program(make_program("beta", notification_sent=False))
        self.store.set_notification_sent("alpha", False)
        stamp = datetime(2025, 4, 3, 7, 15, 0)

        self.store.mark_notifications_sent(["alpha", "beta"], stamp)

        for name in ("alpha", "beta"):
            self.assertEqual(self.store.get_notification_info(name), NotificationInfo(True, stamp))

    def test_mark_notifications_sent_missing_rolls_back(self):
        self.store.set_notification_sent("alpha", False)
        with self.assertRaises(ConsistencyError):
            self.store.mark_notifications_sent(["alpha", "missing"], datetime(2025, 4, 3))
        self.assertEqual(self.store.get_notification_info("alpha"), NotificationInfo(False, None))


class TestHistory(StoreTestCase):
    """Tests for the append-only history tables."""

    def test_update_check_history_newest_first(self):
        first = UpdateCheckHistoryEntry(datetime(2025, 3, 1, 10, 0), UpdateCheckType.TIMED, 0, "")
        second = UpdateCheckHistoryEntry(
            datetime(2025, 3, 2, 10, 0), UpdateCheckType.MANUAL, 2, "alpha, beta"
        )
        self.store.insert_update_check_history(first)
        self.store.insert_update_check_history(second)
        self.assertEqual(self.store.get_all_update_checks(), [second, first])
        self.assertEqual(self.store.get_latest_update_check(), second)
        self.assertEqual(self.store.get_all_update_checks(max_entries=1), [second])

    def test_latest_update_check_empty(self):
        self.assertIsNone(self.store.get_latest_update_check())

    def test_update_history(self):
        entry = UpdateHistoryEntry(datetime(2025, 3, 12, 13, 45), "alpha_tui", "1.0.0", "1.1.0")
        later = UpdateHistoryEntry(datetime(2025, 3, 13, 9, 0), "alpha_tui", "1.1.0", "1.2.0")
        self.store.insert_performed_update(entry)
        self.store.insert_performed_update(later)
        self.assertEqual(self.store.get_all_updates(), [later, entry])
        self.assertEqual(self.store.get_all_updates(max_entries=1), [later])

    def test_same_timestamp_entries_are_kept(self):
        stamp = datetime(2025, 3, 12, 13, 45)
        self.store.insert_performed_update(UpdateHistoryEntry(stamp, "a", "1", "2"))
        self.store.insert_performed_update(UpdateHistoryEntry(stamp, "b", "1", "2"))
        self.assertEqual(len(self.store.get_all_updates()), 2)

    def test_unlimited_history(self):
        for day in range(1, 4):
            self.store.insert_update_check_history(
                UpdateCheckHistoryEntry(datetime(2025, 3, day), UpdateCheckType.TIMED, 0, "")
            )
            self.store.insert_performed_update(
                UpdateHistoryEntry(datetime(2025, 3, day), "alpha", "1", "2")
            )
        self.assertEqual(len(self.store.get_all_update_checks(max_entries=None)), 3)
        self.assertEqual(len(self.store.get_all_updates(max_entries=None)), 3)
        self.assertEqual(len(self.store.get_all_updates(max_entries=2)), 2)


class TestConnect(unittest.TestCase):
    """Tests for opening and migrating database files."""

    def test_schema_version(self):
        with ProgramStore.connect(":memory:") as store:
            self.assertEqual(store.schema_version(), len(MIGRATIONS))

    def test_persists_across_connections(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = str(Path(tmp) / "data" / "programs.db")
            with ProgramStore.connect(path) as store:
                store.insert_program(make_program("alpha"))
            with ProgramStore.connect(path) as store:
                self.assertEqual(store.schema_version(), len(MIGRATIONS))
                self.assertEqual(store.get_program("alpha").name, "alpha")

    def test_provider_tables_created(self):
        with ProgramStore.connect(":memory:") as store:
            tables = {
                row["name"]
                for row in store._fetch("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
        self.assertIn(FakeProvider.table, tables)
        self.assertIn(GithubProvider.table, tables)


if __name__ == "__main__":
    unittest.main()
