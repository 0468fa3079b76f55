"""
Tests for LedgerSession: load policy, optimistic saves, single-writer access.

The store is an in-memory fake; the unconfigured-store cases patch db.get_supabase.

Run with: python run_tests.py
"""

import json
import os
import sys
import threading
import unittest
from unittest import mock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db import LedgerLoadError, LedgerSaveError, SupabaseLedgerStore
from engine import StakingPolicyConfig
from ledger import LedgerImportError, LedgerPhase, LedgerStateError, export_ledger, initial_ledger
from ledger_manager import LedgerSession, LedgerUnavailableError
from supabase_client import SupabaseConfigError


class FakeStore:
    def __init__(self, snapshot=None):
        self.rows = {}
        if snapshot is not None:
            self.rows["u1"] = snapshot
        self.load_error = None
        self.save_error = None
        self.saves = []

    def load(self, user_id):
        if self.load_error:
            raise LedgerLoadError(self.load_error)
        return self.rows.get(user_id)

    def save(self, user_id, snapshot):
        if self.save_error:
            raise LedgerSaveError(self.save_error)
        self.saves.append(snapshot)
        self.rows[user_id] = snapshot


def _session(store):
    return LedgerSession("u1", store, cfg=StakingPolicyConfig())


class TestLoad(unittest.TestCase):

    def test_not_found_seeds_defaults(self):
        s = _session(FakeStore())
        led = s.load()
        self.assertTrue(s.is_new)
        self.assertEqual(led.bankroll, 100.0)
        self.assertEqual(led.history, ())

    def test_existing_row_is_restored(self):
        snap = {"bankroll": 80.0, "sorosActive": False, "sorosCarryAmount": 0.0, "history": []}
        s = _session(FakeStore(snap))
        self.assertEqual(s.load().bankroll, 80.0)
        self.assertFalse(s.is_new)

    def test_load_failure_leaves_session_unusable(self):
        store = FakeStore()
        store.load_error = "network down"
        s = _session(store)

        with self.assertRaises(LedgerLoadError):
            s.load()
        self.assertFalse(s.is_loaded)
        self.assertIn("network down", s.load_error)
        with self.assertRaises(LedgerUnavailableError):
            s.propose(1.24)
        with self.assertRaises(LedgerUnavailableError):
            s.import_snapshot({"bankroll": 1.0, "history": []})
        # never seeded a fresh ledger over the unreadable one
        self.assertEqual(store.saves, [])

        store.load_error = None
        self.assertEqual(s.load().bankroll, 100.0)
        self.assertIsNone(s.load_error)

    def test_malformed_stored_ledger(self):
        s = _session(FakeStore({"bankroll": "lots", "history": []}))
        with self.assertRaises(LedgerLoadError) as ctx:
            s.load()
        self.assertIn("malformed", str(ctx.exception))
        self.assertFalse(s.is_loaded)


class TestTransitions(unittest.TestCase):

    def setUp(self):
        self.store = FakeStore()
        self.session = _session(self.store)
        self.session.load()

    def test_propose_is_not_persisted(self):
        p = self.session.propose(1.24)
        self.assertFalse(p.refused)
        self.assertEqual(self.session.ledger.phase, LedgerPhase.PENDING)
        self.assertEqual(self.store.saves, [])

    def test_refusal_keeps_ledger(self):
        before = self.session.ledger
        p = self.session.propose(1.10)
        self.assertTrue(p.refused)
        self.assertIs(self.session.ledger, before)

    def test_resolve_persists(self):
        self.session.propose(1.24)
        r = self.session.resolve(True)
        self.assertTrue(r.save.saved)
        self.assertAlmostEqual(r.ledger.bankroll, 101.2)
        self.assertEqual(len(self.store.saves), 1)
        self.assertEqual(self.store.saves[0], export_ledger(self.session.ledger))

    def test_save_failure_keeps_in_memory_state(self):
        self.store.save_error = "timeout"
        self.session.propose(1.24)
        r = self.session.resolve(False)

        self.assertFalse(r.save.saved)
        self.assertIn("timeout", r.save.error)
        self.assertEqual(self.session.last_save_error, r.save.error)
        self.assertAlmostEqual(self.session.ledger.bankroll, 95.0)
        self.assertEqual(len(self.session.ledger.history), 1)

        self.store.save_error = None
        out = self.session.retry_save()
        self.assertTrue(out.saved)
        self.assertIsNone(self.session.last_save_error)
        self.assertAlmostEqual(self.store.rows["u1"]["bankroll"], 95.0)

    def test_cancel(self):
        self.session.propose(1.24)
        led = self.session.cancel()
        self.assertEqual(led.phase, LedgerPhase.IDLE)
        self.assertEqual(self.store.saves, [])

    def test_reset_requires_confirm(self):
        with self.assertRaises(LedgerStateError):
            self.session.reset()
        self.assertTrue(self.session.reset(confirm=True).saved)

    def test_set_bankroll_persists(self):
        out = self.session.set_bankroll(300)
        self.assertTrue(out.saved)
        self.assertEqual(self.store.rows["u1"]["bankroll"], 300.0)

    def test_failed_import_changes_nothing(self):
        before = self.session.ledger
        with self.assertRaises(LedgerImportError):
            self.session.import_snapshot('{"bankroll": -1, "history": []}')
        self.assertIs(self.session.ledger, before)
        self.assertEqual(self.store.saves, [])

    def test_import_replaces_and_drops_pending(self):
        self.session.propose(1.24)
        out = self.session.import_snapshot({"bankroll": 42.0, "history": []})
        self.assertTrue(out.saved)
        self.assertEqual(self.session.ledger.bankroll, 42.0)
        self.assertEqual(self.session.ledger.phase, LedgerPhase.IDLE)

    def test_export_json(self):
        data = json.loads(self.session.export_json())
        self.assertEqual(data, export_ledger(initial_ledger()))


class NewUserSupabaseStore(SupabaseLedgerStore):
    """Real save path; load answers 'no row yet' so the session gets going."""

    def load(self, user_id):
        return None


@mock.patch("db.get_supabase", side_effect=SupabaseConfigError("Ledger store is not configured"))
class TestUnconfiguredStore(unittest.TestCase):

    def test_resolve_reports_save_failure_and_keeps_bet(self, _):
        s = LedgerSession("u1", NewUserSupabaseStore(), cfg=StakingPolicyConfig())
        s.load()
        s.propose(1.25)

        r = s.resolve(True)

        self.assertIs(r.save.saved, False)
        self.assertIn("not configured", r.save.error)
        self.assertEqual(s.last_save_error, r.save.error)
        self.assertEqual(len(s.ledger.history), 1)
        self.assertEqual(s.ledger.phase, LedgerPhase.IDLE)

    def test_load_is_a_retryable_load_error(self, _):
        s = LedgerSession("u1", SupabaseLedgerStore(), cfg=StakingPolicyConfig())
        with self.assertRaises(LedgerLoadError):
            s.load()
        self.assertFalse(s.is_loaded)
        self.assertIn("not configured", s.load_error)

    def test_import_before_load_is_unavailable(self, _):
        s = LedgerSession("u1", SupabaseLedgerStore(), cfg=StakingPolicyConfig())
        with self.assertRaises(LedgerUnavailableError):
            s.import_snapshot({"bankroll": 1.0, "history": []})


class TestSingleWriter(unittest.TestCase):

    def test_concurrent_proposals_admit_one_pending(self):
        s = _session(FakeStore())
        s.load()
        results = []
        errors = []

        def worker():
            try:
                results.append(s.propose(1.24))
            except LedgerStateError as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), 7)
        self.assertEqual(s.ledger.phase, LedgerPhase.PENDING)


if __name__ == "__main__":
    unittest.main()
