"""Tests for server.sessions -- session records, phases and the store."""

import threading
import unittest
from concurrent.futures import ThreadPoolExecutor

from server.sessions import Phase, SessionStore


class FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestGenerateId(unittest.TestCase):
    def test_ids_are_unique(self):
        store = SessionStore()
        ids = {store.generate_id() for _ in range(5000)}
        self.assertEqual(len(ids), 5000)

    def test_ids_unique_across_threads(self):
        store = SessionStore()
        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = list(pool.map(lambda _: store.generate_id(), range(4000)))
        self.assertEqual(len(set(ids)), len(ids))

    def test_id_is_compact_alphanumeric(self):
        sid = SessionStore().generate_id()
        self.assertTrue(sid.isalnum())
        self.assertEqual(sid, sid.lower())


class TestGetOrCreate(unittest.TestCase):
    def test_same_id_same_record(self):
        store = SessionStore()
        a = store.get_or_create("abc")
        b = store.get_or_create("abc")
        self.assertIs(a, b)
        self.assertEqual(len(store), 1)

    def test_new_record_is_empty(self):
        snap = SessionStore().get_or_create("abc").snapshot()
        self.assertEqual(snap.id, "abc")
        self.assertEqual(snap.client_host, "")
        self.assertEqual(snap.latency_samples, ())
        self.assertIsNone(snap.download_rate)
        self.assertIsNone(snap.upload_rate)
        self.assertEqual(snap.phase, Phase.PENDING)

    def test_get_does_not_create(self):
        store = SessionStore()
        self.assertIsNone(store.get("missing"))
        self.assertNotIn("missing", store)

    def test_create_registers_generated_id(self):
        store = SessionStore()
        session = store.create()
        self.assertIn(session.id, store)
        self.assertIs(store.get(session.id), session)

    def test_concurrent_get_or_create_yields_one_record(self):
        store = SessionStore()
        barrier = threading.Barrier(8, timeout=5)

        def _grab(_):
            barrier.wait()
            return store.get_or_create("shared")

        with ThreadPoolExecutor(max_workers=8) as pool:
            sessions = list(pool.map(_grab, range(8)))

        self.assertTrue(all(s is sessions[0] for s in sessions))
        self.assertEqual(len(store), 1)


class TestSessionIsolation(unittest.TestCase):
    def test_operations_on_one_session_leave_other_untouched(self):
        store = SessionStore()
        a = store.create()
        b = store.create()
        self.assertNotEqual(a.id, b.id)

        a.record_probe(1.0, baseline=True)
        a.record_probe(1.02)
        a.record_download(1234.0)

        snap_b = b.snapshot()
        self.assertEqual(snap_b.latency_samples, ())
        self.assertIsNone(snap_b.download_rate)
        self.assertEqual(snap_b.phase, Phase.PENDING)

    def test_concurrent_sessions_keep_own_samples(self):
        store = SessionStore()
        sessions = [store.create() for _ in range(16)]

        def _drive(index):
            session = sessions[index]
            session.record_probe(0.0, baseline=True)
            for i in range(1, index + 2):
                session.record_probe(i * 0.001)
            session.record_download(float(index))

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(_drive, range(len(sessions))))

        for index, session in enumerate(sessions):
            snap = session.snapshot()
            self.assertEqual(len(snap.latency_samples), index + 1)
            self.assertEqual(snap.download_rate, float(index))


class TestSessionRecording(unittest.TestCase):
    def setUp(self):
        self.session = SessionStore().get_or_create("s1")

    def test_baseline_probe_records_no_sample(self):
        self.assertIsNone(self.session.record_probe(5.0, baseline=True))
        self.assertEqual(self.session.snapshot().latency_samples, ())

    def test_probe_without_prior_timestamp_records_no_sample(self):
        self.assertIsNone(self.session.record_probe(5.0))
        self.assertEqual(self.session.snapshot().latency_samples, ())

    def test_probe_delta_in_milliseconds(self):
        self.session.record_probe(1.0, baseline=True)
        sample = self.session.record_probe(1.025)
        self.assertAlmostEqual(sample, 25.0)
        self.assertAlmostEqual(self.session.snapshot().latency_samples[0], 25.0)

    def test_sample_never_negative(self):
        self.session.record_probe(2.0, baseline=True)
        self.assertEqual(self.session.record_probe(1.0), 0.0)

    def test_mark_started(self):
        self.session.mark_started("192.0.2.1", 3.0)
        snap = self.session.snapshot()
        self.assertEqual(snap.client_host, "192.0.2.1")
        self.assertEqual(self.session.last_probe_time, 3.0)

    def test_zero_rate_counts_as_measured(self):
        self.session.record_download(0.0)
        snap = self.session.snapshot()
        self.assertTrue(snap.download_done)
        self.assertEqual(snap.download_rate, 0.0)

    def test_last_write_wins(self):
        self.session.record_download(10.0)
        self.session.record_download(20.0)
        self.assertEqual(self.session.snapshot().download_rate, 20.0)

    def test_snapshot_is_a_copy(self):
        self.session.record_probe(0.0, baseline=True)
        self.session.record_probe(0.01)
        snap = self.session.snapshot()
        self.session.record_probe(0.03)
        self.assertEqual(len(snap.latency_samples), 1)
        self.assertEqual(len(self.session.snapshot().latency_samples), 2)


class TestPhases(unittest.TestCase):
    def setUp(self):
        self.session = SessionStore().get_or_create("s1")

    def _phase(self):
        return self.session.snapshot().phase

    def test_forward_progression(self):
        self.assertEqual(self._phase(), Phase.PENDING)
        self.session.record_probe(0.0, baseline=True)
        self.assertEqual(self._phase(), Phase.PROBING)
        self.session.mark_probes_done()
        self.assertEqual(self._phase(), Phase.PROBES_DONE)
        self.session.record_download(100.0)
        self.assertEqual(self._phase(), Phase.DOWNLOAD_DONE)
        self.session.record_upload(50.0)
        self.assertEqual(self._phase(), Phase.COMPLETE)

    def test_upload_before_download(self):
        self.session.record_upload(50.0)
        self.assertEqual(self._phase(), Phase.PENDING)
        self.session.record_download(100.0)
        self.assertEqual(self._phase(), Phase.COMPLETE)

    def test_phase_never_moves_backwards(self):
        self.session.record_download(100.0)
        self.session.record_probe(1.0)
        self.assertEqual(self._phase(), Phase.DOWNLOAD_DONE)


class TestEviction(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock(1000.0)
        self.store = SessionStore(clock=self.clock)

    def test_evicts_idle_sessions_only(self):
        old = self.store.create()
        self.clock.advance(100)
        fresh = self.store.create()

        removed = self.store.evict_idle(50)

        self.assertEqual(removed, 1)
        self.assertNotIn(old.id, self.store)
        self.assertIn(fresh.id, self.store)

    def test_activity_refreshes_session(self):
        session = self.store.create()
        self.clock.advance(40)
        session.record_probe(1.0, baseline=True)
        self.clock.advance(40)
        self.assertEqual(self.store.evict_idle(50), 0)
        self.assertIn(session.id, self.store)

    def test_non_positive_ttl_disables_eviction(self):
        self.store.create()
        self.clock.advance(10_000)
        self.assertEqual(self.store.evict_idle(0), 0)
        self.assertEqual(len(self.store), 1)


if __name__ == "__main__":
    unittest.main()
