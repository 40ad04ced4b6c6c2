import threading
import time
import unittest

from fakes import InMemoryRepository

from locker_admin import config
from locker_admin.errors import PermissionDeniedError
from locker_admin.services import grid_service
from locker_admin.services.live_store import LiveStore


class LiveStoreTestCase(unittest.TestCase):
    def setUp(self):
        self.repo = InMemoryRepository()
        self.views = []
        self.errors = []

    def store(self, compute=grid_service.compute_grid_view, collections=(config.LOCKERS, config.ASSIGNMENTS)):
        return LiveStore(self.repo, collections, compute, self.views.append,
                         lambda name, error: self.errors.append((name, error)))

    def test_view_waits_for_every_collection(self):
        store = self.store()
        store.start()
        # Both collections delivered their initial (empty) snapshot
        self.assertTrue(store.ready)
        self.assertEqual(len(self.views), 1)
        self.assertEqual(self.views[0]['counts']['total'], 0)

    def test_changes_recompute_from_full_snapshots(self):
        store = self.store().start()
        grid_service.initialize_grid(self.repo, 'admin1')
        self.assertEqual(self.views[-1]['counts']['total'], 16)

        self.repo.set(config.ASSIGNMENTS, 'a1', {'lockerId': 'locker_1003', 'studentId': 'r1'})
        by_id = {l['id']: l for l in self.views[-1]['lockers']}
        self.assertEqual(by_id['locker_1003']['assignmentId'], 'a1')

        # An assignment delete arriving before the locker update still yields a consistent view
        self.repo.delete(config.ASSIGNMENTS, 'a1')
        by_id = {l['id']: l for l in self.views[-1]['lockers']}
        self.assertIsNone(by_id['locker_1003']['assignmentId'])
        store.stop()

    def test_stop_unsubscribes_everything(self):
        store = self.store().start()
        store.stop()
        self.assertEqual(self.repo.listeners[config.LOCKERS], [])
        self.assertEqual(self.repo.listeners[config.ASSIGNMENTS], [])

        seen = len(self.views)
        grid_service.initialize_grid(self.repo, 'admin1')
        self.assertEqual(len(self.views), seen)

    def test_late_snapshot_after_stop_is_ignored(self):
        store = self.store()
        store.start()
        store.stop()
        store._on_snapshot(config.LOCKERS, [{'id': 'locker_1001', 'number': '1001', 'row': 1}])
        self.assertEqual(len(self.views), 1)

    def test_failed_subscription_closes_open_ones(self):
        self.repo.fail_on('subscribe', config.ASSIGNMENTS, PermissionDeniedError('Access denied'))
        store = self.store()
        with self.assertRaises(PermissionDeniedError):
            store.start()
        self.assertEqual(self.repo.listeners[config.LOCKERS], [])
        self.assertEqual(self.views, [])

    def test_compute_failure_is_reported(self):
        def broken(slots):
            raise KeyError('number')

        self.store(compute=broken).start()
        self.assertEqual(self.views, [])
        self.assertEqual(len(self.errors), 1)
        self.assertEqual(self.errors[0][0], config.ASSIGNMENTS)

    def test_slow_recompute_of_older_snapshot_is_dropped(self):
        slow_started = threading.Event()

        def count_lockers(slots):
            docs = slots[config.LOCKERS]
            if len(docs) == 1:
                slow_started.set()
                time.sleep(0.3)
            return len(docs)

        store = self.store(compute=count_lockers, collections=(config.LOCKERS,))
        older = threading.Thread(
            target=store._on_snapshot,
            args=(config.LOCKERS, [{'id': 'locker_1001'}]),
        )
        older.start()
        self.assertTrue(slow_started.wait(2))
        store._on_snapshot(config.LOCKERS, [{'id': 'locker_1001'}, {'id': 'locker_1002'}])
        older.join(2)

        self.assertEqual(self.views, [2])
        self.assertEqual(self.views[-1], 2)


if __name__ == '__main__':
    unittest.main()
