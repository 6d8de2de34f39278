import unittest

import numpy as np

from csicodec.store import RecordStore

FIELDS = {
    "seq": (np.int64, ()),
    "csi": (np.complex128, (4, 2)),
}


class TestRecordStore(unittest.TestCase):
    def _fill(self, store, n):
        for i in range(n):
            idx = store.next_slot()
            store.write(idx, seq=i)
            store.slot("csi", idx)[:] = i + 1j
            store.commit()

    def test_tail_never_exposed(self):
        store = RecordStore(FIELDS, capacity=10)
        self._fill(store, 3)
        self.assertEqual(len(store), 3)
        self.assertEqual(store.seq.shape, (3,))
        self.assertEqual(store.csi.shape, (3, 4, 2))

    def test_grows_past_estimate(self):
        store = RecordStore(FIELDS, capacity=2)
        self._fill(store, 9)
        store.finalize()
        np.testing.assert_array_equal(store.seq, np.arange(9))
        self.assertTrue(np.all(store.csi[8] == 8 + 1j))

    def test_uncommitted_slot_is_dropped(self):
        store = RecordStore(FIELDS, capacity=4)
        self._fill(store, 2)
        idx = store.next_slot()
        store.write(idx, seq=99)
        store.finalize()
        self.assertEqual(len(store), 2)
        self.assertNotIn(99, store.seq)

    def test_finalized_store_refuses_slots(self):
        store = RecordStore(FIELDS).finalize()
        self.assertEqual(len(store), 0)
        self.assertEqual(store.csi.shape, (0, 4, 2))
        with self.assertRaises(RuntimeError):
            store.next_slot()

    def test_reused_slot_is_cleared(self):
        store = RecordStore.single(FIELDS)
        self._fill(store, 1)
        store.reset()
        idx = store.next_slot()
        store.commit()
        self.assertEqual(idx, 0)
        self.assertTrue(np.all(store.csi == 0))


if __name__ == "__main__":
    unittest.main()
