import os
import shutil
import struct
import tempfile
import unittest

import numpy as np

from csicodec import ConfigurationError, Intel, MalformedFrameError, ShortBufferError
from csicodec.intel import bfee_size
from frame_builders import intel_bfee, intel_mac, intel_tlv, random_int8_csi


class IntelTestCase(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def write(self, data, name="log.dat"):
        path = os.path.join(self.tmpdir, name)
        with open(path, "wb") as f:
            f.write(data)
        return path


class TestIntelBatch(IntelTestCase):
    def test_bfee_size(self):
        for nrx in (1, 2, 3):
            for ntx in (1, 2, 3):
                self.assertEqual(bfee_size(nrx, ntx), 60 * nrx * ntx + 12)

    def test_fields_round_trip(self):
        samples = random_int8_csi((30, 3, 2), seed=1)
        body = intel_bfee(
            samples, 3, 2, timestamp_low=0xDEADBEEF, bfee_count=513,
            rssi=(41, 37, 29), noise=-91, agc=35, rate=0x4907,
        )
        reader = Intel(self.write(intel_tlv(0xBB, body)), nrxnum=3, ntxnum=2,
                       if_report=False)
        self.assertEqual(reader.read(), 1)

        self.assertEqual(reader.timestamp_low[0], 0xDEADBEEF)
        self.assertEqual(reader.bfee_count[0], 513)
        self.assertEqual((reader.Nrx[0], reader.Ntx[0]), (3, 2))
        self.assertEqual(
            (reader.rssi_a[0], reader.rssi_b[0], reader.rssi_c[0]), (41, 37, 29)
        )
        self.assertEqual(reader.noise[0], -91)
        self.assertEqual(reader.agc[0], 35)
        self.assertEqual(reader.rate[0], 0x4907)
        # default antenna_sel 0b100100 -> perm [0, 1, 2]
        np.testing.assert_array_equal(reader.perm[0], [0, 1, 2])
        np.testing.assert_array_equal(reader.csi[0], samples)

    def test_permutation_remaps_receive_chains(self):
        samples = random_int8_csi((30, 3, 1), seed=2)
        sel = 2 | (0 << 2) | (1 << 4)
        body = intel_bfee(samples, 3, 1, antenna_sel=sel)
        reader = Intel(self.write(intel_tlv(0xBB, body)), ntxnum=1, if_report=False)
        reader.read()
        np.testing.assert_array_equal(reader.perm[0], [2, 0, 1])
        np.testing.assert_array_equal(reader.csi[0, :, 2], samples[:, 0])
        np.testing.assert_array_equal(reader.csi[0, :, 0], samples[:, 1])
        np.testing.assert_array_equal(reader.csi[0, :, 1], samples[:, 2])

    def test_invalid_permutation_falls_back_to_identity(self):
        samples = random_int8_csi((30, 2, 1), seed=3)
        # perm [1, 1, 0] is not a permutation of 0..1
        body = intel_bfee(samples, 2, 1, antenna_sel=0b000101)
        reader = Intel(self.write(intel_tlv(0xBB, body)), ntxnum=1, if_report=False)
        with self.assertLogs(reader.logger, level="WARNING"):
            reader.read()
        np.testing.assert_array_equal(reader.csi[0, :, :2], samples)

    def test_fewer_chains_than_configured_are_zero_padded(self):
        samples = random_int8_csi((30, 1, 1), seed=4)
        body = intel_bfee(samples, 1, 1, antenna_sel=0)
        reader = Intel(self.write(intel_tlv(0xBB, body)), if_report=False)
        reader.read()
        self.assertEqual(reader.csi.shape, (1, 30, 3, 2))
        np.testing.assert_array_equal(reader.csi[0, :, 0, 0], samples[:, 0, 0])
        self.assertFalse(reader.csi[0, :, 1:, :].any())
        self.assertFalse(reader.csi[0, :, :, 1].any())

    def test_mac_record_and_unknown_codes(self):
        samples = random_int8_csi((30, 2, 2))
        data = (
            intel_tlv(0xC1, intel_mac(seq=1234, frag=3, payload=b"abcdef"))
            + intel_tlv(0x42, b"\x00" * 11)
            + intel_tlv(0xBB, intel_bfee(samples, 2, 2, antenna_sel=0b0100))
        )
        reader = Intel(self.write(data), pl_len=4, if_report=False)
        reader.read()
        self.assertEqual(len(reader.csi), 1)
        self.assertEqual(len(reader.fc), 1)
        self.assertEqual(reader.fc[0], 0x0208)
        self.assertEqual(reader.dur[0], 44)
        self.assertEqual(reader.seq[0], 1234)
        self.assertEqual(reader.frag[0], 3)
        self.assertEqual(list(reader.addr_src[0]), [0x00, 0x16, 0xEA, 0x12, 0x34, 0x57])
        self.assertEqual(reader.payload_len[0], 6)
        self.assertEqual(bytes(reader.payload[0]), b"abcd")
        self.assertEqual(reader.report(), {"csi": 1, "mac": 1, "skipped": 1})

    def test_summary_is_logged_when_reporting(self):
        samples = random_int8_csi((30, 1, 1))
        path = self.write(intel_tlv(0xBB, intel_bfee(samples, 1, 1, antenna_sel=0)))
        reader = Intel(path)
        with self.assertLogs(reader.logger, level="INFO") as logs:
            reader.read()
        self.assertIn("skipped: 0", logs.output[-1])

    def test_limit(self):
        samples = random_int8_csi((30, 1, 1))
        record = intel_tlv(0xBB, intel_bfee(samples, 1, 1, antenna_sel=0))
        reader = Intel(self.write(record * 5), if_report=False)
        self.assertEqual(reader.read(limit=2), 2)


class TestIntelErrors(IntelTestCase):
    def test_wrong_bfee_size_keeps_earlier_records(self):
        samples = random_int8_csi((30, 2, 2))
        good = intel_tlv(0xBB, intel_bfee(samples, 2, 2, antenna_sel=0b0100))
        bad = intel_tlv(0xBB, intel_bfee(samples, 2, 2, antenna_sel=0b0100, length=100))
        reader = Intel(self.write(good + good + bad + good), if_report=False)
        with self.assertRaises(MalformedFrameError):
            reader.read()
        self.assertEqual(len(reader.csi), 2)
        np.testing.assert_array_equal(reader.csi[1, :, :2, :2], samples)

    def test_too_many_chains_is_configuration_error(self):
        samples = random_int8_csi((30, 3, 3))
        good = intel_tlv(0xBB, intel_bfee(samples[:, :3, :2], 3, 2))
        data = good + intel_tlv(0xBB, intel_bfee(samples, 3, 3))
        reader = Intel(self.write(data), nrxnum=3, ntxnum=2, if_report=False)
        with self.assertRaises(ConfigurationError):
            reader.read()
        self.assertEqual(len(reader.csi), 1)

    def test_truncated_file_stops_quietly(self):
        samples = random_int8_csi((30, 3, 2))
        record = intel_tlv(0xBB, intel_bfee(samples, 3, 2))
        data = record * 3 + record[: len(record) // 2]
        reader = Intel(self.write(data), if_report=False)
        self.assertEqual(reader.read(), 3)
        self.assertEqual(len(reader.timestamp_low), 3)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            Intel(os.path.join(self.tmpdir, "nope.dat"))


class TestIntelLive(IntelTestCase):
    def test_pmsg_matches_batch(self):
        samples = random_int8_csi((30, 3, 2), seed=5)
        body = intel_bfee(samples, 3, 2, timestamp_low=77)
        batch = Intel(self.write(intel_tlv(0xBB, body)), if_report=False)
        batch.read()

        live = Intel()
        self.assertEqual(live.pmsg(bytes([0xBB]) + body), 0xBB)
        self.assertEqual(live.timestamp_low[0], 77)
        np.testing.assert_array_equal(live.csi, batch.csi)

        # second frame overwrites slot 0
        live.pmsg(bytes([0xBB]) + intel_bfee(samples, 3, 2, timestamp_low=78))
        self.assertEqual(len(live.csi), 1)
        self.assertEqual(live.timestamp_low[0], 78)

    def test_pmsg_bad_size_returns_status(self):
        samples = random_int8_csi((30, 1, 1))
        body = intel_bfee(samples, 1, 1, antenna_sel=0, length=13)
        live = Intel()
        with self.assertLogs(live.logger, level="WARNING"):
            status = live.pmsg(bytes([0xBB]) + body)
        self.assertEqual(status, -1)
        self.assertEqual(live.Nrx[0], 1)
        self.assertFalse(live.csi.any())

    def test_pmsg_mac_and_unknown(self):
        live = Intel(pl_len=2)
        self.assertEqual(live.pmsg(bytes([0xC1]) + intel_mac(payload=b"xyz")), 0xC1)
        self.assertEqual(bytes(live.payload[0]), b"xy")
        self.assertEqual(live.pmsg(b"\x10\x00\x00"), 0x10)

    def test_pmsg_empty_buffer(self):
        with self.assertRaises(ShortBufferError):
            Intel().pmsg(b"")


class TestIntelTimestamps(IntelTestCase):
    def test_readstp(self):
        samples = random_int8_csi((30, 1, 1))
        path = self.write(intel_tlv(0xBB, intel_bfee(samples, 1, 1, antenna_sel=0)))
        stp = struct.pack("<IIII", 10, 500000, 11, 250000) + b"\x01\x02"
        self.write(stp, name="log.stp")
        reader = Intel(path, if_report=False)
        np.testing.assert_allclose(reader.readstp(), [10.5, 11.25])


if __name__ == "__main__":
    unittest.main()
