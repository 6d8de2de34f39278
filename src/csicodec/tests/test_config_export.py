import json
import os
import shutil
import tempfile
import unittest

import numpy as np
from click.testing import CliRunner
from scipy.io import loadmat

from csicodec import Atheros, ConfigurationError, Intel, Nexmon
from csicodec.cli import cli
from csicodec.config import load_config, make_reader
from csicodec.export import format_mac, save_mat, save_npz, to_dataframe
from frame_builders import atheros_record, intel_bfee, intel_mac, intel_tlv
from frame_builders import random_10bit_csi, random_int8_csi


class TempDirTestCase(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def path(self, name):
        return os.path.join(self.tmpdir, name)

    def write(self, name, data):
        mode = "w" if isinstance(data, str) else "wb"
        with open(self.path(name), mode) as f:
            f.write(data)
        return self.path(name)


class TestConfig(TempDirTestCase):
    def test_defaults(self):
        self.assertEqual(load_config("intel")["ntxnum"], 2)
        self.assertEqual(load_config("atheros")["tones"], 56)
        with self.assertRaises(ConfigurationError):
            load_config("marvell")

    def test_file_overrides_defaults(self):
        path = self.write("cfg.json", json.dumps({"atheros": {"tones": 114, "pl_len": 8}}))
        config = load_config("atheros", path)
        self.assertEqual((config["tones"], config["pl_len"]), (114, 8))
        self.assertEqual(config["endian"], "little")

    def test_unknown_keys_rejected(self):
        path = self.write("cfg.json", json.dumps({"chip": "4339", "antennas": 4}))
        with self.assertRaises(ConfigurationError):
            load_config("nexmon", path)
        with self.assertRaises(ConfigurationError):
            make_reader("intel", tones=56)

    def test_make_reader(self):
        self.assertIsInstance(make_reader("intel"), Intel)
        reader = make_reader("atheros", endian="big")
        self.assertIsInstance(reader, Atheros)
        self.assertEqual(reader.order.name, "big")
        self.assertEqual(make_reader("nexmon", chip="4366c0", bw=40).nfft, 128)
        self.assertIsInstance(make_reader("nexmon"), Nexmon)


class TestExport(TempDirTestCase):
    def decoded_intel(self):
        samples = random_int8_csi((30, 3, 2))
        data = intel_tlv(0xBB, intel_bfee(samples, 3, 2)) * 2 + intel_tlv(0xC1, intel_mac())
        reader = Intel(self.write("log.dat", data), if_report=False)
        reader.read()
        return reader

    def test_dataframe_of_scalar_fields(self):
        reader = self.decoded_intel()
        frame = to_dataframe(reader.stores["csi"])
        self.assertEqual(len(frame), 2)
        self.assertIn("rssi_a", frame.columns)
        self.assertNotIn("csi", frame.columns)
        self.assertNotIn("perm", frame.columns)

        mac = to_dataframe(reader.stores["mac"])
        self.assertEqual(mac["addr_bssid"][0], "00:16:ea:12:34:58")

    def test_format_mac(self):
        self.assertEqual(format_mac([0, 255, 16, 1, 2, 3]), "00:ff:10:01:02:03")

    def test_save_npz_and_mat(self):
        store = self.decoded_intel().stores["csi"]
        save_npz(store, self.path("out.npz"))
        with np.load(self.path("out.npz")) as saved:
            np.testing.assert_array_equal(saved["csi"], store.csi)
        save_mat(store, self.path("out.mat"))
        mat = loadmat(self.path("out.mat"))
        np.testing.assert_array_equal(mat["csi"], store.csi)


class TestCli(TempDirTestCase):
    def test_info_and_export(self):
        samples = random_10bit_csi((56, 2, 2))
        path = self.write("csi.dat", atheros_record(samples, 2, 2, 56) * 3)
        runner = CliRunner()

        result = runner.invoke(cli, ["info", path, "--vendor", "atheros"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("csi: 3", result.output)

        out = self.path("meta.csv")
        result = runner.invoke(cli, ["export", path, out, "--vendor", "atheros"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertTrue(os.path.isfile(out))

    def test_decode_error_is_reported(self):
        samples = random_int8_csi((30, 3, 3))
        path = self.write("log.dat", intel_tlv(0xBB, intel_bfee(samples, 3, 3)))
        result = CliRunner().invoke(cli, ["info", path, "--vendor", "intel"])
        self.assertNotEqual(result.exit_code, 0)
        self.assertIn("ConfigurationError", result.output)


if __name__ == "__main__":
    unittest.main()
