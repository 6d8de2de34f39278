"""
csicodec.Intel: reader for netlink logs of the Intel 5300 CSI tool.

The log is a stream of TLV records `u16 length (big endian) | u8 code |
length - 1 bytes`. Code 0xbb carries a beamforming (CSI) report, code 0xc1
an 802.11 MAC header; other codes are skipped.
"""

import os

import numpy as np

from . import transforms
from .byteorder import BIG, LITTLE, ByteCursor, signbit_convert
from .errors import ConfigurationError, MalformedFrameError, ShortBufferError
from .reader import BaseReader

CODE_BFEE = 0xBB
CODE_MAC = 0xC1

SUBCARRIERS = 30
BFEE_HEADER_LEN = 20
MAC_HEADER_LEN = 24
# Average record size used to size the stores up front.
EST_RECORD_LEN = 95


def bfee_size(nrx, ntx):
    """Byte size of a packed beamforming matrix, 60 * Nrx * Ntx + 12."""
    return (SUBCARRIERS * (nrx * ntx * 8 * 2 + 3) + 7) // 8


class Intel(BaseReader):
    primary = "csi"

    def __init__(self, file=None, nrxnum=3, ntxnum=2, pl_len=0, if_report=True):
        """Parameter initialization."""
        self.nrxnum = nrxnum
        self.ntxnum = ntxnum
        self.pl_len = pl_len
        self._perm_warned = False
        super().__init__(file, if_report)

    def _layouts(self):
        btype = np.int64
        return {
            "csi": {
                "timestamp_low": (np.uint32, ()),
                "bfee_count": (btype, ()),
                "Nrx": (btype, ()),
                "Ntx": (btype, ()),
                "rssi_a": (btype, ()),
                "rssi_b": (btype, ()),
                "rssi_c": (btype, ()),
                "noise": (btype, ()),
                "agc": (btype, ()),
                "perm": (btype, (3,)),
                "rate": (btype, ()),
                "csi": (np.complex128, (SUBCARRIERS, self.nrxnum, self.ntxnum)),
            },
            "mac": {
                "fc": (btype, ()),
                "dur": (btype, ()),
                "addr_des": (np.uint8, (6,)),
                "addr_src": (np.uint8, (6,)),
                "addr_bssid": (np.uint8, (6,)),
                "seq": (btype, ()),
                "frag": (btype, ()),
                "payload_len": (btype, ()),
                "payload": (np.uint8, (self.pl_len,)),
            },
        }

    def read(self, limit=None):
        """
        Decode the whole log.

        Stops quietly on a truncated record. A configuration or structural
        error propagates; the stores keep every record parsed before it.

        Args:
            limit: stop after this many CSI records
        Returns:
            number of CSI records decoded
        """
        self._require_file()
        lens = os.path.getsize(self.file)
        self._new_stores(lens // EST_RECORD_LEN + 1)
        csi_store = self.stores["csi"]

        try:
            with open(self.file, "rb") as f:
                while limit is None or len(csi_store) < limit:
                    head = f.read(3)
                    if len(head) < 3:
                        break
                    field_len = BIG.u16(head)
                    code = head[2]
                    if field_len < 1:
                        self.logger.warning(
                            f"Zero-length record at offset {f.tell() - 3}, stopping"
                        )
                        break
                    buf = f.read(field_len - 1)
                    if len(buf) < field_len - 1:
                        self.logger.debug(
                            f"Truncated record (code {code:#x}) at end of file"
                        )
                        break
                    self._dispatch(code, buf)
        finally:
            self._finalize()

        self._log_summary()
        return len(csi_store)

    def _dispatch(self, code, buf):
        if code == CODE_BFEE:
            store = self.stores["csi"]
            self._decode_bfee(store, buf)
            store.commit()
        elif code == CODE_MAC:
            store = self.stores["mac"]
            self._decode_mac(store, buf)
            store.commit()
        else:
            self.skipped += 1

    def pmsg(self, data):
        """
        Decode one live record. `data[0]` is the record code.

        Returns:
            0xbb or 0xc1 when a record was decoded into slot 0, the code
            itself for unknown codes, -1 when the beamforming size check
            failed (slot 0 then holds the header with zeroed CSI).
        """
        if not data:
            raise ShortBufferError("empty live buffer, no record code")
        code = data[0]
        buf = data[1:]
        if code == CODE_BFEE:
            store = self._live_store("csi")
            try:
                self._decode_bfee(store, buf)
            except MalformedFrameError as e:
                store.commit()
                self.logger.warning(f"Dropping CSI of live frame: {e}")
                return -1
            store.commit()
        elif code == CODE_MAC:
            store = self._live_store("mac")
            self._decode_mac(store, buf)
            store.commit()
        else:
            self.skipped += 1
        return code

    def _decode_bfee(self, store, buf):
        idx = store.next_slot()
        cur = ByteCursor(buf, LITTLE)
        timestamp_low = cur.u32()
        bfee_count = cur.u16()
        cur.skip(2)
        Nrx = cur.u8()
        Ntx = cur.u8()
        rssi_a = cur.u8()
        rssi_b = cur.u8()
        rssi_c = cur.u8()
        noise = cur.i8()
        agc = cur.u8()
        antenna_sel = cur.u8()
        length = cur.u16()
        rate = cur.u16()
        perm = [(antenna_sel >> (2 * i)) & 0x3 for i in range(3)]
        store.write(
            idx,
            timestamp_low=timestamp_low,
            bfee_count=bfee_count,
            Nrx=Nrx,
            Ntx=Ntx,
            rssi_a=rssi_a,
            rssi_b=rssi_b,
            rssi_c=rssi_c,
            noise=noise,
            agc=agc,
            perm=perm,
            rate=rate,
        )

        if Nrx > self.nrxnum or Ntx > self.ntxnum:
            raise ConfigurationError(
                f"record has Nrx={Nrx}, Ntx={Ntx}; reader configured for "
                f"nrxnum={self.nrxnum}, ntxnum={self.ntxnum}"
            )
        calc_len = bfee_size(Nrx, Ntx)
        if length != calc_len:
            raise MalformedFrameError(
                f"wrong beamforming matrix size: declared {length}, "
                f"expected {calc_len} for Nrx={Nrx}, Ntx={Ntx}"
            )

        self._read_csi(cur.take(calc_len), Nrx, Ntx, perm, store.slot("csi", idx))
        return idx

    def _read_csi(self, payload, nrx, ntx, perm, csi):
        if sorted(perm[:nrx]) != list(range(nrx)):
            if not self._perm_warned:
                self.logger.warning(
                    f"Found CSI with Nrx={nrx} and invalid perm={perm}, "
                    f"using unpermuted receive order"
                )
                self._perm_warned = True
            perm = [0, 1, 2]

        index = 0
        for i in range(SUBCARRIERS):
            index += 3
            remainder = index % 8
            for j in range(nrx):
                for k in range(ntx):
                    pos = index // 8
                    real = (
                        (payload[pos] >> remainder) | (payload[pos + 1] << (8 - remainder))
                    ) & 0xFF
                    imag = (
                        (payload[pos + 1] >> remainder)
                        | (payload[pos + 2] << (8 - remainder))
                    ) & 0xFF
                    csi[i, perm[j], k] = (
                        signbit_convert(real, 8) + signbit_convert(imag, 8) * 1j
                    )
                    index += 16
        return csi

    def _decode_mac(self, store, buf):
        idx = store.next_slot()
        cur = ByteCursor(buf, LITTLE)
        fc = cur.u16()
        dur = cur.u16()
        addr_des = cur.take(6)
        addr_src = cur.take(6)
        addr_bssid = cur.take(6)
        seq_ctl = cur.u16()
        payload = cur.take(cur.remaining())
        pl_stop = min(len(payload), self.pl_len)
        store.write(
            idx,
            fc=fc,
            dur=dur,
            addr_des=list(addr_des),
            addr_src=list(addr_src),
            addr_bssid=list(addr_bssid),
            seq=seq_ctl >> 4,
            frag=seq_ctl & 0xF,
            payload_len=len(payload),
        )
        store.slot("payload", idx)[:pl_stop] = np.frombuffer(
            payload[:pl_stop], dtype=np.uint8
        )
        return idx

    # Derived quantities

    def get_total_rss(self):
        """Total RSS in dBm per record."""
        return transforms.get_total_rss(self.stores["csi"])

    def get_scaled_csi(self):
        """CSI scaled to channel matrix units (new array)."""
        return transforms.get_scaled_csi(self.stores["csi"])

    def get_scaled_csi_in_place(self):
        return transforms.get_scaled_csi_in_place(self.stores["csi"])

    def get_scaled_csi_sm(self):
        """Scaled CSI with the spatial mapping removed (new array)."""
        return transforms.get_scaled_csi_sm(self.stores["csi"])

    def get_scaled_csi_sm_in_place(self):
        return transforms.get_scaled_csi_sm_in_place(self.stores["csi"])

    def remove_sm(self):
        return transforms.remove_sm(self.stores["csi"])

    def remove_sm_in_place(self):
        return transforms.remove_sm_in_place(self.stores["csi"])

    def apply_sm(self):
        return transforms.apply_sm(self.stores["csi"])
