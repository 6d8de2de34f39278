"""csicodec.Atheros: reader for logs written by the Atheros CSI tool."""

import os

import numpy as np

from .byteorder import BitReader, ByteCursor, byte_order
from .errors import ConfigurationError
from .reader import BaseReader

HEADER_LEN = 25
BITS_PER_FIELD = 10
SUPPORTED_TONES = (56, 114)
# Smallest plausible record on disk, used to size the store up front.
MIN_RECORD_LEN = 420

PMSG_STATUS = 0xFF00


class Atheros(BaseReader):
    primary = "csi"

    def __init__(
        self,
        file=None,
        nrxnum=3,
        ntxnum=3,
        tones=56,
        pl_len=0,
        endian="little",
        if_report=True,
    ):
        """Parameter initialization."""
        if tones not in SUPPORTED_TONES:
            raise ConfigurationError(
                f"tones must be one of {SUPPORTED_TONES}, got {tones}"
            )
        self.nrxnum = nrxnum
        self.ntxnum = ntxnum
        self.tones = tones
        self.pl_len = pl_len
        self.order = byte_order(endian)
        super().__init__(file, if_report)

    def _layouts(self):
        btype = np.int64
        return {
            "csi": {
                "timestamp": (np.uint64, ()),
                "csi_len": (btype, ()),
                "tx_channel": (btype, ()),
                "err_info": (btype, ()),
                "noise_floor": (btype, ()),
                "Rate": (btype, ()),
                "bandWidth": (btype, ()),
                "num_tones": (btype, ()),
                "nr": (btype, ()),
                "nc": (btype, ()),
                "rssi": (btype, ()),
                "rssi_1": (btype, ()),
                "rssi_2": (btype, ()),
                "rssi_3": (btype, ()),
                "payload_len": (btype, ()),
                "csi": (np.complex128, (self.tones, self.nrxnum, self.ntxnum)),
                "payload": (np.uint8, (self.pl_len,)),
            }
        }

    def read(self, limit=None):
        """Decode the whole log (or the first `limit` records)."""
        self._require_file()
        lens = os.path.getsize(self.file)
        self.logger.debug(f"File size: {lens} bytes, endian: {self.order.name}")
        self._new_stores(lens // MIN_RECORD_LEN + 1)
        store = self.stores["csi"]

        try:
            with open(self.file, "rb") as f:
                while limit is None or len(store) < limit:
                    prefix = f.read(2)
                    if len(prefix) < 2:
                        break
                    field_len = self.order.u16(prefix)
                    if f.tell() + field_len > lens:
                        self.logger.debug(
                            f"Record {len(store)} would exceed file size "
                            f"(field_len={field_len})"
                        )
                        break

                    header = f.read(HEADER_LEN)
                    if len(header) < HEADER_LEN:
                        break
                    csi_len = self.order.u16(header, 8)
                    payload_len = self.order.u16(header, 23)
                    body = f.read(csi_len + payload_len)
                    if len(body) < csi_len + payload_len:
                        break

                    self._decode_record(store, header + body)
                    store.commit()
                    if len(store) % 1000 == 0:
                        self.logger.debug(f"Processed {len(store)} records")
        finally:
            self._finalize()

        self._log_summary()
        return len(store)

    def pmsg(self, data):
        """Decode one record (25-byte header onwards) into slot 0."""
        store = self._live_store("csi")
        self._decode_record(store, data)
        store.commit()
        return PMSG_STATUS

    def _decode_record(self, store, buf):
        idx = store.next_slot()
        cur = ByteCursor(buf, self.order)
        store.write(
            idx,
            timestamp=cur.u64(),
            csi_len=cur.u16(),
            tx_channel=cur.u16(),
            err_info=cur.u8(),
            noise_floor=cur.u8(),
            Rate=cur.u8(),
            bandWidth=cur.u8(),
            num_tones=cur.u8(),
            nr=cur.u8(),
            nc=cur.u8(),
            rssi=cur.u8(),
            rssi_1=cur.u8(),
            rssi_2=cur.u8(),
            rssi_3=cur.u8(),
            payload_len=cur.u16(),
        )
        nr = int(store.slot("nr", idx))
        nc = int(store.slot("nc", idx))
        num_tones = int(store.slot("num_tones", idx))
        if nr > self.nrxnum or nc > self.ntxnum:
            raise ConfigurationError(
                f"record has nr={nr}, nc={nc}; reader configured for "
                f"nrxnum={self.nrxnum}, ntxnum={self.ntxnum}"
            )
        if num_tones > self.tones:
            raise ConfigurationError(
                f"record has {num_tones} tones; reader configured for {self.tones}"
            )

        c_len = int(store.slot("csi_len", idx))
        if c_len > 0:
            csi_buf = cur.take(c_len)
            if num_tones * nr * nc:
                self._read_csi(csi_buf, nr, nc, num_tones, store.slot("csi", idx))

        pl_len = int(store.slot("payload_len", idx))
        payload = cur.take(pl_len)
        pl_stop = min(pl_len, self.pl_len)
        store.slot("payload", idx)[:pl_stop] = np.frombuffer(
            payload[:pl_stop], dtype=np.uint8
        )
        return idx

    def _read_csi(self, csi_buf, nr, nc, num_tones, csi):
        """Unpack 10-bit (imag, real) pairs into csi[tone, rx, tx]."""
        bits = BitReader(csi_buf)
        for k in range(num_tones):
            for nc_idx in range(nc):
                for nr_idx in range(nr):
                    imag = bits.signed(BITS_PER_FIELD)
                    real = bits.signed(BITS_PER_FIELD)
                    csi[k, nr_idx, nc_idx] = real + imag * 1j
        return csi
