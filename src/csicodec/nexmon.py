"""
csicodec.Nexmon: reader for pcap captures written by nexmon_csi.

Each CSI frame is a UDP packet whose Ethernet source address is the literal
"NEXMON". After the 42-byte Ethernet/IP/UDP prefix come an 18-byte
application header and `bw * 3.2` 32-bit CSI words. The word format depends
on the chip: plain int16 (real, imag) pairs, or a packed float format with
a per-sample exponent that must be rescaled frame-wide.
"""

import os
from collections import namedtuple

import numpy as np

from .byteorder import BIG, LITTLE, ByteCursor
from .errors import ConfigurationError, MalformedFrameError
from .reader import BaseReader

PCAP_HEADER_LEN = 24
PACKET_HEADER_LEN = 16
UDP_PREFIX_LEN = 42
APP_HEADER_LEN = 18
NEXMON_MARKER = b"NEXMON"
MARKER_OFFSET = 6

SUPPORTED_BW = (20, 40, 80, 160)
PMSG_STATUS = 0xF100

# pcap magic bytes -> (byte order, nanosecond timestamps)
PCAP_MAGIC = {
    b"\xd4\xc3\xb2\xa1": (LITTLE, False),
    b"\xa1\xb2\xc3\xd4": (BIG, False),
    b"\x4d\x3c\xb2\xa1": (LITTLE, True),
    b"\xa1\xb2\x3c\x4d": (BIG, True),
}


class Int16Format(namedtuple("Int16Format", [])):
    """CSI words are (int16 real, int16 imag) pairs."""

    def unpack(self, words):
        pairs = words.view("<i2").reshape(-1, 2).astype(np.float64)
        return pairs[:, 0], pairs[:, 1]


class FloatFormat(namedtuple("FloatFormat", ["nman", "nexp"])):
    """
    Packed float CSI words.

    Bit layout of one word, from the top: [sign_r | mantissa_r (nman-1) |
    sign_i | mantissa_i (nman-1) | exponent (nexp)]; the exponent is signed
    and shared by the real and imaginary parts.
    """

    nbits = 10

    def unpack(self, words):
        return unpack_float(words, self.nman, self.nexp, self.nbits)


CHIP_FORMATS = {
    "4339": Int16Format(),
    "43455c0": Int16Format(),
    "4358": FloatFormat(9, 5),
    "4366c0": FloatFormat(12, 6),
}


def unpack_float(words, nman, nexp, nbits=10, autoscale=True):
    """
    Decode packed float CSI words into (real, imag) integer-valued arrays.

    Two passes: first find the largest bit position reached by any sample
    of the frame (mantissa bit length plus exponent), then shift every
    sample by its own exponent plus `nbits - maxbit`, so the strongest
    sample of the frame fits in `nbits` bits. Samples whose shift falls
    below `-nman` become zero.
    """
    h = np.asarray(words, dtype=np.int64)
    iq_mask = (1 << (nman - 1)) - 1
    e_mask = (1 << nexp) - 1
    e_p = 1 << (nexp - 1)
    sgnr_mask = 1 << (nexp + 2 * nman - 1)
    sgni_mask = sgnr_mask >> nman
    e_zero = -nman

    vi = (h >> (nexp + nman)) & iq_mask
    vq = (h >> nexp) & iq_mask
    e = h & e_mask
    e = np.where(e >= e_p, e - (e_p << 1), e)

    maxbit = -e_p
    x = vi | vq
    nz = x != 0
    if autoscale and nz.any():
        # frexp exponent of a positive integer is its bit length
        _, bit_len = np.frexp(x[nz].astype(np.float64))
        maxbit = max(maxbit, int((e[nz] + bit_len - 1).max()))

    e = e + (nbits - maxbit)

    def _shift(v):
        out = np.zeros_like(v)
        up = (e >= 0) & (v != 0)
        down = (e < 0) & (e >= e_zero)
        out[up] = v[up] << e[up]
        out[down] = v[down] >> -e[down]
        return out

    real = _shift(vi)
    imag = _shift(vq)
    real = np.where(h & sgnr_mask, -real, real)
    imag = np.where(h & sgni_mask, -imag, imag)
    return real.astype(np.float64), imag.astype(np.float64)


def chip_format(chip):
    """Resolve a chip identifier to its CSI word format, or None if unknown."""
    return CHIP_FORMATS.get(str(chip))


class Nexmon(BaseReader):
    primary = "csi"

    def __init__(self, file=None, chip="4358", bw=80, if_report=True):
        """Parameter initialization."""
        if bw not in SUPPORTED_BW:
            raise ConfigurationError(f"bw must be one of {SUPPORTED_BW}, got {bw}")
        self.chip = str(chip)
        self.bw = bw
        self.nfft = int(round(bw * 3.2))
        self.fmt = chip_format(self.chip)
        self.nano = False
        self.unsupported = 0
        super().__init__(file, if_report)
        if self.fmt is None:
            self.logger.warning(
                f"Unsupported chip {self.chip!r}: CSI will be left as zeros "
                f"(supported: {', '.join(CHIP_FORMATS)})"
            )

    def _layouts(self):
        btype = np.int64
        return {
            "csi": {
                "sec": (btype, ()),
                "usec": (btype, ()),
                "caplen": (btype, ()),
                "wirelen": (btype, ()),
                "magic": (btype, ()),
                "rssi": (btype, ()),
                "fctl": (btype, ()),
                "src_addr": (np.uint8, (6,)),
                "seq": (btype, ()),
                "core": (btype, ()),
                "spatial": (btype, ()),
                "chan_spec": (btype, ()),
                "chip_version": (btype, ()),
                "csi": (np.complex128, (self.nfft,)),
            }
        }

    @property
    def timestamp(self):
        """Capture time in seconds."""
        return self.sec + self.usec * (1e-9 if self.nano else 1e-6)

    def report(self):
        stats = super().report()
        stats["unsupported_chip"] = self.unsupported
        return stats

    def read(self, limit=None):
        """Decode every CSI frame of the capture (or the first `limit`)."""
        self._require_file()
        lens = os.path.getsize(self.file)
        frame_len = (
            PACKET_HEADER_LEN + UDP_PREFIX_LEN + APP_HEADER_LEN + self.nfft * 4
        )
        self._new_stores(max(lens - PCAP_HEADER_LEN, 0) // frame_len + 1)
        self.unsupported = 0
        store = self.stores["csi"]

        try:
            with open(self.file, "rb") as f:
                header = f.read(PCAP_HEADER_LEN)
                if len(header) == PCAP_HEADER_LEN:
                    magic = header[:4]
                    if magic not in PCAP_MAGIC:
                        raise MalformedFrameError(
                            f"not a pcap file (magic {magic.hex()})"
                        )
                    order, self.nano = PCAP_MAGIC[magic]
                    self._read_packets(f, order, store, limit)
        finally:
            self._finalize()

        self._log_summary()
        return len(store)

    def _read_packets(self, f, order, store, limit):
        while limit is None or len(store) < limit:
            pkt = f.read(PACKET_HEADER_LEN)
            if len(pkt) < PACKET_HEADER_LEN:
                break
            sec = order.u32(pkt, 0)
            frac = order.u32(pkt, 4)
            caplen = order.u32(pkt, 8)
            wirelen = order.u32(pkt, 12)

            if caplen < UDP_PREFIX_LEN:
                if len(f.read(caplen)) < caplen:
                    break
                self.skipped += 1
                continue
            prefix = f.read(UDP_PREFIX_LEN)
            if len(prefix) < UDP_PREFIX_LEN:
                break
            rest = f.read(caplen - UDP_PREFIX_LEN)
            if len(rest) < caplen - UDP_PREFIX_LEN:
                break
            marker = prefix[MARKER_OFFSET : MARKER_OFFSET + len(NEXMON_MARKER)]
            if marker != NEXMON_MARKER:
                self.skipped += 1
                continue

            idx = self._decode_frame(store, rest)
            store.write(
                idx, sec=sec, usec=frac, caplen=caplen, wirelen=wirelen
            )
            store.commit()

    def pmsg(self, data):
        """Decode one UDP payload (application header + CSI) into slot 0."""
        store = self._live_store("csi")
        self._decode_frame(store, data)
        store.commit()
        return PMSG_STATUS

    def _decode_frame(self, store, buf):
        idx = store.next_slot()
        cur = ByteCursor(buf, LITTLE)
        magic = cur.u16()
        rssi = cur.i8()
        fctl = cur.u8()
        src_addr = cur.take(6)
        seq = cur.u16()
        css = cur.u16()
        chan_spec = cur.u16()
        chip_version = cur.u16()
        store.write(
            idx,
            magic=magic,
            rssi=rssi,
            fctl=fctl,
            src_addr=list(src_addr),
            seq=seq,
            core=css & 0x7,
            spatial=(css >> 3) & 0x7,
            chan_spec=chan_spec,
            chip_version=chip_version,
        )

        if cur.remaining() < self.nfft * 4:
            raise MalformedFrameError(
                f"CSI payload has {cur.remaining()} bytes, "
                f"{self.nfft * 4} needed for bw={self.bw}"
            )
        raw = cur.take(self.nfft * 4)
        if self.fmt is None:
            self.unsupported += 1
            return idx
        words = np.frombuffer(raw, dtype="<u4")
        real, imag = self.fmt.unpack(words)
        csi = store.slot("csi", idx)
        csi.real = real
        csi.imag = imag
        return idx
