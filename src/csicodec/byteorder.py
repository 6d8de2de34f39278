"""
byteorder.py

Byte-order and bit-field primitives shared by the vendor decoders.

  - ByteOrder: reads fixed-width integers in one byte order. Picked once per
    reader (LITTLE or BIG) and passed down to the per-record decode.
  - ByteCursor: bounds-checked sequential reader over one frame.
  - BitReader: rolling bit accumulator yielding N-bit two's-complement fields
    (10-bit CSI samples of the Atheros tool).
"""

from .errors import ConfigurationError, ShortBufferError


def signbit_convert(data, maxbit):
    """Interpret the low `maxbit` bits of `data` as two's complement."""
    if data & (1 << (maxbit - 1)):
        data -= 1 << maxbit
    return data


class ByteOrder:
    def __init__(self, name):
        self.name = name

    def uint(self, buf, offset, size):
        return int.from_bytes(buf[offset : offset + size], byteorder=self.name)

    def sint(self, buf, offset, size):
        return int.from_bytes(
            buf[offset : offset + size], byteorder=self.name, signed=True
        )

    def u16(self, buf, offset=0):
        return self.uint(buf, offset, 2)

    def u32(self, buf, offset=0):
        return self.uint(buf, offset, 4)

    def u64(self, buf, offset=0):
        return self.uint(buf, offset, 8)

    def __repr__(self):
        return f"ByteOrder({self.name!r})"


LITTLE = ByteOrder("little")
BIG = ByteOrder("big")


def byte_order(name):
    """Resolve 'little' / 'big' to a ByteOrder."""
    if isinstance(name, ByteOrder):
        return name
    if name == "little":
        return LITTLE
    if name == "big":
        return BIG
    raise ConfigurationError(f"endian must be 'little' or 'big', got {name!r}")


class ByteCursor:
    """Sequential reader over a byte span. Every read advances `pos`."""

    def __init__(self, buf, order=LITTLE, pos=0):
        self.buf = buf
        self.order = order
        self.pos = pos

    def remaining(self):
        return len(self.buf) - self.pos

    def _advance(self, size):
        if size < 0 or self.pos + size > len(self.buf):
            raise ShortBufferError(
                f"need {size} bytes at offset {self.pos}, "
                f"only {len(self.buf) - self.pos} left"
            )
        start = self.pos
        self.pos += size
        return start

    def take(self, size):
        start = self._advance(size)
        return self.buf[start : start + size]

    def skip(self, size):
        self._advance(size)

    def u8(self):
        return self.buf[self._advance(1)]

    def i8(self):
        return signbit_convert(self.u8(), 8)

    def u16(self):
        return self.order.uint(self.buf, self._advance(2), 2)

    def i16(self):
        return self.order.sint(self.buf, self._advance(2), 2)

    def u32(self):
        return self.order.uint(self.buf, self._advance(4), 4)

    def u64(self):
        return self.order.uint(self.buf, self._advance(8), 8)


class BitReader:
    """
    Rolling bit accumulator over a packed byte stream.

    The stream is consumed 16 bits at a time, low byte first, whenever fewer
    bits are buffered than the next field needs. A stream of odd length
    ends with an 8-bit refill.
    """

    REFILL_BITS = 16

    def __init__(self, buf, pos=0):
        self.buf = buf
        self.idx = pos
        self.curren_data = 0
        self.bits_left = 0
        self._refill()

    def _refill(self):
        left = len(self.buf) - self.idx
        if left <= 0:
            raise ShortBufferError(
                f"bit stream exhausted at byte {self.idx} of {len(self.buf)}"
            )
        # a lone trailing byte refills with a zero high byte
        h_data = self.buf[self.idx]
        if left >= 2:
            h_data += self.buf[self.idx + 1] << 8
        nbits = min(left, 2) * 8
        self.idx += nbits // 8
        self.curren_data += h_data << self.bits_left
        self.bits_left += nbits

    def unsigned(self, nbits):
        while self.bits_left < nbits:
            self._refill()
        value = self.curren_data & ((1 << nbits) - 1)
        self.curren_data >>= nbits
        self.bits_left -= nbits
        return value

    def signed(self, nbits):
        return signbit_convert(self.unsigned(nbits), nbits)
