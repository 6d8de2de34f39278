"""Companion timestamp side-file: (u32 seconds, u32 microseconds) pairs."""

import os

import numpy as np

from .byteorder import byte_order


def read_stp(path, endian="little"):
    """
    Read a timestamp side-file.

    Returns a float64 array of `sec + usec * 1e-6`, one value per logical
    record. A trailing partial pair is ignored.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"timestamp file does not exist: {path}")
    order = byte_order(endian)
    dtype = np.dtype("<u4" if order.name == "little" else ">u4")
    raw = np.fromfile(path, dtype=np.uint8)
    usable = (raw.size // 8) * 8
    pairs = raw[:usable].view(dtype).reshape(-1, 2).astype(np.float64)
    return pairs[:, 0] + pairs[:, 1] * 1e-6
