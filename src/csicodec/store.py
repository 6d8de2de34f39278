"""Struct-of-arrays container for decoded records."""

import numpy as np


class RecordStore:
    """
    Holds one record type as a set of numpy arrays sharing a leading
    record axis.

    The decode loop reserves a slot with `next_slot()`, fills it and calls
    `commit()`. `finalize()` truncates every array to the committed count.
    Only committed rows are visible through attribute access.
    """

    def __init__(self, fields, capacity=1):
        """
        Args:
            fields: dict of field name -> (dtype, per-record shape tuple)
            capacity: estimated number of records
        """
        self.fields = dict(fields)
        self._capacity = max(int(capacity), 1)
        self._count = 0
        self._final = False
        self._arrays = {
            name: np.zeros((self._capacity,) + tuple(shape), dtype=dtype)
            for name, (dtype, shape) in self.fields.items()
        }

    @classmethod
    def single(cls, fields):
        """One-slot store for live-feed decoding."""
        return cls(fields, capacity=1)

    def __len__(self):
        return self._count

    def __getattr__(self, name):
        arrays = self.__dict__.get("_arrays")
        if arrays is None or name not in arrays:
            raise AttributeError(name)
        return arrays[name][: self._count]

    def __contains__(self, name):
        return name in self._arrays

    def _grow(self):
        new_capacity = self._capacity * 2
        for name, arr in self._arrays.items():
            grown = np.zeros((new_capacity,) + arr.shape[1:], dtype=arr.dtype)
            grown[: self._capacity] = arr
            self._arrays[name] = grown
        self._capacity = new_capacity

    def next_slot(self):
        """Index of the next (cleared) slot; grows the arrays if full."""
        if self._final:
            raise RuntimeError("store is finalized")
        if self._count >= self._capacity:
            self._grow()
        idx = self._count
        for arr in self._arrays.values():
            arr[idx] = 0
        return idx

    def write(self, idx, **values):
        for name, value in values.items():
            self._arrays[name][idx] = value

    def slot(self, name, idx):
        """Writable view of one field of one (possibly uncommitted) slot."""
        return self._arrays[name][idx]

    def commit(self):
        self._count += 1
        return self._count - 1

    def reset(self):
        """Drop all records; used before reusing slot 0 for live decoding."""
        self._count = 0
        self._final = False

    def finalize(self):
        """Truncate to the committed record count."""
        if self._final:
            return self
        for name in self._arrays:
            self._arrays[name] = self._arrays[name][: self._count].copy()
        self._capacity = max(self._count, 1)
        if self._count == 0:
            for name, arr in self._arrays.items():
                self._arrays[name] = np.zeros((1,) + arr.shape[1:], dtype=arr.dtype)
        self._final = True
        return self

    def as_dict(self):
        return {name: getattr(self, name) for name in self._arrays}

    def __repr__(self):
        return f"RecordStore({len(self)} records, fields={list(self.fields)})"
