"""Shared plumbing for the vendor readers."""

import logging
import os

from .store import RecordStore
from .timestamps import read_stp


class BaseReader:
    """
    Common parts of the Intel, Atheros and Nexmon readers.

    Subclasses declare their record layouts in `_layouts()` (store name ->
    field dict) and implement `read()` and `pmsg()`. Decoded fields are
    reachable as attributes of the reader, e.g. `reader.csi`.
    """

    # Store whose fields are exposed first when names collide.
    primary = None

    def __init__(self, file=None, if_report=True):
        self.file = file
        self.if_report = if_report
        self.logger = logging.getLogger(
            f"csicodec.{type(self).__name__}"
            + (f"[{os.path.basename(file)}]" if file else "")
        )
        if file is not None and not os.path.isfile(file):
            raise FileNotFoundError(f"CSI file does not exist: {file}")

        self.stores = {}
        self.skipped = 0
        for name, fields in self._layouts().items():
            self.stores[name] = RecordStore.single(fields).finalize()

    def _layouts(self):
        raise NotImplementedError

    def __getattr__(self, name):
        stores = self.__dict__.get("stores")
        if not stores:
            raise AttributeError(name)
        order = [self.primary] + [s for s in stores if s != self.primary]
        for store_name in order:
            store = stores.get(store_name)
            if store is not None and name in store:
                return getattr(store, name)
        raise AttributeError(
            f"{type(self).__name__!r} object has no attribute {name!r}"
        )

    def _require_file(self):
        if self.file is None:
            raise ValueError("no file given; use pmsg() for live buffers")

    def _new_stores(self, capacity):
        self.stores = {
            name: RecordStore(fields, capacity)
            for name, fields in self._layouts().items()
        }
        self.skipped = 0

    def _finalize(self):
        for store in self.stores.values():
            store.finalize()

    def _live_store(self, name):
        """Slot-0 store for one live frame."""
        store = self.stores.get(name)
        if store is None or store._capacity != 1:
            store = RecordStore.single(self._layouts()[name])
            self.stores[name] = store
        store.reset()
        return store

    def report(self):
        """Counts of decoded and skipped records."""
        stats = {name: len(store) for name, store in self.stores.items()}
        stats["skipped"] = self.skipped
        return stats

    def _log_summary(self):
        if not self.if_report:
            return
        stats = self.report()
        parts = ", ".join(f"{name}: {count}" for name, count in stats.items())
        self.logger.info(f"{self.file}: {parts}")

    def readstp(self, path=None, endian="little"):
        """
        Read the companion timestamp file.

        Defaults to the capture file name with its extension replaced by
        `.stp`.
        """
        if path is None:
            self._require_file()
            path = os.path.splitext(self.file)[0] + ".stp"
        return read_stp(path, endian)

    def __len__(self):
        return len(self.stores[self.primary])
