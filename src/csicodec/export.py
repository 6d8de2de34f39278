"""Hand decoded stores to other tools: pandas tables, .mat and .npz files."""

import numpy as np
import pandas as pd
from scipy.io import savemat

ADDRESS_FIELDS = ("addr_des", "addr_src", "addr_bssid", "src_addr")


def format_mac(addr):
    return ":".join(f"{int(b):02x}" for b in addr)


def to_dataframe(store):
    """
    One row per record with the scalar fields of `store`.

    MAC addresses become 'aa:bb:cc:dd:ee:ff' strings; CSI, payload and other
    array fields are left out.
    """
    columns = {}
    for name in store.fields:
        values = getattr(store, name)
        if name in ADDRESS_FIELDS:
            columns[name] = [format_mac(addr) for addr in values]
        elif values.ndim == 1:
            columns[name] = values
    return pd.DataFrame(columns)


def save_mat(store, path):
    """Write every field of `store` to a MATLAB file."""
    savemat(path, store.as_dict(), do_compression=True)


def save_npz(store, path):
    np.savez_compressed(path, **store.as_dict())
