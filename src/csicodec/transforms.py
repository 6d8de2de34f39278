"""
transforms.py

Derived quantities computed from decoded Intel CSI records:
  - RSS aggregation across receive chains (get_total_rss)
  - CSI scaling to absolute channel units (get_scaled_csi)
  - Spatial mapping removal / application (remove_sm, apply_sm)

Every function takes a store-like object exposing the Intel CSI fields
(`csi`, `Nrx`, `Ntx`, `rssi_a`, `rssi_b`, `rssi_c`, `noise`, `agc`, `rate`).
Plain names return a new array; the `_in_place` variants overwrite
`store.csi` and return it.

CSI array shape: (records, subcarriers, rx_antennas, tx_antennas)
"""

import numpy as np

RSS_CALIBRATION_DB = 44
NOISE_SENTINEL = -127
NOISE_FLOOR_DB = -92
HT40_FLAG = 0x800

# Spatial mapping matrices, indexed by (transmit streams, 40 MHz)
SM_2_20 = np.array([[1, 1], [1, -1]]) / np.sqrt(2)
SM_2_40 = np.array([[1, 1j], [1j, 1]]) / np.sqrt(2)
SM_3_20 = (
    np.exp(
        1j
        * np.array(
            [
                [-2 * np.pi / 16, -2 * np.pi / (80 / 33), 2 * np.pi / (80 / 3)],
                [2 * np.pi / (80 / 23), 2 * np.pi / (48 / 13), 2 * np.pi / (240 / 13)],
                [-2 * np.pi / (80 / 13), 2 * np.pi / (240 / 37), 2 * np.pi / (48 / 13)],
            ]
        )
    )
    / np.sqrt(3)
)
SM_3_40 = (
    np.exp(
        1j
        * np.array(
            [
                [-2 * np.pi / 16, -2 * np.pi / (80 / 13), 2 * np.pi / (80 / 23)],
                [-2 * np.pi / (80 / 37), -2 * np.pi / (48 / 11), -2 * np.pi / (240 / 107)],
                [2 * np.pi / (80 / 7), -2 * np.pi / (240 / 83), -2 * np.pi / (48 / 11)],
            ]
        )
    )
    / np.sqrt(3)
)
SPATIAL_MAPS = {
    (2, False): SM_2_20,
    (2, True): SM_2_40,
    (3, False): SM_3_20,
    (3, True): SM_3_40,
}


def dbinv(x):
    """dB to linear power."""
    return np.power(10.0, np.asarray(x, dtype=np.float64) / 10)


def db(x):
    """Linear power to dB."""
    with np.errstate(divide="ignore"):
        return 10 * np.log10(np.asarray(x, dtype=np.float64))


def get_total_rss(store):
    """
    Total received signal strength in dBm per record.

    Each chain's RSSI is converted to linear power and summed; a chain
    reporting 0 is inactive and contributes nothing. The sum is converted
    back to dB, minus 44 dB and the AGC.
    """
    rssi_mag = np.zeros(len(store.agc), dtype=np.float64)
    for rssi in (store.rssi_a, store.rssi_b, store.rssi_c):
        rssi_mag += np.where(rssi != 0, dbinv(rssi), 0.0)
    return db(rssi_mag) - RSS_CALIBRATION_DB - store.agc


def _scale_factors(store):
    csi = store.csi
    csi_pwr = (np.abs(csi) ** 2).sum(axis=(1, 2, 3))
    rssi_pwr = dbinv(get_total_rss(store))
    with np.errstate(divide="ignore", invalid="ignore"):
        scale = rssi_pwr / (csi_pwr / csi.shape[1])

        noise_db = np.where(store.noise == NOISE_SENTINEL, NOISE_FLOOR_DB, store.noise)
        thermal_noise_pwr = dbinv(noise_db)
        quant_error_pwr = scale * (store.Nrx * store.Ntx)
        total_noise_pwr = thermal_noise_pwr + quant_error_pwr
        total_noise_pwr = np.where(store.Ntx == 2, total_noise_pwr / 2, total_noise_pwr)
        total_noise_pwr = np.where(
            store.Ntx == 3, total_noise_pwr / dbinv(4.5), total_noise_pwr
        )
        return np.sqrt(scale / total_noise_pwr)


def get_scaled_csi(store):
    """CSI in absolute units, as a new array."""
    factors = _scale_factors(store)
    return store.csi * factors[:, None, None, None]


def get_scaled_csi_in_place(store):
    csi = store.csi
    csi *= _scale_factors(store)[:, None, None, None]
    return csi


def _spatial_map(csi, ntx, rate, inverse):
    bw40 = (np.asarray(rate) & HT40_FLAG) == HT40_FLAG
    for (n, is40), sm in SPATIAL_MAPS.items():
        sel = np.flatnonzero((ntx == n) & (bw40 == is40))
        if not sel.size or csi.shape[3] < n:
            continue
        m = sm.conj().T if inverse else sm
        csi[sel, :, :, :n] = csi[sel, :, :, :n] @ m
    return csi


def remove_sm(store):
    """
    Undo the transmitter's spatial mapping, as a new array.

    Records with one transmit stream (or any count other than 2 and 3)
    are returned unchanged.
    """
    return _spatial_map(store.csi.copy(), store.Ntx, store.rate, inverse=True)


def remove_sm_in_place(store):
    return _spatial_map(store.csi, store.Ntx, store.rate, inverse=True)


def apply_sm(store):
    """Apply the spatial mapping (the inverse of remove_sm), as a new array."""
    return _spatial_map(store.csi.copy(), store.Ntx, store.rate, inverse=False)


def get_scaled_csi_sm(store):
    csi = get_scaled_csi(store)
    return _spatial_map(csi, store.Ntx, store.rate, inverse=True)


def get_scaled_csi_sm_in_place(store):
    csi = get_scaled_csi_in_place(store)
    return _spatial_map(csi, store.Ntx, store.rate, inverse=True)
