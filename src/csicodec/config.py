"""Reader options: per-vendor defaults, optionally overridden by a JSON file."""

import json
import os

from .atheros import Atheros
from .errors import ConfigurationError
from .intel import Intel
from .nexmon import Nexmon

READERS = {
    "intel": Intel,
    "atheros": Atheros,
    "nexmon": Nexmon,
}

DEFAULTS = {
    "intel": {
        "nrxnum": 3,
        "ntxnum": 2,
        "pl_len": 0,
        "if_report": True,
    },
    "atheros": {
        "nrxnum": 3,
        "ntxnum": 3,
        "tones": 56,
        "pl_len": 0,
        "endian": "little",
        "if_report": True,
    },
    "nexmon": {
        "chip": "4358",
        "bw": 80,
        "if_report": True,
    },
}


def _check_vendor(vendor):
    if vendor not in DEFAULTS:
        raise ConfigurationError(
            f"unknown vendor {vendor!r}, expected one of {', '.join(DEFAULTS)}"
        )


def load_config(vendor, path=None):
    """
    Options for `vendor`, with the JSON object at `path` merged over the
    defaults. The file may hold the options directly or keyed by vendor.
    """
    _check_vendor(vendor)
    config = dict(DEFAULTS[vendor])
    if path is None:
        return config

    if not os.path.exists(path):
        raise FileNotFoundError(f"config file not found: {path}")
    with open(path, "r") as f:
        loaded = json.load(f)
    if vendor in loaded and isinstance(loaded[vendor], dict):
        loaded = loaded[vendor]

    unknown = set(loaded) - set(config)
    if unknown:
        raise ConfigurationError(
            f"unknown {vendor} options in {path}: {', '.join(sorted(unknown))}"
        )
    config.update(loaded)
    return config


def make_reader(vendor, file=None, config_path=None, **overrides):
    """Build the reader for `vendor` from defaults, config file and overrides."""
    config = load_config(vendor, config_path)
    unknown = set(overrides) - set(config)
    if unknown:
        raise ConfigurationError(
            f"unknown {vendor} options: {', '.join(sorted(unknown))}"
        )
    config.update(overrides)
    return READERS[vendor](file, **config)
