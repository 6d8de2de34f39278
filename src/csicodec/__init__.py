"""csicodec: decoders for Intel, Atheros and Nexmon CSI captures."""

from .atheros import Atheros
from .errors import (
    ConfigurationError,
    CSICodecError,
    MalformedFrameError,
    ShortBufferError,
)
from .intel import Intel
from .nexmon import Nexmon
from .store import RecordStore
from .timestamps import read_stp

__all__ = [
    "Atheros",
    "Intel",
    "Nexmon",
    "RecordStore",
    "read_stp",
    "CSICodecError",
    "ConfigurationError",
    "MalformedFrameError",
    "ShortBufferError",
]

__version__ = "0.1"
