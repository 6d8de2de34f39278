"""Exceptions raised by the CSI decoders."""


class CSICodecError(Exception):
    """
    Base class for all decoder errors.
    """

    pass


class ConfigurationError(CSICodecError, ValueError):
    """
    A frame declares more chains/tones than the reader was configured for,
    or an option passed at construction is not supported.
    """

    pass


class MalformedFrameError(CSICodecError):
    """
    A frame failed a structural check (e.g. beamforming matrix size).
    """

    pass


class ShortBufferError(MalformedFrameError):
    """
    A read asked for more bytes than the frame holds.
    """

    pass
