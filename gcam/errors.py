"""Exception hierarchy for the engine."""

from __future__ import annotations


class GCamError(Exception):
    """Base class for all engine errors."""

    pass


class BlockError(GCamError):
    """Raised on an invalid tree operation or an unsupported capability."""

    pass


class CodecError(GCamError):
    """Raised when a project file is malformed, truncated or unrecognised."""

    pass


class GCodeError(GCamError):
    """Raised when the G-code writer is given an argument it cannot emit.

    Decimal places outside 0-9, negative feeds and spindle speeds, unknown
    canned cycles and non-positive peck increments are rejected.
    """

    pass


class UnsupportedOperation(BlockError, NotImplementedError):
    """Raised when a block is asked for an operation outside its capability set."""

    pass
