"""
Exception types raised by the codecs

Every codec failure derives from CodecError, so callers that only need a
pass/fail signal can catch that one type.
"""


class CodecError(Exception):
    """Base class for all codec failures"""


class InvalidArgumentError(CodecError, ValueError):
    """Missing input, zero-sized dimension, bad ratio, populated record or bad buffer"""


class UnknownFormatError(CodecError, ValueError):
    """Unrecognized quantization type tag or name"""


class AllocationError(CodecError, MemoryError):
    """Memory for a result record could not be obtained"""


class TensorFileError(ValueError):
    """Malformed tensor file"""
