"""
QuantizedArray record

Persisted layout (little-endian):
- 1 byte:  quantized type tag (0 = Q8_0, 1 = Q4_0)
- 8 bytes: number of elements
- 8 bytes: number of blocks
- 8 bytes: block size
- 4 bytes x num_blocks: FP32 scale per block
- codes: 1 int8 per element (Q8_0) or ceil(num_elements / 2) packed bytes (Q4_0)

The record owns a single bytearray holding exactly this layout. `scales` and
`data` are numpy views into it, so `to_bytes()` is a plain copy and loading a
buffer only has to rebuild the views from the header.
"""

import numbers
import struct
from typing import Union

import numpy as np

from ..errors import AllocationError, InvalidArgumentError, UnknownFormatError


HEADER = struct.Struct('<BQQQ')
HEADER_SIZE = HEADER.size  # 25 bytes

Q8_0 = 0
Q4_0 = 1

# Maps type names to the tag stored in the header
QUANTIZATION_TYPES = {
    "Q8_0": Q8_0,
    "Q4_0": Q4_0,
}

TYPE_NAMES = {tag: name for name, tag in QUANTIZATION_TYPES.items()}


def resolve_quantized_type(quantized_type: Union[str, int]) -> int:
    """
    Turn a type name ("Q8_0", "q4_0") or header tag (0, 1) into a tag.

    Raises:
        UnknownFormatError: If the name or tag is not a supported type
    """
    if isinstance(quantized_type, str):
        tag = QUANTIZATION_TYPES.get(quantized_type.upper())
        if tag is None:
            raise UnknownFormatError(
                f"Unsupported quantization type: {quantized_type}. "
                f"Supported: {list(QUANTIZATION_TYPES.keys())}"
            )
        return tag

    if isinstance(quantized_type, numbers.Integral) and not isinstance(quantized_type, bool):
        if int(quantized_type) in TYPE_NAMES:
            return int(quantized_type)

    raise UnknownFormatError(f"Unsupported quantization type tag: {quantized_type!r}")


def _code_bytes(quantized_type: int, num_elements: int) -> int:
    if quantized_type == Q8_0:
        return num_elements
    if quantized_type == Q4_0:
        return (num_elements + 1) // 2  # two nibbles per byte
    raise UnknownFormatError(f"Unsupported quantization type tag: {quantized_type!r}")


def quantized_array_size(num_elements: int, block_size: int, quantized_type: int) -> int:
    """Persisted size in bytes of a record with the given header fields"""
    num_blocks = (num_elements + block_size - 1) // block_size
    return (HEADER_SIZE
            + num_blocks * 4                                   # scales
            + _code_bytes(quantized_type, num_elements))      # codes


class QuantizedArray:
    """
    Block-scaled low-bit encoding of a flat float32 array.

    Created zeroed by `allocate_quantized_array`, populated exactly once by an
    encode pass, read-only afterwards.
    """

    def __init__(self, buffer: bytearray, populated: bool = False):
        quantized_type, num_elements, num_blocks, block_size = HEADER.unpack_from(buffer, 0)

        self._quantized_type = quantized_type
        self._num_elements = num_elements
        self._num_blocks = num_blocks
        self._block_size = block_size

        code_dtype = np.int8 if quantized_type == Q8_0 else np.uint8
        scales_offset = HEADER_SIZE
        data_offset = scales_offset + num_blocks * 4

        self._buffer = buffer
        self._scales = np.frombuffer(buffer, dtype='<f4', count=num_blocks, offset=scales_offset)
        self._data = np.frombuffer(
            buffer,
            dtype=code_dtype,
            count=_code_bytes(quantized_type, num_elements),
            offset=data_offset,
        )
        self._populated = False
        if populated:
            self._seal()

    def __repr__(self):
        return (f"QuantizedArray(type={self.type_name}, num_elements={self._num_elements}, "
                f"num_blocks={self._num_blocks}, block_size={self._block_size})")

    @property
    def quantized_type(self) -> int:
        return self._quantized_type

    @property
    def type_name(self) -> str:
        return TYPE_NAMES[self._quantized_type]

    @property
    def num_elements(self) -> int:
        return self._num_elements

    @property
    def num_blocks(self) -> int:
        return self._num_blocks

    @property
    def block_size(self) -> int:
        return self._block_size

    @property
    def populated(self) -> bool:
        return self._populated

    @property
    def released(self) -> bool:
        return self._buffer is None

    @property
    def scales(self) -> np.ndarray:
        """FP32 scale per block"""
        self._check_alive()
        return self._scales

    @property
    def data(self) -> np.ndarray:
        """int8 codes (Q8_0) or packed uint8 nibble pairs (Q4_0)"""
        self._check_alive()
        return self._data

    def to_bytes(self) -> bytes:
        """Persisted representation, see module docstring"""
        self._check_alive()
        return bytes(self._buffer)

    def release(self):
        """Drop the backing buffer. Any later access raises."""
        self._scales = None
        self._data = None
        self._buffer = None

    def _check_alive(self):
        if self._buffer is None:
            raise InvalidArgumentError("QuantizedArray has been released")

    def _begin_population(self):
        self._check_alive()
        if self._populated:
            raise InvalidArgumentError("QuantizedArray is already populated")

    def _seal(self):
        self._scales.flags.writeable = False
        self._data.flags.writeable = False
        self._populated = True


def allocate_quantized_array(num_elements: int, block_size: int,
                             quantized_type: Union[str, int]) -> QuantizedArray:
    """
    Allocate a zeroed record sized for `num_elements` values.

    Args:
        num_elements: Number of float values the record will hold
        block_size: Elements per block sharing one scale
        quantized_type: Type name or tag

    Returns:
        QuantizedArray: unpopulated record

    Raises:
        InvalidArgumentError: If num_elements or block_size is zero
        UnknownFormatError: If quantized_type is not supported
        AllocationError: If the backing buffer cannot be allocated
    """
    if num_elements is None or num_elements <= 0:
        raise InvalidArgumentError(f"num_elements must be positive, got {num_elements}")
    if block_size is None or block_size <= 0:
        raise InvalidArgumentError(f"block_size must be positive, got {block_size}")

    tag = resolve_quantized_type(quantized_type)
    num_elements = int(num_elements)
    block_size = int(block_size)
    num_blocks = (num_elements + block_size - 1) // block_size

    try:
        buffer = bytearray(quantized_array_size(num_elements, block_size, tag))
    except MemoryError as e:
        raise AllocationError(f"Could not allocate QuantizedArray for {num_elements} elements") from e

    HEADER.pack_into(buffer, 0, tag, num_elements, num_blocks, block_size)
    return QuantizedArray(buffer)


def get_quantized_array_size(quantized_array: QuantizedArray) -> int:
    """
    Number of bytes needed to persist the record.

    Counts the persisted header fields, the scales and the code region, with
    the same rule for every type.
    """
    if quantized_array is None:
        raise InvalidArgumentError("quantized_array is required")
    return quantized_array_size(quantized_array.num_elements,
                                quantized_array.block_size,
                                quantized_array.quantized_type)


def load_quantized_array_from_buffer(buffer) -> QuantizedArray:
    """
    Rebuild a record from bytes produced by `QuantizedArray.to_bytes()`.

    The bytes are copied; the returned record does not share memory with
    `buffer`.

    Raises:
        InvalidArgumentError: If the buffer is missing, truncated or inconsistent
        UnknownFormatError: If the stored type tag is not supported
    """
    if buffer is None:
        raise InvalidArgumentError("buffer is required")

    copied = bytearray(buffer)
    if len(copied) < HEADER_SIZE:
        raise InvalidArgumentError(
            f"Buffer too small for QuantizedArray header: {len(copied)} < {HEADER_SIZE} bytes"
        )

    quantized_type, num_elements, num_blocks, block_size = HEADER.unpack_from(copied, 0)
    resolve_quantized_type(quantized_type)

    if num_elements == 0 or block_size == 0:
        raise InvalidArgumentError("Stored num_elements and block_size must be positive")
    if num_blocks != (num_elements + block_size - 1) // block_size:
        raise InvalidArgumentError(
            f"Stored num_blocks {num_blocks} does not match "
            f"ceil({num_elements} / {block_size})"
        )

    expected = quantized_array_size(num_elements, block_size, quantized_type)
    if len(copied) != expected:
        raise InvalidArgumentError(
            f"Buffer size mismatch: expected {expected} bytes, got {len(copied)}"
        )

    return QuantizedArray(copied, populated=True)
