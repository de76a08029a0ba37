"""Protobuf wire-format reading and writing utilities.

This module provides low-level tag/length/value handling for the protobuf
binary encoding. Only the primitives needed to walk option blobs are
implemented: varints, 32/64-bit fixed values and length-delimited payloads.
Groups are recognized so they can be skipped.
"""

from __future__ import annotations

import enum
import struct

MAX_FIELD_NUMBER = (1 << 29) - 1
_MAX_VARINT_BYTES = 10


class WireType(enum.IntEnum):
    """Encoding category of a tagged protobuf value."""

    VARINT = 0
    I64 = 1
    LEN = 2
    SGROUP = 3
    EGROUP = 4
    I32 = 5


class WireWriter:
    """Writes tagged protobuf values into a byte buffer.

    Example:
        >>> writer = WireWriter()
        >>> writer.write_bool(2, True)
        >>> writer.write_string(1, "users")
        >>> data = writer.to_bytes()
    """

    def __init__(self) -> None:
        """Initialize an empty writer."""
        self._buffer = bytearray()

    def write_varint(self, value: int) -> None:
        """Write an unsigned varint.

        Negative values are written as their 64-bit two's complement, which is
        how protobuf encodes negative int32/int64 values.

        Args:
            value: Integer to write
        """
        if value < 0:
            value += 1 << 64
        if value >= 1 << 64:
            raise ValueError(f"Value {value} does not fit in a 64-bit varint")

        while True:
            byte = value & 0x7F
            value >>= 7
            if value:
                self._buffer.append(byte | 0x80)
            else:
                self._buffer.append(byte)
                return

    def write_tag(self, number: int, wire_type: WireType) -> None:
        """Write a field tag.

        Args:
            number: Field number (1 to 2^29 - 1)
            wire_type: Wire type of the value that follows

        Raises:
            ValueError: If the field number is out of range
        """
        if number < 1 or number > MAX_FIELD_NUMBER:
            raise ValueError(f"field number must be 1-{MAX_FIELD_NUMBER}, got {number}")
        self.write_varint((number << 3) | int(wire_type))

    def write_bool(self, number: int, value: bool) -> None:
        """Write a boolean field as a varint."""
        self.write_tag(number, WireType.VARINT)
        self.write_varint(1 if value else 0)

    def write_uint(self, number: int, value: int) -> None:
        """Write an integer field as a varint."""
        self.write_tag(number, WireType.VARINT)
        self.write_varint(value)

    def write_bytes(self, number: int, data: bytes) -> None:
        """Write a length-delimited field."""
        self.write_tag(number, WireType.LEN)
        self.write_varint(len(data))
        self._buffer.extend(data)

    def write_string(self, number: int, value: str) -> None:
        """Write a string field as UTF-8 length-delimited bytes."""
        self.write_bytes(number, value.encode("utf-8"))

    def write_fixed32(self, number: int, value: int) -> None:
        """Write a 32-bit little-endian fixed field."""
        self.write_tag(number, WireType.I32)
        self._buffer.extend(struct.pack("<I", value & 0xFFFFFFFF))

    def write_fixed64(self, number: int, value: int) -> None:
        """Write a 64-bit little-endian fixed field."""
        self.write_tag(number, WireType.I64)
        self._buffer.extend(struct.pack("<Q", value & 0xFFFFFFFFFFFFFFFF))

    def byte_length(self) -> int:
        """Return the number of bytes written so far."""
        return len(self._buffer)

    def to_bytes(self) -> bytes:
        """Return the written bytes."""
        return bytes(self._buffer)


class WireReader:
    """Reads tagged protobuf values from a byte buffer.

    Truncation raises IndexError and malformed encodings raise ValueError;
    callers translate both into DecodeError with the offending field name.

    Example:
        >>> reader = WireReader(data)
        >>> while not reader.at_end():
        ...     number, wire_type = reader.read_tag()
        ...     value = reader.read_value(wire_type)
    """

    def __init__(self, data: bytes) -> None:
        """Initialize a reader over the given data.

        Args:
            data: Serialized protobuf bytes
        """
        self._data = memoryview(bytes(data))
        self._position = 0

    def at_end(self) -> bool:
        """Return True when every byte has been consumed."""
        return self._position >= len(self._data)

    def read_varint(self) -> int:
        """Read an unsigned varint.

        Returns:
            Decoded value (up to 64 bits)

        Raises:
            IndexError: If the buffer ends inside the varint
            ValueError: If the varint is longer than 10 bytes
        """
        result = 0
        shift = 0
        for _ in range(_MAX_VARINT_BYTES):
            if self._position >= len(self._data):
                raise IndexError("Truncated varint")
            byte = self._data[self._position]
            self._position += 1
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result & 0xFFFFFFFFFFFFFFFF
            shift += 7
        raise ValueError("Malformed varint (more than 10 bytes)")

    def read_tag(self) -> tuple[int, WireType]:
        """Read a field tag.

        Returns:
            Tuple of (field number, wire type)

        Raises:
            ValueError: If the wire type is not a valid protobuf wire type or
                the field number is zero
        """
        key = self.read_varint()
        number = key >> 3
        raw_type = key & 0x07
        try:
            wire_type = WireType(raw_type)
        except ValueError:
            raise ValueError(f"Invalid wire type {raw_type} for field {number}") from None
        if number == 0:
            raise ValueError("Invalid field number 0")
        return number, wire_type

    def read_fixed32(self) -> int:
        """Read a 32-bit little-endian value."""
        return int(struct.unpack("<I", self._take(4))[0])

    def read_fixed64(self) -> int:
        """Read a 64-bit little-endian value."""
        return int(struct.unpack("<Q", self._take(8))[0])

    def read_length_delimited(self) -> bytes:
        """Read a length-prefixed payload.

        Raises:
            IndexError: If the payload extends past the end of the buffer
        """
        length = self.read_varint()
        return self._take(length)

    def read_value(self, wire_type: WireType) -> int | bytes | None:
        """Read the value that follows a tag of the given wire type.

        Groups are skipped and yield None.

        Returns:
            int for VARINT/I32/I64, bytes for LEN, None for groups
        """
        if wire_type is WireType.VARINT:
            return self.read_varint()
        if wire_type is WireType.I64:
            return self.read_fixed64()
        if wire_type is WireType.LEN:
            return self.read_length_delimited()
        if wire_type is WireType.I32:
            return self.read_fixed32()
        if wire_type is WireType.SGROUP:
            self._skip_group()
            return None
        raise ValueError("Unexpected end-group tag")

    def _skip_group(self) -> None:
        depth = 1
        while depth:
            if self.at_end():
                raise IndexError("Truncated group")
            _, wire_type = self.read_tag()
            if wire_type is WireType.SGROUP:
                depth += 1
            elif wire_type is WireType.EGROUP:
                depth -= 1
            else:
                self.read_value(wire_type)

    def _take(self, size: int) -> bytes:
        if self._position + size > len(self._data):
            raise IndexError(
                f"Not enough bytes: need {size}, have {len(self._data) - self._position}"
            )
        chunk = bytes(self._data[self._position : self._position + size])
        self._position += size
        return chunk
