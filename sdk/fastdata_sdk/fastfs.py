"""
FastFS upload units and their Borsh wire encoding.

A file is uploaded either as one SimpleUnit (whole content) or as a
sequence of PartialUnits (1 MiB chunks). Each unit is serialized with the
Borsh layout expected by the receiving contract's __fastdata_fastfs
method:

    FastfsData = enum {
        0: Simple  { relative_path: string, content: Option<{mime_type: string, content: Vec<u8>}> }
        1: Partial { relative_path: string, offset: u32, full_size: u32,
                     mime_type: string, content_chunk: Vec<u8>, nonce: u32 }
    }

Borsh encodes integers little endian, strings and Vec<u8> as a u32
length prefix followed by the bytes, Option as a u8 flag, and an enum as
a u8 variant index.

Invariants:
    - Field order and integer widths are part of the wire contract
    - decode_unit(encode_unit(u)) == u
    - reassemble() only accepts unit sequences that cover the file exactly
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from .config import CHUNK_SIZE, MAX_FILE_SIZE
from .errors import ValidationError

SIMPLE_VARIANT = 0
PARTIAL_VARIANT = 1

_U8 = struct.Struct("<B")
_U32 = struct.Struct("<I")
_U32_MAX = 0xFFFFFFFF


@dataclass(frozen=True)
class SimpleUnit:
    """Whole-file upload. content None deletes the file."""

    relative_path: str
    mime_type: str
    content: Optional[bytes]

    @property
    def offset(self) -> int:
        return 0

    @property
    def size(self) -> int:
        return len(self.content or b"")


@dataclass(frozen=True)
class PartialUnit:
    """One chunk of a multi-part upload.

    Attributes:
        relative_path: Destination path
        offset: Chunk offset, aligned to CHUNK_SIZE
        full_size: Size of the whole file
        mime_type: MIME type of the whole file
        content_chunk: Chunk bytes (at most CHUNK_SIZE)
        nonce: Shared by every chunk of one upload
    """

    relative_path: str
    offset: int
    full_size: int
    mime_type: str
    content_chunk: bytes
    nonce: int

    @property
    def size(self) -> int:
        return len(self.content_chunk)


FastfsUnit = Union[SimpleUnit, PartialUnit]


# =============================================================================
# Encoding
# =============================================================================


def _u32(value: int, name: str) -> bytes:
    if not 0 <= value <= _U32_MAX:
        raise ValidationError(f"{name} out of u32 range: {value}", field_name=name)
    return _U32.pack(value)


def _bytes(data: bytes, name: str) -> bytes:
    return _u32(len(data), name) + data


def _string(value: str, name: str) -> bytes:
    return _bytes(value.encode("utf-8"), name)


def encode_unit(unit: FastfsUnit) -> bytes:
    """Serialize a unit to its Borsh bytes."""
    if isinstance(unit, SimpleUnit):
        out = [_U8.pack(SIMPLE_VARIANT), _string(unit.relative_path, "relative_path")]
        if unit.content is None:
            out.append(_U8.pack(0))
        else:
            out.append(_U8.pack(1))
            out.append(_string(unit.mime_type, "mime_type"))
            out.append(_bytes(unit.content, "content"))
        return b"".join(out)

    if isinstance(unit, PartialUnit):
        return b"".join(
            [
                _U8.pack(PARTIAL_VARIANT),
                _string(unit.relative_path, "relative_path"),
                _u32(unit.offset, "offset"),
                _u32(unit.full_size, "full_size"),
                _string(unit.mime_type, "mime_type"),
                _bytes(unit.content_chunk, "content_chunk"),
                _u32(unit.nonce, "nonce"),
            ]
        )

    raise TypeError(f"Not a FastFS unit: {type(unit).__name__}")


# =============================================================================
# Decoding
# =============================================================================


class _Cursor:
    def __init__(self, data: bytes) -> None:
        self.data = memoryview(data)
        self.pos = 0

    def take(self, n: int) -> bytes:
        end = self.pos + n
        if end > len(self.data):
            raise ValidationError(
                f"Truncated FastFS payload: need {n} bytes at {self.pos}, have {len(self.data) - self.pos}",
                field_name="payload",
            )
        chunk = self.data[self.pos : end].tobytes()
        self.pos = end
        return chunk

    def u8(self) -> int:
        return _U8.unpack(self.take(1))[0]

    def u32(self) -> int:
        return _U32.unpack(self.take(4))[0]

    def bytes(self) -> bytes:
        return self.take(self.u32())

    def string(self) -> str:
        return self.bytes().decode("utf-8")


def decode_unit(data: bytes) -> FastfsUnit:
    """Parse Borsh bytes back into a unit.

    Raises:
        ValidationError: On truncated input, unknown variants or trailing bytes
    """
    cur = _Cursor(data)
    variant = cur.u8()
    unit: FastfsUnit
    if variant == SIMPLE_VARIANT:
        path = cur.string()
        flag = cur.u8()
        if flag == 0:
            unit = SimpleUnit(path, "", None)
        elif flag == 1:
            mime_type = cur.string()
            unit = SimpleUnit(path, mime_type, cur.bytes())
        else:
            raise ValidationError(f"Invalid option flag: {flag}", field_name="content")
    elif variant == PARTIAL_VARIANT:
        unit = PartialUnit(
            relative_path=cur.string(),
            offset=cur.u32(),
            full_size=cur.u32(),
            mime_type=cur.string(),
            content_chunk=cur.bytes(),
            nonce=cur.u32(),
        )
    else:
        raise ValidationError(f"Unknown FastFS variant: {variant}", field_name="payload")

    if cur.pos != len(cur.data):
        raise ValidationError(
            f"Trailing bytes in FastFS payload: {len(cur.data) - cur.pos}",
            field_name="payload",
        )
    return unit


# =============================================================================
# Reassembly
# =============================================================================


def check_partial_sequence(units: Sequence[PartialUnit]) -> Tuple[str, int, int]:
    """Verify chunks of one upload: same path/size/nonce, aligned, gap-free.

    Returns:
        (relative_path, full_size, nonce)

    Raises:
        ValidationError: If the sequence is not a complete, ordered upload
    """
    if not units:
        raise ValidationError("No chunks to reassemble", field_name="units")
    first = units[0]
    if first.full_size > MAX_FILE_SIZE:
        raise ValidationError(f"full_size {first.full_size} exceeds {MAX_FILE_SIZE}", field_name="full_size")
    expected = 0
    for unit in units:
        if (unit.relative_path, unit.full_size, unit.nonce) != (
            first.relative_path,
            first.full_size,
            first.nonce,
        ):
            raise ValidationError(
                f"Chunk at offset {unit.offset} belongs to a different upload",
                field_name="nonce",
            )
        if unit.offset != expected or unit.offset % CHUNK_SIZE:
            raise ValidationError(
                f"Chunk offset {unit.offset} does not continue at {expected}",
                field_name="offset",
            )
        if unit.size > CHUNK_SIZE or unit.size == 0:
            raise ValidationError(f"Chunk at offset {unit.offset} has size {unit.size}", field_name="content_chunk")
        expected += unit.size
    if expected != first.full_size:
        raise ValidationError(
            f"Chunks cover {expected} of {first.full_size} bytes",
            field_name="full_size",
        )
    return first.relative_path, first.full_size, first.nonce


def reassemble(units: Sequence[FastfsUnit]) -> bytes:
    """Rebuild file content from its units."""
    if len(units) == 1 and isinstance(units[0], SimpleUnit):
        return units[0].content or b""
    partials: List[PartialUnit] = []
    for unit in units:
        if not isinstance(unit, PartialUnit):
            raise ValidationError("Cannot mix simple and partial units", field_name="units")
        partials.append(unit)
    check_partial_sequence(partials)
    return b"".join(u.content_chunk for u in partials)
