"""Low-level primitives shared by the binary and XML codecs.

Binary layout:
    Every field is a TLV record ``u8 tag, u32 size, payload``.  Block
    records are ``u8 type, u32 size`` followed by their field records;
    the size is back-patched once the payload is written and counts the
    bytes after the size word.  All values are little-endian; floats are
    IEEE-754 doubles.

XML attributes:
    Values are written with C ``printf`` formats (``%f``, ``%i``,
    ``%X``) and read back with ``sscanf``-like prefix scanning, so a
    value that does not scan is ignored instead of failing the load.
"""

from __future__ import annotations

import re
import struct
from io import StringIO
from typing import TYPE_CHECKING, Iterable, Sequence

from gcam.constants import COMMENT_MAX, TAG_COMMENT, TAG_FLAGS
from gcam.errors import CodecError

if TYPE_CHECKING:
    from gcam.blocks.base import Block

_U8 = struct.Struct("<B")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")
_F64 = struct.Struct("<d")

XML_BASE_INDENT = 2


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------


def encode_cstring(text: str, limit: int) -> bytes:
    """Encode *text* as UTF-8, truncated to ``limit - 1`` bytes, NUL terminated."""
    raw = text.encode("utf-8")[: limit - 1]
    raw = raw.decode("utf-8", errors="ignore").encode("utf-8")
    return raw + b"\x00"


def decode_cstring(raw: bytes) -> str:
    """Decode bytes up to the first NUL."""
    end = raw.find(b"\x00")
    if end >= 0:
        raw = raw[:end]
    return raw.decode("utf-8", errors="replace")


def clip_text(text: str, limit: int) -> str:
    """Truncate *text* so it fits a ``limit``-byte NUL-terminated buffer."""
    return decode_cstring(encode_cstring(text, limit))


# ---------------------------------------------------------------------------
# Binary writer
# ---------------------------------------------------------------------------


class BinaryWriter:
    """Append-only little-endian buffer with back-patched size words."""

    def __init__(self) -> None:
        self._buf = bytearray()

    @property
    def pos(self) -> int:
        return len(self._buf)

    def getvalue(self) -> bytes:
        return bytes(self._buf)

    # -- scalars --------------------------------------------------------

    def raw(self, data: bytes) -> None:
        self._buf += data

    def u8(self, value: int) -> None:
        self._buf += _U8.pack(int(value) & 0xFF)

    def u16(self, value: int) -> None:
        self._buf += _U16.pack(int(value) & 0xFFFF)

    def u32(self, value: int) -> None:
        self._buf += _U32.pack(int(value) & 0xFFFFFFFF)

    def placeholder(self) -> int:
        """Write a zero ``u32`` and return its offset for :meth:`patch`."""
        marker = self.pos
        self.u32(0)
        return marker

    def patch(self, marker: int) -> None:
        """Store the number of bytes written after *marker*'s size word."""
        size = self.pos - marker - _U32.size
        _U32.pack_into(self._buf, marker, size)

    # -- TLV records -----------------------------------------------------

    def tag_raw(self, tag: int, payload: bytes) -> None:
        self.u8(tag)
        self.u32(len(payload))
        self.raw(payload)

    def tag_u8(self, tag: int, value: int) -> None:
        self.tag_raw(tag, _U8.pack(int(value) & 0xFF))

    def tag_u32(self, tag: int, value: int) -> None:
        self.tag_raw(tag, _U32.pack(int(value) & 0xFFFFFFFF))

    def tag_i32s(self, tag: int, values: Sequence[int]) -> None:
        self.tag_raw(tag, b"".join(_I32.pack(int(v)) for v in values))

    def tag_f64(self, tag: int, value: float) -> None:
        self.tag_raw(tag, _F64.pack(float(value)))

    def tag_f64s(self, tag: int, values: Iterable[float]) -> None:
        self.tag_raw(tag, b"".join(_F64.pack(float(v)) for v in values))

    def tag_str(self, tag: int, text: str, limit: int) -> None:
        """String record sized ``strlen + 1``."""
        self.tag_raw(tag, encode_cstring(text, limit))

    def tag_fixed_str(self, tag: int, text: str, size: int) -> None:
        """String record padded with NULs to exactly *size* bytes."""
        self.tag_raw(tag, encode_cstring(text, size).ljust(size, b"\x00"))

    # -- block records ----------------------------------------------------

    def block_record(self, block: "Block") -> None:
        """Write ``type, size, COMMENT, FLAGS`` and the block's own fields."""
        self.u8(int(block.TYPE))
        marker = self.placeholder()
        self.tag_str(TAG_COMMENT, block.comment, COMMENT_MAX)
        self.tag_u8(TAG_FLAGS, block.flags)
        block.save_binary(self)
        self.patch(marker)


# ---------------------------------------------------------------------------
# Binary reader
# ---------------------------------------------------------------------------


class BinaryReader:
    """Bounds-checked cursor over an in-memory file image.

    Every read past the end of the buffer raises :class:`CodecError`.
    """

    def __init__(self, data: bytes) -> None:
        self._data = memoryview(bytes(data))
        self.pos = 0

    def __len__(self) -> int:
        return len(self._data)

    def _take(self, size: int) -> bytes:
        if size < 0 or self.pos + size > len(self._data):
            raise CodecError(
                f"read of {size} bytes at offset {self.pos} runs past end of "
                f"data ({len(self._data)} bytes)"
            )
        chunk = self._data[self.pos:self.pos + size].tobytes()
        self.pos += size
        return chunk

    def seek(self, pos: int) -> None:
        if not 0 <= pos <= len(self._data):
            raise CodecError(f"seek to {pos} outside data ({len(self._data)} bytes)")
        self.pos = pos

    def skip(self, size: int) -> None:
        self._take(size)

    def read_bytes(self, size: int) -> bytes:
        return self._take(size)

    def u8(self) -> int:
        return _U8.unpack(self._take(1))[0]

    def u16(self) -> int:
        return _U16.unpack(self._take(2))[0]

    def u32(self) -> int:
        return _U32.unpack(self._take(4))[0]

    def f64(self) -> float:
        return _F64.unpack(self._take(8))[0]

    # -- sized payload readers ----------------------------------------

    @staticmethod
    def _expect(tag: int, dsize: int, size: int) -> None:
        if dsize != size:
            raise CodecError(
                f"field 0x{tag:02X} declares {dsize} bytes, expected {size}"
            )

    def read_u8(self, tag: int, dsize: int) -> int:
        self._expect(tag, dsize, 1)
        return self.u8()

    def read_u32(self, tag: int, dsize: int) -> int:
        self._expect(tag, dsize, 4)
        return self.u32()

    def read_i32s(self, tag: int, dsize: int, count: int) -> tuple[int, ...]:
        self._expect(tag, dsize, 4 * count)
        return tuple(_I32.unpack(self._take(4))[0] for _ in range(count))

    def read_f64(self, tag: int, dsize: int) -> float:
        self._expect(tag, dsize, 8)
        return self.f64()

    def read_f64s(self, tag: int, dsize: int, count: int) -> tuple[float, ...]:
        self._expect(tag, dsize, 8 * count)
        return struct.unpack(f"<{count}d", self._take(8 * count))

    def read_str(self, dsize: int) -> str:
        return decode_cstring(self._take(dsize))

    def records(self, size: int) -> Iterable[tuple[int, int]]:
        """Yield ``(tag, dsize)`` until *size* bytes from here are consumed.

        The consumer must read or skip each payload before advancing.
        """
        start = self.pos
        if start + size > len(self._data):
            raise CodecError(
                f"record of {size} bytes at offset {start} runs past end of data"
            )
        while self.pos - start < size:
            tag = self.u8()
            dsize = self.u32()
            yield tag, dsize
        if self.pos - start != size:
            raise CodecError(
                f"record at offset {start} overran its declared size {size} "
                f"by {self.pos - start - size} bytes"
            )


# ---------------------------------------------------------------------------
# XML attribute writer
# ---------------------------------------------------------------------------

_ESCAPES = {
    "<": "&lt;",
    ">": "&gt;",
    "&": "&amp;",
    "'": "&apos;",
    '"': "&quot;",
    # parsers normalise raw whitespace in attribute values
    "\n": "&#10;",
    "\r": "&#13;",
    "\t": "&#9;",
}


def xml_escape(text: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in text)


class XmlWriter:
    """Text sink with the attribute formats of the project file."""

    def __init__(self) -> None:
        self._buf = StringIO()

    def getvalue(self) -> str:
        return self._buf.getvalue()

    def write(self, text: str) -> None:
        self._buf.write(text)

    def indent(self, depth: int) -> None:
        self._buf.write("\t" * depth)

    def head(self, tag: str, depth: int) -> None:
        self.indent(depth)
        self._buf.write(f"<{tag}")

    def open_tail(self) -> None:
        self._buf.write(">\n")

    def leaf_tail(self) -> None:
        self._buf.write(" />\n")

    def end_tag(self, tag: str, depth: int) -> None:
        self.indent(depth)
        self._buf.write(f"</{tag}>\n")

    def attr_str(self, name: str, value: str) -> None:
        self._buf.write(f' {name}="{xml_escape(value)}"')

    def attr_int(self, name: str, value: int) -> None:
        self._buf.write(f' {name}="{int(value)}"')

    def attr_ints(self, name: str, values: Sequence[int]) -> None:
        joined = " ".join(str(int(v)) for v in values)
        self._buf.write(f' {name}="{joined}"')

    def attr_hex(self, name: str, value: int) -> None:
        self._buf.write(f' {name}="{int(value) & 0xFFFFFFFF:X}"')

    def attr_flt(self, name: str, value: float) -> None:
        self._buf.write(f' {name}="{float(value):f}"')

    def attr_flts(self, name: str, values: Sequence[float]) -> None:
        joined = " ".join(f"{float(v):f}" for v in values)
        self._buf.write(f' {name}="{joined}"')


# ---------------------------------------------------------------------------
# XML attribute scanning
# ---------------------------------------------------------------------------

_INT_RE = re.compile(r"\s*([+-]?)(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)")
_HEX_RE = re.compile(r"\s*([+-]?)(?:0[xX])?([0-9a-fA-F]+)")
_FLT_RE = re.compile(
    r"\s*([+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf(?:inity)?|nan))",
    re.IGNORECASE,
)


def _scan(value: str, pattern: re.Pattern[str], count: int) -> list[re.Match[str]] | None:
    matches = []
    pos = 0
    for _ in range(count):
        match = pattern.match(value, pos)
        if match is None:
            return None
        matches.append(match)
        pos = match.end()
    return matches


def _to_int(match: re.Match[str]) -> int:
    sign, digits = match.group(1), match.group(2)
    if digits[:2] in ("0x", "0X"):
        number = int(digits, 16)
    elif len(digits) > 1 and digits[0] == "0":
        number = int(digits, 8)
    else:
        number = int(digits)
    return -number if sign == "-" else number


def scan_ints(value: str, count: int) -> tuple[int, ...] | None:
    """``sscanf("%i %i ...")``: decimal, ``0x`` hex or leading-zero octal."""
    matches = _scan(value, _INT_RE, count)
    if matches is None:
        return None
    return tuple(_to_int(m) for m in matches)


def scan_int(value: str) -> int | None:
    result = scan_ints(value, 1)
    return None if result is None else result[0]


def scan_hex(value: str) -> int | None:
    """``sscanf("%X")``."""
    matches = _scan(value, _HEX_RE, 1)
    if matches is None:
        return None
    number = int(matches[0].group(2), 16)
    return (-number if matches[0].group(1) == "-" else number) & 0xFFFFFFFF


def scan_floats(value: str, count: int) -> tuple[float, ...] | None:
    """``sscanf("%lf %lf ...")``."""
    matches = _scan(value, _FLT_RE, count)
    if matches is None:
        return None
    return tuple(float(m.group(1)) for m in matches)


def scan_float(value: str) -> float | None:
    result = scan_floats(value, 1)
    return None if result is None else result[0]


def scan_float_stream(text: str) -> list[float]:
    """Every float in a whitespace separated run of text."""
    values = []
    pos = 0
    while True:
        match = _FLT_RE.match(text, pos)
        if match is None:
            break
        values.append(float(match.group(1)))
        pos = match.end()
    return values
