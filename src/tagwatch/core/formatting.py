"""
Display formatting for raw values pushed by transport drivers.

The conversion is table driven on a PLC style type tag (case-insensitive):

    BOOL/BOOLEAN            -> "True" / "False"
    SINT .. ULINT           -> decimal integer
    REAL/LREAL              -> shortest round-trip decimal
    TIME/LTIME              -> "T#1M 1S 234MS"
    BYTE/WORD/DWORD/LWORD   -> "(5) Hex: 00_05 | Dec: 0000_0000_0000_0101"
    DATE, DT, TOD           -> "D#2024-04-26", "DT#2024-04-26 10:00:00", "TOD#10:00:00"
    WSTRING                 -> UTF-16LE fixed buffer decoded to text
    STRING, unknown, none   -> passed through (bytes decoded as UTF-8)

A raw value that does not fit its declared type never fails the event: the
formatter logs it and falls back to the pass-through rule.
"""
import datetime
import decimal
import logging
import math
import re
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from tagwatch.core.exceptions import FormatError

logger = logging.getLogger(__name__)

NULL_TEXT = "<Null>"
DEFAULT_STRING_SIZE = 80

_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)
_SIZE_IN_TAG = re.compile(r"[\(\[]\s*(\d+)\s*[\)\]]")


class TypeFamily(Enum):
    BOOLEAN = "Boolean"
    INTEGER = "Integer"
    FLOAT = "Floating Point"
    DURATION = "Duration"
    BITFIELD = "Bit Field"
    DATE = "Date"
    DATE_AND_TIME = "Date and Time"
    TIME_OF_DAY = "Time of Day"
    STRING = "String"
    WSTRING = "Wide String"
    FALLBACK = "Fallback"


@dataclass(frozen=True)
class TypeInfo:
    family: TypeFamily
    width: int = 0   # bits
    size: int = 0    # characters (STRING/WSTRING)


_TYPE_TABLE = {
    "BOOL": (TypeFamily.BOOLEAN, 8),
    "BOOLEAN": (TypeFamily.BOOLEAN, 8),

    "SINT": (TypeFamily.INTEGER, 8),
    "USINT": (TypeFamily.INTEGER, 8),
    "INT": (TypeFamily.INTEGER, 16),
    "UINT": (TypeFamily.INTEGER, 16),
    "DINT": (TypeFamily.INTEGER, 32),
    "UDINT": (TypeFamily.INTEGER, 32),
    "LINT": (TypeFamily.INTEGER, 64),
    "ULINT": (TypeFamily.INTEGER, 64),

    "REAL": (TypeFamily.FLOAT, 32),
    "LREAL": (TypeFamily.FLOAT, 64),

    "TIME": (TypeFamily.DURATION, 32),   # milliseconds
    "LTIME": (TypeFamily.DURATION, 64),  # nanoseconds

    "BYTE": (TypeFamily.BITFIELD, 8),
    "WORD": (TypeFamily.BITFIELD, 16),
    "DWORD": (TypeFamily.BITFIELD, 32),
    "LWORD": (TypeFamily.BITFIELD, 64),

    "DATE": (TypeFamily.DATE, 32),                 # seconds, only the day is shown
    "DATE_AND_TIME": (TypeFamily.DATE_AND_TIME, 32),
    "DT": (TypeFamily.DATE_AND_TIME, 32),
    "TIME_OF_DAY": (TypeFamily.TIME_OF_DAY, 32),   # milliseconds
    "TOD": (TypeFamily.TIME_OF_DAY, 32),
}


def resolve_type(type_tag: Optional[str], size: int = 0) -> TypeInfo:
    """Map a type tag such as "word" or "WSTRING(40)" to its formatting family."""
    if not type_tag:
        return TypeInfo(TypeFamily.FALLBACK)

    tag = type_tag.strip().upper()
    if tag in _TYPE_TABLE:
        family, width = _TYPE_TABLE[tag]
        return TypeInfo(family, width)

    if tag.startswith("WSTRING") or tag.startswith("STRING"):
        family = TypeFamily.WSTRING if tag.startswith("W") else TypeFamily.STRING
        if not size:
            match = _SIZE_IN_TAG.search(tag)
            size = int(match.group(1)) if match else DEFAULT_STRING_SIZE
        return TypeInfo(family, 0, size)

    return TypeInfo(TypeFamily.FALLBACK)


def format_value(raw: Any, type_tag: Optional[str] = None, size: int = 0) -> str:
    """Format a raw driver value for display. Never raises."""
    info = resolve_type(type_tag, size)
    try:
        return _FORMATTERS[info.family](raw, info)
    except (FormatError, ValueError, TypeError, OverflowError, struct.error, decimal.InvalidOperation) as e:
        logger.debug(f"Value {raw!r} does not fit type {type_tag!r}, passing through: {e}")
        return format_fallback(raw)


def format_fallback(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return bytes(raw).decode("utf-8", errors="replace")
    if isinstance(raw, float):
        return float_text(raw)
    return str(raw)


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------

def _as_int(raw: Any) -> int:
    if isinstance(raw, bool):
        return int(raw)
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        if not raw.is_integer():
            raise FormatError(f"{raw!r} is not an integral value")
        return int(raw)
    if isinstance(raw, str):
        return int(raw.strip(), 10)
    if isinstance(raw, (bytes, bytearray)):
        return int.from_bytes(raw, "little")
    raise FormatError(f"Cannot interpret {type(raw).__name__} as integer")


def _as_float(raw: Any, width: int) -> float:
    if isinstance(raw, bool):
        raise FormatError("Boolean is not a floating point value")
    if isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, str):
        return float(raw.strip())
    if isinstance(raw, (bytes, bytearray)):
        return struct.unpack("<f" if width == 32 else "<d", bytes(raw))[0]
    raise FormatError(f"Cannot interpret {type(raw).__name__} as float")


def _as_bytes(raw: Any) -> bytes:
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return bytes(raw)
    if isinstance(raw, (list, tuple)):
        return bytes(raw)
    raise FormatError(f"Cannot interpret {type(raw).__name__} as byte buffer")


def _to_single(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


# ---------------------------------------------------------------------------
# Text renderers
# ---------------------------------------------------------------------------

def float_text(value: float, width: int = 64) -> str:
    """Shortest decimal text that reads back to the same REAL/LREAL value."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"

    if width == 32:
        single = _to_single(value)
        for precision in range(1, 10):
            digits = "%.*e" % (precision - 1, single)
            if _to_single(float(digits)) == single:
                break
    else:
        digits = repr(value)

    number = decimal.Decimal(digits).normalize()
    if number.is_zero():
        return "0"

    exponent = number.adjusted()
    if -5 < exponent < 15:
        return format(number, "f")

    sign, digit_tuple, _ = number.as_tuple()
    mantissa = str(digit_tuple[0])
    if len(digit_tuple) > 1:
        mantissa += "." + "".join(str(d) for d in digit_tuple[1:])
    return f"{'-' if sign else ''}{mantissa}E{exponent:+03d}"


def duration_text(milliseconds: int) -> str:
    """Render milliseconds as T#..., starting at the largest populated unit."""
    sign = "-" if milliseconds < 0 else ""
    seconds, millis = divmod(abs(milliseconds), 1000)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)

    units = [(days, "D"), (hours, "H"), (minutes, "M"), (seconds, "S")]
    start = next((i for i, (amount, _) in enumerate(units) if amount), len(units))
    parts = [f"{amount}{unit}" for amount, unit in units[start:]]
    parts.append(f"{millis}MS")
    return f"T#{sign}" + " ".join(parts)


def _group(text: str, n: int) -> str:
    return "_".join(text[i:i + n] for i in range(0, len(text), n))


def bitfield_text(value: int, width: int) -> str:
    if value < 0 or value >= 1 << width:
        raise FormatError(f"{value} does not fit in {width} bits")
    hex_text = _group(format(value, f"0{width // 4}x"), 2)
    bin_text = _group(format(value, f"0{width}b"), 4)
    return f"({value}) Hex: {hex_text} | Dec: {bin_text}"


def _epoch_datetime(raw: Any, divisor: int = 1) -> datetime.datetime:
    if isinstance(raw, datetime.datetime):
        return raw
    return _EPOCH + datetime.timedelta(seconds=_as_int(raw) // divisor)


# ---------------------------------------------------------------------------
# Family formatters
# ---------------------------------------------------------------------------

def _format_boolean(raw, info):
    if raw is None:
        return NULL_TEXT
    if isinstance(raw, str):
        text = raw.strip().lower()
        if text in ("true", "1"):
            return "True"
        if text in ("false", "0"):
            return "False"
        raise FormatError(f"{raw!r} is not a boolean")
    if isinstance(raw, (bytes, bytearray)):
        if len(raw) != 1:
            raise FormatError("Boolean buffer must be one byte")
        return str(bool(raw[0]))
    if isinstance(raw, (bool, int)):
        return str(bool(raw))
    raise FormatError(f"Cannot interpret {type(raw).__name__} as boolean")


def _format_integer(raw, info):
    if raw is None:
        return NULL_TEXT
    return str(_as_int(raw))


def _format_float(raw, info):
    if raw is None:
        return NULL_TEXT
    return float_text(_as_float(raw, info.width), info.width)


def _format_duration(raw, info):
    if raw is None:
        return NULL_TEXT
    if isinstance(raw, datetime.timedelta):
        return duration_text(raw // datetime.timedelta(milliseconds=1))
    value = _as_int(raw)
    if info.width == 64:
        # LTIME carries nanoseconds
        value = (-1 if value < 0 else 1) * (abs(value) // 1_000_000)
    return duration_text(value)


def _format_bitfield(raw, info):
    if raw is None:
        return NULL_TEXT
    return bitfield_text(_as_int(raw), info.width)


def _format_date(raw, info):
    if raw is None:
        return NULL_TEXT
    if isinstance(raw, datetime.date) and not isinstance(raw, datetime.datetime):
        return raw.strftime("D#%Y-%m-%d")
    return _epoch_datetime(raw).strftime("D#%Y-%m-%d")


def _format_date_and_time(raw, info):
    if raw is None:
        return NULL_TEXT
    return _epoch_datetime(raw).strftime("DT#%Y-%m-%d %H:%M:%S")


def _format_time_of_day(raw, info):
    if raw is None:
        return NULL_TEXT
    if isinstance(raw, datetime.time):
        return raw.strftime("TOD#%H:%M:%S")
    return _epoch_datetime(raw, divisor=1000).strftime("TOD#%H:%M:%S")


def _format_string(raw, info):
    if raw is None:
        return NULL_TEXT
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return bytes(raw).split(b"\x00", 1)[0].decode("utf-8", errors="replace")
    return format_fallback(raw)


def _format_wstring(raw, info):
    if raw is None:
        return NULL_TEXT
    if isinstance(raw, str):
        return raw.split("\x00", 1)[0]
    buffer = _as_bytes(raw)
    if len(buffer) % 2:
        buffer = buffer[:-1]
    return buffer.decode("utf-16-le").split("\x00", 1)[0]


def _format_passthrough(raw, info):
    return format_fallback(raw)


_FORMATTERS = {
    TypeFamily.BOOLEAN: _format_boolean,
    TypeFamily.INTEGER: _format_integer,
    TypeFamily.FLOAT: _format_float,
    TypeFamily.DURATION: _format_duration,
    TypeFamily.BITFIELD: _format_bitfield,
    TypeFamily.DATE: _format_date,
    TypeFamily.DATE_AND_TIME: _format_date_and_time,
    TypeFamily.TIME_OF_DAY: _format_time_of_day,
    TypeFamily.STRING: _format_string,
    TypeFamily.WSTRING: _format_wstring,
    TypeFamily.FALLBACK: _format_passthrough,
}
