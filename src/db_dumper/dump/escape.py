"""SQL literal escaping for dumped values.

Values are handled as raw bytes so binary columns survive unchanged; only
the bytes MySQL treats specially inside a quoted string are escaped.

Usage:
    from db_dumper.dump.escape import quote_value, to_raw

    quote_value(to_raw("O'Brien"), "varchar")   # b"'O\\'Brien'"
    quote_value(to_raw(42), "int")              # b"42"
    quote_value(None, "int")                    # b"NULL"
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any

# Declared column types emitted verbatim (unquoted)
NUMERIC_TYPES = frozenset({"BIGINT", "INT", "DECIMAL", "FLOAT"})

NULL = b"NULL"

# byte -> byte written after the backslash
_ESCAPES = {
    ord("\r"): ord("\r"),
    ord("\n"): ord("\n"),
    ord("\\"): ord("\\"),
    ord("'"): ord("'"),
    ord('"'): ord('"'),
    0x1A: ord("Z"),
}
_BACKSLASH = ord("\\")


def escape(raw: bytes) -> bytes:
    """Backslash-escape the bytes that are special inside a quoted literal.

    CR, LF, backslash, single and double quote are escaped with a backslash
    followed by the escaped byte itself (a raw CR or LF stays raw after the
    backslash); SUB (0x1A) becomes ``\\Z``.  All other bytes pass through
    unchanged.

    Args:
        raw: Column value in its text representation.

    Returns:
        Escaped bytes, without surrounding quotes.
    """
    if not raw:
        return b""

    out = bytearray(len(raw) * 2)
    j = 0
    for byte in raw:
        replacement = _ESCAPES.get(byte)
        if replacement is None:
            out[j] = byte
            j += 1
        else:
            out[j] = _BACKSLASH
            out[j + 1] = replacement
            j += 2
    del out[j:]
    return bytes(out)


def is_numeric_type(data_type: str) -> bool:
    return data_type.strip().upper() in NUMERIC_TYPES


def quote_value(raw: bytes | None, data_type: str) -> bytes:
    """Render one column value as a SQL literal.

    Args:
        raw: Value bytes, or ``None`` for SQL NULL.
        data_type: Declared column type (e.g. ``"int"``, ``"varchar"``).

    Returns:
        ``NULL``, the verbatim number, or a single-quoted escaped string.
    """
    if raw is None:
        return NULL
    if is_numeric_type(data_type):
        return raw
    return b"'" + escape(raw) + b"'"


def quote_identifier(name: str) -> str:
    """Wrap a table or column name in backticks (no interior escaping)."""
    return f"`{name}`"


def _format_timedelta(value: timedelta) -> str:
    # MySQL TIME columns come back from the driver as timedelta
    sign = "-" if value < timedelta(0) else ""
    value = abs(value)
    hours, remainder = divmod(value.days * 86400 + value.seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    text = f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}"
    if value.microseconds:
        text += f".{value.microseconds:06d}"
    return text


def to_raw(value: Any) -> bytes | None:
    """Convert a driver-decoded value back to its MySQL text form.

    Args:
        value: Value as returned by the database driver.

    Returns:
        UTF-8 bytes of the value's text representation, the value itself if
        it is already bytes, or ``None`` for SQL NULL.
    """
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, bool):
        return b"1" if value else b"0"
    if isinstance(value, Decimal):
        return format(value, "f").encode("ascii")
    if isinstance(value, datetime):
        return value.isoformat(sep=" ").encode("ascii")
    if isinstance(value, (date, time)):
        return value.isoformat().encode("ascii")
    if isinstance(value, timedelta):
        return _format_timedelta(value).encode("ascii")
    if isinstance(value, (set, frozenset)):
        return ",".join(sorted(str(v) for v in value)).encode("utf-8")
    return str(value).encode("utf-8")
