"""Result normalization — unwrap single-file zip archives before storage.

Tool results that arrive as a tagged binary value::

    {"type": "binary", "content_type": "application/zip", "data": "<base64>"}

are opened; when the archive holds exactly one file, the file replaces the
archive: parsed JSON for ``*.json`` entries, otherwise a new tagged binary
value with a generic content type. Every other case (not binary, not a
zip, several entries, corrupt data, unparsable JSON) returns the input
object untouched. ``normalize_result`` never raises.
"""

from __future__ import annotations

import base64
import binascii
import io
import json
import logging
import lzma
import zipfile
import zlib
from typing import Any

log = logging.getLogger(__name__)

ARCHIVE_CONTENT_TYPES = frozenset({
    "application/zip",
    "application/x-zip",
    "application/x-zip-compressed",
    "multipart/x-zip",
})
GENERIC_BINARY = "application/octet-stream"

_DEFAULT_MAX_BYTES = 50 * 1024 * 1024
_KEEP = object()  # sentinel: leave the archive as it is

_FALLBACK_ERRORS = (
    binascii.Error,
    ValueError,  # includes JSONDecodeError and UnicodeDecodeError
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
    NotImplementedError,  # unsupported compression method
    RuntimeError,  # encrypted entry
    OSError,
    EOFError,
    zlib.error,  # corrupt deflate stream
    lzma.LZMAError,
)


def content_type_of(value: Any) -> str | None:
    """Bare, lowercased content type of a tagged binary value, else None."""
    if not isinstance(value, dict) or value.get("type") != "binary":
        return None
    raw = value.get("content_type") or value.get("contentType")
    if not isinstance(raw, str):
        return None
    return raw.split(";", 1)[0].strip().lower()


def is_archive(value: Any) -> bool:
    return content_type_of(value) in ARCHIVE_CONTENT_TYPES and isinstance(value.get("data"), str)


def normalize_result(result: Any, *, max_bytes: int = _DEFAULT_MAX_BYTES) -> Any:
    """Return the storable form of a tool result.

    Args:
        result: Any tool result value.
        max_bytes: Entries whose uncompressed size exceeds this are left archived.
    """
    if not is_archive(result):
        return result
    try:
        unpacked = _unpack_single_entry(result["data"], max_bytes)
    except _FALLBACK_ERRORS as e:
        log.debug("Archive result left as-is (%s): %s", type(e).__name__, e)
        return result
    return result if unpacked is _KEEP else unpacked


def _unpack_single_entry(data: str, max_bytes: int) -> Any:
    # MIME-style base64 wraps lines; strip whitespace before strict decoding
    raw = base64.b64decode("".join(data.split()), validate=True)
    with zipfile.ZipFile(io.BytesIO(raw)) as archive:
        entries = [info for info in archive.infolist() if not info.is_dir()]
        if len(entries) != 1:
            log.debug("Archive has %d entries, not unwrapping", len(entries))
            return _KEEP
        entry = entries[0]
        if entry.file_size > max_bytes:
            log.debug("Archive entry %s is %d bytes, not unwrapping", entry.filename, entry.file_size)
            return _KEEP
        content = archive.read(entry)

    if entry.filename.lower().endswith(".json"):
        return json.loads(content.decode("utf-8"))
    return {
        "type": "binary",
        "content_type": GENERIC_BINARY,
        "data": base64.b64encode(content).decode("ascii"),
        "filename": entry.filename.rsplit("/", 1)[-1],
    }
