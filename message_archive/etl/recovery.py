"""
Text recovery from attributedBody blobs.

Newer OS versions often leave message.text empty and keep the message body
only in attributedBody, a "streamtyped" archive of an NSAttributedString.
There is no parser for that format here. Instead the string payload is
cut out between known class-name markers and scrubbed of the
serialization bytes around it.

Every rule below was derived from sample blobs and is best-effort. A blob
that does not fit the rules yields RecoveryResult.unrecoverable(), never an
exception, so one odd row can't abort an ingestion pass.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional
import logging

from message_archive.etl.links import clean_urls_in_text

logger = logging.getLogger(__name__)

STREAMTYPED_SIGNATURE = "streamtyped"

# Blobs shorter than this never hold a usable payload
MIN_BLOB_LENGTH = 20

# Payload starts after the last occurrence of the first marker found
START_MARKERS = ("NSString", "NSMutableString")

# Payload ends at the earliest of these after the start
END_MARKERS = ("NSDictionary", "NSAttribute", "NSKeyedArchiver", "__kIM")

# Archive fragments that must never leak into message text
REJECT_MARKERS = ("__kIM", "NSKeyedArchiver")

# Type/length stubs that precede the payload
_STUB_CHARS = frozenset("\x95\x84\x01\x1f\x02\x03\x04")

_LEADING_CHARS = frozenset('("{[h')

# Object replacement char for inline attachments, and the decode replacement char
_PLACEHOLDER_CHARS = frozenset("\ufffc\ufffd")

_KEPT_CONTROL_CHARS = frozenset("\n\r\t")

_LEADING_LENGTH_PREFIX = re.compile(r"^[+\-\d]{1,2}[A-Za-z\d]? ")
_LEADING_MARKER = re.compile(r"^[+ilI$@.]{1,3}(?=[A-Za-z\d\u00a0-\uffff])")
_TRAILING_MARKER = re.compile(r"[+ilI$@. ]{1,3}$")


class RecoveryStatus(str, Enum):
    RECOVERED = "recovered"
    UNRECOVERABLE = "unrecoverable"


@dataclass(frozen=True)
class RecoveryResult:
    """Outcome of a recovery attempt. `text` is non-empty exactly when recovered."""

    status: RecoveryStatus
    text: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is RecoveryStatus.RECOVERED

    @classmethod
    def recovered(cls, text: str) -> "RecoveryResult":
        return cls(RecoveryStatus.RECOVERED, text)

    @classmethod
    def unrecoverable(cls) -> "RecoveryResult":
        return cls(RecoveryStatus.UNRECOVERABLE)


def _is_control(char: str) -> bool:
    return ord(char) < 32 and char not in _KEPT_CONTROL_CHARS


def _find_payload_start(raw: str) -> int:
    for marker in START_MARKERS:
        idx = raw.rfind(marker)
        if idx != -1:
            return idx + len(marker)
    return -1


def _find_payload_end(raw: str, start: int) -> int:
    end = len(raw)
    for marker in END_MARKERS:
        idx = raw.find(marker, start)
        if idx != -1 and idx < end:
            end = idx
    return end


def _first_real_char(segment: str) -> int:
    for i, char in enumerate(segment):
        if char in _STUB_CHARS:
            continue
        if ord(char) > 128 or char.isalnum() or char in _LEADING_CHARS:
            return i
    return -1


def _scrub(segment: str) -> str:
    """
    Drop placeholder glyphs and control bytes.

    A control byte right after a non-ASCII character is a length marker
    trailing an emoji; everything from there on is archive data.
    """
    chars = []
    last_was_high = False
    for char in segment:
        if char in _PLACEHOLDER_CHARS:
            continue
        if _is_control(char):
            if last_was_high:
                break
            continue
        chars.append(char)
        last_was_high = ord(char) > 128
    return "".join(chars)


def _strip_marker_fragments(text: str) -> str:
    text = _LEADING_LENGTH_PREFIX.sub("", text)
    text = _LEADING_MARKER.sub("", text)
    text = _TRAILING_MARKER.sub("", text)

    # "+" sign byte glued to a link, sometimes with a length digit after it
    if text.startswith("+") and "http" in text:
        text = text[1:].lstrip("0123456789 ")
    return text


def recover_text(blob: Optional[bytes]) -> RecoveryResult:
    """
    Recover the plain message text from an attributedBody blob.

    Args:
        blob: Raw attributedBody value (may be None).

    Returns:
        RecoveryResult.recovered(text) with non-empty text, or
        RecoveryResult.unrecoverable().
    """
    if not blob or len(blob) < MIN_BLOB_LENGTH:
        return RecoveryResult.unrecoverable()

    try:
        raw = bytes(blob).decode("utf-8", errors="replace")
    except (TypeError, ValueError) as e:
        logger.debug(f"Could not decode attributedBody: {e}")
        return RecoveryResult.unrecoverable()

    if STREAMTYPED_SIGNATURE not in raw:
        return RecoveryResult.unrecoverable()

    start = _find_payload_start(raw)
    if start == -1:
        logger.debug("attributedBody has no string marker")
        return RecoveryResult.unrecoverable()

    segment = raw[start : _find_payload_end(raw, start)]
    first = _first_real_char(segment)
    if first == -1:
        return RecoveryResult.unrecoverable()

    text = _scrub(segment[first:]).strip()
    text = _strip_marker_fragments(text)
    text = clean_urls_in_text(text).strip()

    if not text or any(marker in text for marker in REJECT_MARKERS):
        logger.debug(f"Rejected recovered text of {len(blob)}-byte blob")
        return RecoveryResult.unrecoverable()
    return RecoveryResult.recovered(text)
