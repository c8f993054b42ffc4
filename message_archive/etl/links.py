"""
URL discovery and cleanup for shared links.

URLs come from the plain text column and from two binary columns
(attributedBody, payload_data). Binary columns are decoded lossily, so a
URL found there is often glued to serialization bytes on either side.
clean_url() trims that noise with a handful of empirically chosen rules;
all of them are heuristics, not a URL grammar.

Cleaning rules, applied in order:
    1. Drop anything before the scheme. Without a scheme, drop leading
       junk up to the first ASCII letter within the first 10 characters.
    2. Drop the whole query string when it carries archive markers or is
       longer than max_query_length.
    3. Keep at most max_path_segments path segments.
    4. Trim trailing characters other than alphanumerics, '/', '-', '_', '.'.
"""

import re
from typing import Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit
import logging

from message_archive.config import Config
from message_archive.models import LinkCategory

logger = logging.getLogger(__name__)

# Scheme-prefixed or www-prefixed URLs
URL_PATTERN = re.compile(r"https?://[^\s<>\"]+|www\.[^\s<>\"]+", re.IGNORECASE)

# Bare domains; only used on binary columns, so restricted to common TLDs
BARE_DOMAIN_PATTERN = re.compile(
    r"\b[a-zA-Z0-9.-]+\.(?:com|net|org|edu|gov|io|co|in|me)\b",
    re.IGNORECASE,
)

# Loose phone-number pattern for optional entity extraction
PHONE_PATTERN = re.compile(r"(?<!\w)(?:\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b")

SCHEME_PATTERN = re.compile(r"https?://", re.IGNORECASE)

# Replacement characters and control bytes never belong to a URL; in a
# decoded blob they mark where the serialization resumes
BLOB_URL_END_PATTERN = re.compile(r"[\ufffd\x00-\x1f\x7f]")

# Substrings that only show up in a query string when it is really
# serialization noise from the archive format
QUERY_NOISE_MARKERS = (
    "%EF%BF%BD",
    "\ufffd",
    "__kIM",
    "NSNumber",
    "NSObject",
    "$classname",
    "classnameX",
)

LEADING_JUNK_WINDOW = 10

_TRAILING_KEEP = frozenset("/-_.")

# Substring matches, first hit wins
_CATEGORY_DOMAINS: Sequence[Tuple[LinkCategory, Tuple[str, ...]]] = (
    (LinkCategory.YOUTUBE, ("youtube.com", "youtu.be")),
    (LinkCategory.SPOTIFY, ("spotify.com",)),
    (LinkCategory.INSTAGRAM, ("instagram.com",)),
    (LinkCategory.TWITTER, ("twitter.com",)),
    (LinkCategory.REDDIT, ("reddit.com",)),
)


def _strip_leading_junk(url: str) -> str:
    match = SCHEME_PATTERN.search(url)
    if match:
        return url[match.start() :]

    for i, char in enumerate(url[:LEADING_JUNK_WINDOW]):
        if char.isascii() and char.isalpha():
            return url[i:]
    return url


def _strip_noisy_query(url: str, max_query_length: int) -> str:
    query_idx = url.find("?")
    if query_idx <= 0:
        return url

    query = url[query_idx:]
    if len(query) > max_query_length or any(marker in query for marker in QUERY_NOISE_MARKERS):
        return url[:query_idx]
    return url


def _path_start(url: str) -> int:
    """Index of the first '/' after the host, or -1 when there is no path."""
    scheme_end = url.find("://")
    host_start = scheme_end + 3 if scheme_end != -1 else 0
    return url.find("/", host_start)


def truncate_path(url: str, max_segments: int) -> str:
    """
    Keep at most max_segments path segments, ending on the segment's slash.

    >>> truncate_path("https://example.com/a/b/c/d/e/f/g", 5)
    'https://example.com/a/b/c/d/e/'
    """
    start = _path_start(url)
    if start == -1:
        return url

    slashes = 0
    for i in range(start, len(url)):
        if url[i] == "/":
            slashes += 1
            if slashes == max_segments + 1:
                return url[: i + 1]
    return url


def _trim_trailing(url: str) -> str:
    end = len(url)
    while end > 0:
        char = url[end - 1]
        if char.isalnum() or char in _TRAILING_KEEP:
            break
        end -= 1
    return url[:end]


def clean_url(
    url: str,
    *,
    max_path_segments: int = Config.MAX_URL_PATH_SEGMENTS,
    max_query_length: int = Config.MAX_QUERY_LENGTH,
) -> str:
    """
    Strip serialization noise from a URL candidate.

    Cleaning an already clean URL returns it unchanged.

    Args:
        url: Raw URL candidate.
        max_path_segments: Path segments kept after the host.
        max_query_length: Longest query string (including '?') that is kept.

    Returns:
        Cleaned URL; may be empty when nothing URL-like is left.

    Examples:
        >>> clean_url("\\x01\\x02https://example.com/watch?v=abc")
        'https://example.com/watch?v=abc'
        >>> clean_url("https://example.com/a/b/c/d/e/f/g")
        'https://example.com/a/b/c/d/e/'
    """
    if not url:
        return url

    cleaned = _strip_leading_junk(url)
    cleaned = _strip_noisy_query(cleaned, max_query_length)
    cleaned = truncate_path(cleaned, max_path_segments)
    return _trim_trailing(cleaned)


def extract_domain(url: str) -> str:
    """
    Extract the host of a URL candidate.

    The candidate is cleaned first and given an https:// scheme if it has
    none. When parsing fails the input is returned unchanged so the record
    still has something to show.
    """
    cleaned = clean_url(url)
    if not SCHEME_PATTERN.match(cleaned):
        cleaned = "https://" + cleaned

    try:
        host = urlsplit(cleaned).hostname
    except ValueError as e:
        logger.debug(f"Could not parse domain of {url!r}: {e}")
        return url
    return host or url


def categorize_url(domain: str) -> LinkCategory:
    """
    Assign a link category by case-insensitive domain match.

    >>> categorize_url("m.youtube.com")
    <LinkCategory.YOUTUBE: 'YouTube'>
    """
    domain = (domain or "").lower()
    for category, needles in _CATEGORY_DOMAINS:
        if any(needle in domain for needle in needles):
            return category

    # "x.com" is too short for a substring match (netflix.com, dropbox.com)
    if domain == "x.com" or domain.endswith(".x.com"):
        return LinkCategory.TWITTER
    return LinkCategory.OTHER


def dedup_key(url: str, slashes: int = Config.DEDUP_KEY_SLASHES) -> str:
    """
    Coarse grouping key for near-duplicate shares.

    The URL is cut after its n-th '/' (counting the two scheme slashes),
    so links that only differ deeper in the path share a key.

    >>> dedup_key("https://example.com/a/b/c/d")
    'https://example.com/a/b/'
    """
    if not url:
        return url
    count = 0
    for i, char in enumerate(url):
        if char == "/":
            count += 1
            if count == slashes:
                return url[: i + 1]
    return url


def find_urls(text: Optional[str]) -> List[str]:
    """Scheme- or www-prefixed URLs in free text, in order of appearance."""
    if not text:
        return []
    return [m.group(0) for m in URL_PATTERN.finditer(text)]


def find_blob_urls(text: Optional[str]) -> List[str]:
    """
    URL candidates in a lossily decoded binary column.

    Prefixed URLs are cut at the first replacement character or control
    byte. Besides prefixed URLs, bare domains with a whitelisted TLD are
    accepted, except where they sit inside a prefixed URL already found.

    >>> find_blob_urls("https://example.com/watch/abc\\ufffd\\ufffd\\x02iI")
    ['https://example.com/watch/abc']
    """
    if not text:
        return []

    candidates = []
    spans = []
    for match in URL_PATTERN.finditer(text):
        candidates.append(BLOB_URL_END_PATTERN.split(match.group(0), maxsplit=1)[0])
        spans.append(match.span())

    for match in BARE_DOMAIN_PATTERN.finditer(text):
        start, end = match.span()
        if any(start < span_end and end > span_start for span_start, span_end in spans):
            continue
        candidates.append(match.group(0))
    return candidates


def find_phone_numbers(text: Optional[str]) -> List[str]:
    """Phone-number-like substrings in free text."""
    if not text:
        return []
    return [m.group(0).strip() for m in PHONE_PATTERN.finditer(text)]


def unique_casefold(values: Iterable[str]) -> List[str]:
    """Drop case-insensitive duplicates, keeping the first spelling seen."""
    seen = set()
    result = []
    for value in values:
        key = value.casefold()
        if key in seen:
            continue
        seen.add(key)
        result.append(value)
    return result


def clean_urls_in_text(text: str) -> str:
    """Replace every URL inside a piece of text with its cleaned form."""
    return URL_PATTERN.sub(lambda m: clean_url(m.group(0)), text)
