"""
Per-conversation analytics.

Computes the summary shown for one contact: who writes more, the busiest
day, the longest run of consecutive active days, the longest message on
each side, and the most used words and emojis on each side.

Tapback reactions (Loved "...", Liked "...", and so on) are stored as ordinary
messages. They would dominate word counts, so they are excluded from
everything except the sent/received totals.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
import logging

from message_archive.index_store import IndexStore
from message_archive.models import Contact, MessageRecord

logger = logging.getLogger(__name__)

REACTION_PREFIXES = (
    "loved ",
    "liked ",
    "disliked ",
    "laughed at ",
    "emphasized ",
    "questioned ",
    "reacted ",
)

# Recovery leftovers that must never be shown as "longest message"
ARCHIVE_MARKERS = ("streamtyped", "bplist00", "NSKeyedArchiver", "__kIM")

STOP_WORDS = frozenset(
    """
    the a an and or but is are was were to in of it i you that this my your
    for on with as at by it's i'm can if have has do did so up out about who
    """.split()
)

# Reaction and attachment vocabulary that is never a "favourite word"
EXCLUDED_LONG_WORDS = frozenset(
    {
        "attachment",
        "media",
        "liked",
        "loved",
        "emphasized",
        "laughed",
        "questioned",
        "image",
        "photo",
        "video",
    }
)

SHORT_WORD_MAX = 4
MIN_WORD_LENGTH = 3
TOP_N = 5

EMOJI_PATTERN = re.compile(
    "["
    "\u2702\u2705\u2708-\u270d\u270f\u2712\u2714\u2716\u271d\u2721\u2728"
    "\u2733\u2734\u2744\u2747\u274c\u274e\u2753-\u2755\u2757\u2763\u2764"
    "\u2795-\u2797\u27a1\u27b0\u27bf\u2934\u2935\u2b05-\u2b07\u2b1b\u2b1c"
    "\u2b50\u2b55\u3030\u303d\u3297\u3299"
    "\U0001f000-\U0001fbff"
    "]"
)

_WORD_SPLIT = re.compile(r"\W+")


@dataclass
class WordFrequency:
    word: str
    count: int


@dataclass
class ChatAnalytics:
    """Analytics for one conversation."""

    contact_name: str
    total_messages: int = 0
    sent_by_me: int = 0
    sent_by_them: int = 0
    most_active_day: Optional[date] = None
    most_active_day_count: int = 0
    longest_streak_days: int = 0
    streak_start: Optional[date] = None
    streak_end: Optional[date] = None
    longest_message_me: Optional[MessageRecord] = None
    longest_message_them: Optional[MessageRecord] = None
    short_words_me: List[WordFrequency] = field(default_factory=list)
    short_words_them: List[WordFrequency] = field(default_factory=list)
    long_words_me: List[WordFrequency] = field(default_factory=list)
    long_words_them: List[WordFrequency] = field(default_factory=list)
    top_emojis_me: List[WordFrequency] = field(default_factory=list)
    top_emojis_them: List[WordFrequency] = field(default_factory=list)

    @property
    def sent_by_me_percent(self) -> float:
        return self.sent_by_me / self.total_messages if self.total_messages else 0.0

    @property
    def sent_by_them_percent(self) -> float:
        return self.sent_by_them / self.total_messages if self.total_messages else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation (dates as ISO strings)."""

        def message(m: Optional[MessageRecord]) -> Optional[Dict[str, Any]]:
            if m is None:
                return None
            return {"id": m.id, "text": m.text, "timestamp": m.timestamp}

        def words(items: List[WordFrequency]) -> List[Dict[str, Any]]:
            return [{"word": w.word, "count": w.count} for w in items]

        def day(d: Optional[date]) -> Optional[str]:
            return d.isoformat() if d else None

        return {
            "contact_name": self.contact_name,
            "total_messages": self.total_messages,
            "sent_by_me": self.sent_by_me,
            "sent_by_them": self.sent_by_them,
            "sent_by_me_percent": round(self.sent_by_me_percent * 100, 1),
            "sent_by_them_percent": round(self.sent_by_them_percent * 100, 1),
            "most_active_day": day(self.most_active_day),
            "most_active_day_count": self.most_active_day_count,
            "longest_streak_days": self.longest_streak_days,
            "streak_start": day(self.streak_start),
            "streak_end": day(self.streak_end),
            "longest_message_me": message(self.longest_message_me),
            "longest_message_them": message(self.longest_message_them),
            "short_words_me": words(self.short_words_me),
            "short_words_them": words(self.short_words_them),
            "long_words_me": words(self.long_words_me),
            "long_words_them": words(self.long_words_them),
            "top_emojis_me": words(self.top_emojis_me),
            "top_emojis_them": words(self.top_emojis_them),
        }


def is_reaction(text: Optional[str]) -> bool:
    """
    Check whether a message is a tapback reaction.

    >>> is_reaction('Loved "see you soon"')
    True
    >>> is_reaction("I loved it")
    False
    """
    if not text:
        return False
    if text.lower().startswith(REACTION_PREFIXES):
        return True
    return "\u201c" in text and ("Loved" in text or "Liked" in text)


def _day(timestamp: int) -> date:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).date()


def longest_streak(days: Iterable[date]):
    """
    Longest run of consecutive calendar days.

    Returns:
        (length, start, end); (0, None, None) for no days. The earliest run
        wins a tie.
    """
    ordered = sorted(set(days))
    best = (0, None, None)
    run_start = None
    run_length = 0
    previous = None
    for current in ordered:
        if previous is not None and (current - previous).days == 1:
            run_length += 1
        else:
            run_start = current
            run_length = 1
        if run_length > best[0]:
            best = (run_length, run_start, current)
        previous = current
    return best


def _is_displayable(text: Optional[str]) -> bool:
    if not text:
        return False
    return not any(marker in text for marker in ARCHIVE_MARKERS) and not is_reaction(text)


def _top_words(combined: str):
    counts = Counter(
        word
        for word in _WORD_SPLIT.split(combined.lower())
        if len(word) >= MIN_WORD_LENGTH and word not in STOP_WORDS
    )
    ranked = counts.most_common()
    short = [WordFrequency(w, c) for w, c in ranked if len(w) <= SHORT_WORD_MAX][:TOP_N]
    long = [
        WordFrequency(w, c)
        for w, c in ranked
        if len(w) > SHORT_WORD_MAX and w not in EXCLUDED_LONG_WORDS
    ][:TOP_N]
    return short, long


def _top_emojis(combined: str) -> List[WordFrequency]:
    counts = Counter(EMOJI_PATTERN.findall(combined))
    return [WordFrequency(e, c) for e, c in counts.most_common(TOP_N)]


def analyze_messages(
    contact_name: str, messages: List[MessageRecord], link_count: int = 0
) -> Optional[ChatAnalytics]:
    """
    Compute analytics for one conversation.

    Args:
        contact_name: Name shown in the result.
        messages: Every message of the conversation.
        link_count: Links shared in the conversation; counted as received so
            the total matches the contact's item count.

    Returns:
        ChatAnalytics, or None for a conversation with no messages and no links.
    """
    if not messages and not link_count:
        return None

    stats_pool = [m for m in messages if not is_reaction(m.text)] or list(messages)

    analytics = ChatAnalytics(
        contact_name=contact_name,
        total_messages=len(messages) + link_count,
        sent_by_me=sum(1 for m in messages if m.is_from_me),
        sent_by_them=sum(1 for m in messages if not m.is_from_me) + link_count,
    )

    days = [_day(m.timestamp) for m in stats_pool]
    (
        analytics.longest_streak_days,
        analytics.streak_start,
        analytics.streak_end,
    ) = longest_streak(days)

    if days:
        # most_common keeps first-seen order on ties, so the earliest day wins
        analytics.most_active_day, analytics.most_active_day_count = Counter(days).most_common(1)[0]

    for from_me in (True, False):
        side = [m for m in stats_pool if m.is_from_me == from_me]
        displayable = [m for m in side if _is_displayable(m.text)]
        longest = max(displayable, key=lambda m: len(m.text), default=None)

        combined = " ".join(m.text for m in side if m.text and not is_reaction(m.text))
        short_words, long_words = _top_words(combined)
        emojis = _top_emojis(combined)

        if from_me:
            analytics.longest_message_me = longest
            analytics.short_words_me, analytics.long_words_me = short_words, long_words
            analytics.top_emojis_me = emojis
        else:
            analytics.longest_message_them = longest
            analytics.short_words_them, analytics.long_words_them = short_words, long_words
            analytics.top_emojis_them = emojis

    return analytics


def compute_chat_analytics(store: IndexStore, contact: Contact) -> Optional[ChatAnalytics]:
    """
    Compute analytics for a contact from the index.

    Args:
        store: Initialized index store.
        contact: Contact to analyze.

    Returns:
        ChatAnalytics, or None when the contact has neither messages nor links.
    """
    messages = store.get_messages_for_analytics(contact.id)
    link_count = store.get_link_count(contact.id)
    analytics = analyze_messages(contact.display_name, messages, link_count)
    logger.info(f"Computed analytics for contact {contact.id} ({len(messages)} messages)")
    return analytics
