"""
Review text moderation.

Two checks run on every review body before it is written:
- contains_url(): reviews are linkless; any http://, https:// or www.
  (any case) rejects the review outright.
- sanitize(): each configured disallowed word is masked with *** wherever it
  appears, case-insensitively and inside larger words too.

The word list is passed in explicitly (see ContentFilter) rather than read
from a module global, so tests can build filters with their own words.
"""

from __future__ import annotations
import re
from typing import Iterable, Optional, Tuple

MASK = "***"

_URL_PATTERN = re.compile(r"(https?://|www\.)", re.IGNORECASE)


def contains_url(text: str) -> bool:
    """True if the text contains http://, https:// or www. anywhere."""
    if not text:
        return False
    return _URL_PATTERN.search(text) is not None


def _compile_words(words: Iterable[str]) -> Tuple[Tuple[str, "re.Pattern[str]"], ...]:
    compiled = []
    for word in words:
        word = (word or "").strip()
        # A token made only of "*" would re-match the mask forever
        if not word or not word.strip("*"):
            raise ValueError(f"invalid disallowed word: {word!r}")
        compiled.append((word, re.compile(re.escape(word), re.IGNORECASE)))
    return tuple(compiled)


def sanitize(text: str, words: Iterable[str]) -> str:
    """Replace every case-insensitive occurrence of each word with ***."""
    return _apply(text, _compile_words(words))


def _apply(text: str, patterns) -> str:
    if not text:
        return text or ""
    for _, pattern in patterns:
        text = pattern.sub(MASK, text)
    return text


class ContentFilter:
    """
    Configured review filter.

    Built once per app from DISALLOWED_WORDS and kept on
    app.extensions["content_filter"].
    """

    def __init__(self, words: Iterable[str]):
        self._patterns = _compile_words(words)

    @property
    def words(self) -> Tuple[str, ...]:
        return tuple(word for word, _ in self._patterns)

    @staticmethod
    def contains_url(text: str) -> bool:
        return contains_url(text)

    def sanitize(self, text: str) -> str:
        return _apply(text, self._patterns)

    def check(self, text: str) -> Tuple[bool, Optional[str]]:
        """
        Returns (allowed, reason). Only URLs block a review; disallowed words
        are masked by sanitize() instead.
        """
        if contains_url(text):
            return False, "Reviews cannot contain URLs or links."
        return True, None

    def __repr__(self) -> str:
        return f"ContentFilter(words={list(self.words)!r})"
