"""
Text tokenization and global word-frequency aggregation.
"""

import re
import threading
from collections import Counter
from typing import Dict, Iterable, List, Tuple


class Tokenizer:
    """Normalizes text and counts words."""

    def __init__(self, min_length: int = 3, max_length: int = 50):
        self.min_length = min_length
        self.max_length = max_length

        # \w is unicode-aware, so accented letters survive the substitution
        self.non_word_pattern = re.compile(r'[^\w\s]')
        self.digits_pattern = re.compile(r'\d+')

    def tokenize(self, text: str) -> List[str]:
        """Split text into normalized tokens."""
        if not text:
            return []

        normalized = self.non_word_pattern.sub(' ', text.lower())
        return [
            token for token in normalized.split()
            if self.min_length <= len(token) <= self.max_length
            and not self.digits_pattern.fullmatch(token)
        ]

    def count_words(self, text: str) -> Dict[str, int]:
        """Build a word -> count map for one page."""
        return dict(Counter(self.tokenize(text)))


class WordFrequency:
    """
    Cumulative word counts across all pages of a run.

    ``merge`` is the only mutator; it applies a whole page under one lock so
    the per-word counts and the grand total always move together.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Counter = Counter()
        self._total_words = 0

    def merge(self, word_counts: Dict[str, int]) -> int:
        """Merge one page's counts. Returns the page's total word count."""
        page_total = sum(word_counts.values())
        with self._lock:
            self._counts.update(word_counts)
            self._total_words += page_total
        return page_total

    @property
    def total_words(self) -> int:
        with self._lock:
            return self._total_words

    @property
    def unique_words(self) -> int:
        with self._lock:
            return len(self._counts)

    def snapshot(self) -> Dict[str, int]:
        """Copy of the current word -> count map."""
        with self._lock:
            return dict(self._counts)

    def __getitem__(self, word: str) -> int:
        with self._lock:
            return self._counts.get(word, 0)

    def top_words(self, limit: int = 50) -> List[Tuple[str, int, float]]:
        with self._lock:
            return rank_words(self._counts.items(), self._total_words, limit)


def rank_words(items: Iterable[Tuple[str, int]], total_words: int,
               limit: int = 50) -> List[Tuple[str, int, float]]:
    """Sort (word, count) pairs by count and attach each word's share in percent."""
    ranked = sorted(items, key=lambda item: (-item[1], item[0]))[:limit]
    return [
        (word, count, round(count / total_words * 100, 2) if total_words else 0.0)
        for word, count in ranked
    ]
