"""Approximate token counting.

Exact parity with the embedding model's tokenizer is not needed, only a
deterministic estimate that never decreases as text is appended.
"""

from __future__ import annotations

import math
import re

from vault_index.schemas.config import TokenStrategy

__all__ = [
    'TokenCounter',
]

# Words and standalone punctuation runs
_WORD_OR_PUNCT = re.compile(r'\w+|[^\w\s]+')

# Rough ratio of model tokens per word/punctuation unit
_WORDS_TOKEN_RATIO = 1.3

# Average characters per token for English prose
_CHARS_PER_TOKEN = 4


class TokenCounter:
    """Deterministic token estimator.

    Strategies:
    - 'chars': ceil(len / 4). Fast and the default.
    - 'whitespace': number of whitespace-separated words.
    - 'words': words plus punctuation runs, scaled by 1.3.
    """

    def __init__(self, strategy: TokenStrategy = 'chars') -> None:
        self._strategy = strategy

    @property
    def strategy(self) -> TokenStrategy:
        return self._strategy

    def count(self, text: str) -> int:
        """Estimate tokens in text."""
        if not text:
            return 0
        match self._strategy:
            case 'chars':
                return math.ceil(len(text) / _CHARS_PER_TOKEN)
            case 'whitespace':
                return len(text.split())
            case 'words':
                return math.ceil(len(_WORD_OR_PUNCT.findall(text)) * _WORDS_TOKEN_RATIO)

    def fits(self, text: str, budget: int) -> bool:
        return self.count(text) <= budget

    def tail(self, text: str, budget: int) -> str:
        """Longest suffix of text within budget, starting at a word boundary.

        Returns '' when budget is 0 or no whole word fits.
        """
        if budget <= 0 or not text:
            return ''
        if self.count(text) <= budget:
            return text
        # Binary search on the suffix start; count() is monotonic in suffix length
        lo, hi = 0, len(text)
        while lo < hi:
            mid = (lo + hi) // 2
            if self.count(text[mid:]) <= budget:
                hi = mid
            else:
                lo = mid + 1
        start = lo
        # Snap forward to the start of a word
        if start > 0 and not text[start - 1].isspace():
            while start < len(text) and not text[start].isspace():
                start += 1
        while start < len(text) and text[start].isspace():
            start += 1
        return text[start:]
