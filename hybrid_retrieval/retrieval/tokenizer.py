"""
Text tokenizer for lexical scoring.

Normalizes text into lowercase word terms. Unlike a search-engine analyzer it
keeps stopwords and short tokens: every term counts toward document length.
"""

import re

_PUNCT_PATTERN = re.compile(r"[^\w\s]")


class LexicalTokenizer:
    """
    Text tokenizer for the lexical scorer.

    Performs:
    - Lowercasing
    - Punctuation replacement (any non-word, non-whitespace character)
    - Whitespace tokenization
    """

    def tokenize(self, text: str) -> list[str]:
        """Tokenize text into a list of tokens."""
        if not text:
            return []

        text = _PUNCT_PATTERN.sub(" ", text.lower())
        return text.split()

    def tokenize_batch(self, texts: list[str]) -> list[list[str]]:
        """Tokenize multiple texts."""
        return [self.tokenize(text) for text in texts]


_default_tokenizer = LexicalTokenizer()


def tokenize(text: str) -> list[str]:
    """Tokenize with the default tokenizer."""
    return _default_tokenizer.tokenize(text)


__all__ = ["LexicalTokenizer", "tokenize"]
