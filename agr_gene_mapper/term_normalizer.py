"""
term_normalizer.py

Normalization of gene / protein names before they are searched in the synonym index:
- stopword removal, special character removal
- token splitting at letter/digit and case boundaries
- splitting away greek letters, "high"/"low" and trailing roman numerals
- lower-casing
plus the lexical name variants (hyphen removal, roman numeral split, greek contraction)
that are searched in addition to the normalized name.

The same normalization must be used for the synonyms in the index, otherwise lookups fail.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from nltk.stem.snowball import SnowballStemmer

from agr_gene_mapper.exceptions import GeneMappingConfigurationError
from utils.resource_utils import read_resource_lines

logger = logging.getLogger(__name__)

DEFAULT_STOPWORDS = ("of", "for", "and", "or", "the")

# Roman numerals I-XX, reverse sorted so that e.g. III is tried before II and I
LAT_NUM = ("I", "II", "III", "IV", "V", "VI", "VII", "VIII", "IX", "X",
           "XI", "XII", "XIII", "XIV", "XV", "XVI", "XVII", "XVIII", "XIX", "XX")
LAT_NUM_REGEX = "(" + "|".join(sorted(LAT_NUM, reverse=True)) + ")"
LAT_NUM_PATTERN = re.compile(LAT_NUM_REGEX)

ROMAN_TO_ARABIC = {"I": "1", "II": "2", "III": "3", "IV": "4"}

NUMBER_PATTERN = re.compile(r"([A-Za-z]+)([0-9]+)")

# Tried in this order; each one inserts a single space at the last matching boundary.
TOKEN_SPLIT_PATTERNS = (
    re.compile(r"(.*[a-z])([A-Z0-9].*)"),
    re.compile(r"(.*[A-Z])([0-9].*)"),
    re.compile(r"(.*[0-9])([a-zA-Z].*)"),
    re.compile(r"(.*[A-Z][A-Z])([a-z].*)"),
)

SPECIAL_CHARACTER_PATTERN = re.compile(r"[^A-Za-z0-9.]")
# a dot survives only as a decimal point: preceded by a digit and followed by a letter or digit
DOT_REMOVAL_PATTERN = re.compile(r"(?<![0-9])\.|\.(?![A-Za-z0-9])")
HYPHEN_VARIANT_PATTERN = re.compile(r"([^-0-9])-([^0-9])")

GREEK_CONTRACTIONS = (("alpha", "a"), ("beta", "b"), ("gamma", "g"), ("delta", "d"))


def longest_matches(text: str, words: Sequence[str]) -> List[Tuple[int, int, str]]:
    """
    All occurrences of ``words`` in ``text`` reduced to a set of non-overlapping matches.

    Overlapping matches are resolved by span length: a strictly longer span wins, for equal
    lengths the match found first (lower start, then order of ``words``) wins. The result
    is sorted by start offset; spans are half-open ``(start, end, word)`` triples.
    """
    found: List[Tuple[int, int, int, str]] = []
    for order, word in enumerate(words):
        if not word:
            continue
        start = text.find(word)
        while start != -1:
            found.append((start, start + len(word), order, word))
            start = text.find(word, start + 1)
    found.sort(key=lambda m: (m[0], m[2]))

    selected: List[Tuple[int, int, str]] = []
    for start, end, _, word in sorted(found, key=lambda m: -(m[1] - m[0])):
        if all(end <= s or start >= e for s, e, _ in selected):
            selected.append((start, end, word))
    selected.sort()
    return selected


def split_away_roman_numbers(tokens: Sequence[str]) -> List[str]:
    """Split a trailing upper case roman numeral off each token, e.g. 'MHCII' -> 'MHC', 'II'."""
    ret: List[str] = []
    for token in tokens:
        m = LAT_NUM_PATTERN.search(token)
        while m and m.end() != len(token):
            m = LAT_NUM_PATTERN.search(token, m.end())
        if m and m.start() != 0:
            ret.append(token[:m.start()])
            ret.append(m.group())
        else:
            ret.append(token)
    return ret


class TermNormalizer:
    """
    Turns gene names into the canonical token sequence used for index lookup.
    Instances are immutable after construction and can be shared between threads.
    """

    def __init__(self, resource_dir: Optional[Path] = None):
        greek = read_resource_lines("greek", resource_dir)
        if not greek:
            raise GeneMappingConfigurationError("The greek letter resource could not be loaded (critical).")
        non_descriptives = read_resource_lines("non_descriptives", resource_dir)
        if not non_descriptives:
            raise GeneMappingConfigurationError("The non-descriptives resource could not be loaded (critical).")
        stopwords = read_resource_lines("stopwords", resource_dir)
        if not stopwords:
            logger.warning("Stopword resource not found, using the built-in stopwords %s", DEFAULT_STOPWORDS)
            stopwords = list(DEFAULT_STOPWORDS)

        self.greek = tuple(greek)
        self.non_descriptives = frozenset(non_descriptives)
        self.stopwords = frozenset(stopwords)
        self._split_words = tuple(greek) + ("high", "low")
        self._stemmer = SnowballStemmer("english")

    def normalize(self, term: str) -> str:
        tokens = self._remove_stopwords(term.split())
        tokens = self._remove_special_characters(tokens)

        # apply till there are no more changes
        while True:
            old_tokens = tokens
            tokens = self._split_away_numbers(tokens)
            tokens = self._special_token_split(tokens)
            if tokens == old_tokens:
                break

        tokens = self._split_away_character_strings(tokens)
        tokens = split_away_roman_numbers(tokens)
        tokens = self._replace_roman_numbers(tokens)
        tokens = [t.lower() for t in tokens]
        tokens = self._remove_stopwords(tokens)
        return " ".join(tokens).strip()

    def generate_variants(self, term: str) -> List[str]:
        """
        Raw lexical variants of ``term`` in a fixed order: hyphen removal, roman numeral
        split, greek contraction, greek contraction including a preceding space.
        """
        variants = [HYPHEN_VARIANT_PATTERN.sub(r"\1\2", term),
                    " ".join(split_away_roman_numbers(term.split()))]
        variant = term
        for name, letter in GREEK_CONTRACTIONS:
            variant = variant.replace(name, letter)
        variants.append(variant)
        variant = term
        for name, letter in GREEK_CONTRACTIONS:
            variant = re.sub(r"\s?" + name, letter, variant)
        variants.append(variant)
        return variants

    def stem_name_tokens(self, normalized_term: str) -> str:
        return " ".join(self._stemmer.stem(token) for token in normalized_term.split())

    def is_non_descriptive(self, term: str) -> bool:
        return term in self.non_descriptives

    # ---- pipeline steps ---- #

    def _remove_stopwords(self, tokens: List[str]) -> List[str]:
        # never removes every token, e.g. 'for' (ferredoxin oxidoreductase)
        kept = [t for t in tokens if t not in self.stopwords]
        return kept if kept else list(tokens)

    @staticmethod
    def _remove_special_characters(tokens: List[str]) -> List[str]:
        new_tokens: List[str] = []
        for token in tokens:
            token = SPECIAL_CHARACTER_PATTERN.sub(" ", token)
            token = DOT_REMOVAL_PATTERN.sub(" ", token)
            new_tokens.extend(token.split())
        return new_tokens

    @staticmethod
    def _split_away_numbers(tokens: List[str]) -> List[str]:
        new_tokens: List[str] = []
        for token in tokens:
            m = NUMBER_PATTERN.fullmatch(token)
            if m:
                new_tokens.extend((m.group(1), m.group(2)))
            else:
                new_tokens.append(token)
        return new_tokens

    @staticmethod
    def _special_token_split(tokens: List[str]) -> List[str]:
        new_tokens: List[str] = []
        for token in tokens:
            changed = True
            while changed:
                changed = False
                for pattern in TOKEN_SPLIT_PATTERNS:
                    m = pattern.fullmatch(token)
                    if m:
                        token = m.group(1) + " " + m.group(2)
                        changed = True
                        break
            new_tokens.extend(token.split())
        return new_tokens

    def _split_away_character_strings(self, tokens: List[str]) -> List[str]:
        new_tokens: List[str] = []
        for token in tokens:
            part = token.lower()
            matches = longest_matches(part, self._split_words)
            if not matches or (len(matches) == 1 and matches[0][2] == part):
                new_tokens.append(token)
                continue
            pos = 0
            for start, end, word in matches:
                if start > pos:
                    new_tokens.append(part[pos:start])
                new_tokens.append(word)
                pos = end
            if pos < len(part):
                new_tokens.append(part[pos:])
        return new_tokens

    @staticmethod
    def _replace_roman_numbers(tokens: List[str]) -> List[str]:
        if len(tokens) <= 1:
            return tokens
        return [ROMAN_TO_ARABIC.get(t, t) for t in tokens]


class GeneName:
    """A gene name with its lazily computed normalized text and normalized variants."""

    def __init__(self, text: str, normalizer: TermNormalizer):
        self._text = text
        self.normalizer = normalizer
        self._normalized_text: Optional[str] = None
        self._normalized_variants: Optional[List[str]] = None

    @property
    def text(self) -> str:
        return self._text

    @text.setter
    def text(self, text: str):
        self._text = text
        self._normalized_text = None
        self._normalized_variants = None

    @property
    def normalized_text(self) -> str:
        if self._normalized_text is None:
            self._normalized_text = self.normalizer.normalize(self._text)
        return self._normalized_text

    @property
    def normalized_variants(self) -> List[str]:
        if self._normalized_variants is None:
            variants: List[str] = []
            for variant in self.normalizer.generate_variants(self._text):
                normalized = self.normalizer.normalize(variant)
                if normalized not in variants:
                    variants.append(normalized)
            self._normalized_variants = variants
        return self._normalized_variants

    def __eq__(self, other):
        if not isinstance(other, GeneName):
            return NotImplemented
        return self._text == other._text

    def __hash__(self):
        return hash(self._text)

    def __repr__(self):
        return f"GeneName(text={self._text!r})"
