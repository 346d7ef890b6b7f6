"""
query_generator.py

Builds the synonym index queries for a gene name. The main query searches the lower
cased original name, the normalized name and the normalized name variants in their
respective fields and scores a document by the best of these fields.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

from agr_gene_mapper.candidate_cache import CandidateCacheKey
from agr_gene_mapper.index_fields import SynonymIndexFieldNames
from agr_gene_mapper.lexical_index import BooleanQuery, DisjunctionMaxQuery, LexicalIndex, TermFilter, TermsQuery

logger = logging.getLogger(__name__)


class SpellingChecker(Protocol):

    def exist(self, word: str) -> bool:
        ...

    def suggest_similar(self, word: str, num_suggestions: int) -> List[str]:
        ...


def make_disjunctive_query(search_string: Optional[str],
                           field: str = SynonymIndexFieldNames.LOOKUP_SYN_FIELD) -> Optional[TermsQuery]:
    """Any of the tokens of the search string in the given field."""
    if search_string is None or not search_string.strip():
        return None
    return TermsQuery(field, tuple(search_string.split()))


def make_conjunctive_query(search_string: Optional[str],
                           field: str = SynonymIndexFieldNames.LOOKUP_SYN_FIELD) -> Optional[BooleanQuery]:
    """All of the tokens of the search string in the given field."""
    if search_string is None or not search_string.strip():
        return None
    return BooleanQuery(must=tuple(TermsQuery(field, (token,)) for token in search_string.split()))


def make_disjunction_max_query(key: CandidateCacheKey) -> Optional[BooleanQuery]:
    original_name = key.original_text
    normalized_name = key.normalized_text
    if not original_name.strip() and not normalized_name.strip():
        return None

    disjuncts = [make_disjunctive_query(original_name, SynonymIndexFieldNames.ORIGINAL_NAME),
                 make_disjunctive_query(normalized_name, SynonymIndexFieldNames.LOOKUP_SYN_FIELD)]
    variants = key.gene_name.normalized_variants if key.gene_name is not None else []
    for variant in variants:
        if variant != original_name and variant != normalized_name:
            disjuncts.append(make_disjunctive_query(variant, SynonymIndexFieldNames.VARIANT_NAME))
    disjuncts = [d for d in disjuncts if d is not None]
    if not disjuncts:
        return None

    filters = ()
    if key.tax_id and key.tax_id.strip():
        filters = (TermFilter(SynonymIndexFieldNames.TAX_ID_FIELD, (key.tax_id,)),)
    return BooleanQuery(must=(DisjunctionMaxQuery(tuple(disjuncts), 0.0),), filters=filters)


def apply_spelling_correction(name: str, spelling_checker: Optional[SpellingChecker]) -> Optional[str]:
    """
    Replaces unknown plural-looking tokens by the first spelling suggestion, e.g.
    'receptors' -> 'receptor'. Returns the name unchanged without a checker.
    """
    if spelling_checker is None:
        return name
    if not name.strip():
        return None
    new_name = []
    for token in name.split():
        if len(token) > 2 and token.endswith("s") and not spelling_checker.exist(token):
            suggestions = spelling_checker.suggest_similar(token, 5)
            if suggestions:
                logger.debug("Spelling correction %s -> %s", token, suggestions[0])
                token = suggestions[0]
        new_name.append(token)
    return " ".join(new_name)


class VocabularySpellingChecker:
    """Spelling checker over the tokens of a lexical index field."""

    def __init__(self, words):
        self.words = sorted(set(words))
        self._word_set = frozenset(self.words)

    @classmethod
    def from_index(cls, index: LexicalIndex, field: str = SynonymIndexFieldNames.LOOKUP_SYN_FIELD):
        return cls(index.vocabulary(field))

    def exist(self, word: str) -> bool:
        return word in self._word_set

    def suggest_similar(self, word: str, num_suggestions: int) -> List[str]:
        matches = process.extract(word, self.words, scorer=Levenshtein.normalized_similarity,
                                  limit=num_suggestions + 1)
        return [match for match, _, _ in matches if match != word][:num_suggestions]
