"""
lexical_index.py

A small in-memory lexical search index used for the gene synonym index and the gene
context (background text) indexes.

- Documents are dictionaries of field name -> list of stored string values.
- Text fields are whitespace tokenized and vectorized with a TF-IDF model per field;
  relevance is the cosine similarity between query and field vectors.
- Keyword fields are looked up by exact value (or prefix) through an inverted map.
- Queries: TermsQuery (any query token present), PhraseQuery (tokens contiguous in one
  stored value), DisjunctionMaxQuery (best scoring disjunct), BooleanQuery (sum of
  scoring clauses restricted by non-scoring TermFilters).

Indexes are written and read with joblib. Building the stored documents from the raw
gene dictionaries is done elsewhere.
"""

from __future__ import annotations

import logging
import pickle
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

import joblib
import numpy as np
from scipy import sparse
from sklearn.feature_extraction.text import TfidfVectorizer

from agr_gene_mapper.exceptions import GeneCandidateRetrievalError
from utils.resource_utils import resolve_location

logger = logging.getLogger(__name__)


def whitespace_analyzer(text: str) -> List[str]:
    return text.split()


@dataclass(frozen=True)
class TermsQuery:
    """Matches documents containing at least one of the terms in the field."""
    field: str
    terms: Tuple[str, ...]


@dataclass(frozen=True)
class PhraseQuery:
    """Matches documents with a stored value containing all terms contiguously, in order."""
    field: str
    terms: Tuple[str, ...]


@dataclass(frozen=True)
class DisjunctionMaxQuery:
    disjuncts: Tuple[object, ...]
    tie_breaker: float = 0.0


@dataclass(frozen=True)
class TermFilter:
    """Non-scoring restriction: the keyword field has one of the values."""
    field: str
    values: Tuple[str, ...]


@dataclass(frozen=True)
class BooleanQuery:
    must: Tuple[object, ...] = ()
    filters: Tuple[TermFilter, ...] = ()


class ScoredDocument(NamedTuple):
    doc_index: int
    score: float
    document: Dict[str, List[str]]


def _stored_values(document: Dict[str, Union[str, Sequence[str]]], field_name: str) -> List[str]:
    value = document.get(field_name)
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


class LexicalIndex:

    def __init__(self, documents: Iterable[Dict], text_fields: Sequence[str], keyword_fields: Sequence[str]):
        self.documents: List[Dict[str, List[str]]] = []
        for document in documents:
            self.documents.append({k: _stored_values(document, k) for k in document})
        self.text_fields = tuple(text_fields)
        self.keyword_fields = tuple(keyword_fields)
        self.vectorizers: Dict[str, Optional[TfidfVectorizer]] = {}
        self.matrices: Dict[str, Optional[sparse.csr_matrix]] = {}
        self.keyword_map: Dict[str, Dict[str, List[int]]] = {}

        for text_field in self.text_fields:
            texts = [" ".join(d.get(text_field, [])) for d in self.documents]
            vectorizer = TfidfVectorizer(analyzer=whitespace_analyzer)
            try:
                matrix = vectorizer.fit_transform(texts)
            except ValueError:
                # empty vocabulary: no document has a value for this field
                logger.debug("Field %s has no indexed terms", text_field)
                vectorizer, matrix = None, None
            self.vectorizers[text_field] = vectorizer
            self.matrices[text_field] = sparse.csr_matrix(matrix) if matrix is not None else None

        for keyword_field in self.keyword_fields:
            inverted: Dict[str, List[int]] = defaultdict(list)
            for doc_index, d in enumerate(self.documents):
                for value in dict.fromkeys(d.get(keyword_field, [])):
                    inverted[value].append(doc_index)
            self.keyword_map[keyword_field] = dict(inverted)
        logger.info("Created lexical index with %s documents", len(self.documents))

    @classmethod
    def from_documents(cls, documents: Iterable[Dict], text_fields: Sequence[str],
                       keyword_fields: Sequence[str]) -> "LexicalIndex":
        return cls(documents, text_fields, keyword_fields)

    def __len__(self):
        return len(self.documents)

    # ---- persistence ---- #

    def save(self, path: Union[str, Path]):
        joblib.dump(self, path)
        logger.info("Saved lexical index with %s documents to %s", len(self.documents), path)

    @classmethod
    def load(cls, location: Union[str, Path]) -> "LexicalIndex":
        try:
            path = resolve_location(str(location))
            index = joblib.load(path)
        except (OSError, EOFError, ValueError, pickle.UnpicklingError) as e:
            raise GeneCandidateRetrievalError(f"Could not read lexical index from {location}") from e
        if not isinstance(index, cls):
            raise GeneCandidateRetrievalError(f"{location} does not contain a lexical index")
        logger.info("Loaded lexical index with %s documents from %s", len(index.documents), location)
        return index

    # ---- search ---- #

    def search(self, query, max_hits: int) -> List[ScoredDocument]:
        """Documents with a positive score, best first; equal scores keep index order."""
        scores = self._score(query)
        candidates = np.flatnonzero(scores > 0)
        if candidates.size == 0:
            return []
        order = candidates[np.argsort(-scores[candidates], kind="stable")][:max_hits]
        return [ScoredDocument(int(i), float(scores[i]), self.documents[i]) for i in order]

    def _score(self, query) -> np.ndarray:
        if isinstance(query, TermsQuery):
            return self._score_terms(query.field, query.terms)
        if isinstance(query, PhraseQuery):
            return self._score_phrase(query)
        if isinstance(query, DisjunctionMaxQuery):
            if not query.disjuncts:
                return np.zeros(len(self.documents))
            all_scores = np.vstack([self._score(q) for q in query.disjuncts])
            best = all_scores.max(axis=0)
            return best + query.tie_breaker * (all_scores.sum(axis=0) - best)
        if isinstance(query, BooleanQuery):
            if query.must:
                scores = np.sum([self._score(q) for q in query.must], axis=0)
            else:
                scores = np.ones(len(self.documents))
            for term_filter in query.filters:
                scores = scores * self._filter_mask(term_filter)
            return scores
        raise GeneCandidateRetrievalError(f"Unsupported query type {type(query).__name__}")

    def _text_field(self, field_name: str) -> Tuple[Optional[TfidfVectorizer], Optional[sparse.csr_matrix]]:
        if field_name not in self.vectorizers:
            raise GeneCandidateRetrievalError(f"Field '{field_name}' is not a text field of this index")
        return self.vectorizers[field_name], self.matrices[field_name]

    def _score_terms(self, field_name: str, terms: Sequence[str]) -> np.ndarray:
        vectorizer, matrix = self._text_field(field_name)
        if vectorizer is None or not terms:
            return np.zeros(len(self.documents))
        query_vector = vectorizer.transform([" ".join(terms)])
        return np.asarray((matrix @ query_vector.T).todense()).ravel()

    def _score_phrase(self, query: PhraseQuery) -> np.ndarray:
        scores = self._score_terms(query.field, query.terms)
        phrase = list(query.terms)
        n = len(phrase)
        for doc_index in np.flatnonzero(scores > 0):
            values = self.documents[doc_index].get(query.field, [])
            if not any(_contains_phrase(value.split(), phrase, n) for value in values):
                scores[doc_index] = 0.0
        return scores

    def _filter_mask(self, term_filter: TermFilter) -> np.ndarray:
        if term_filter.field not in self.keyword_map:
            raise GeneCandidateRetrievalError(f"Field '{term_filter.field}' is not a keyword field of this index")
        mask = np.zeros(len(self.documents))
        inverted = self.keyword_map[term_filter.field]
        for value in term_filter.values:
            mask[inverted.get(value, [])] = 1.0
        return mask

    def vocabulary(self, field_name: str) -> List[str]:
        vectorizer, _ = self._text_field(field_name)
        if vectorizer is None:
            return []
        return sorted(vectorizer.vocabulary_)

    # ---- keyword lookups ---- #

    def find_by_term(self, field_name: str, value: str, max_hits: Optional[int] = None) -> List[Dict[str, List[str]]]:
        if field_name not in self.keyword_map:
            raise GeneCandidateRetrievalError(f"Field '{field_name}' is not a keyword field of this index")
        doc_indices = self.keyword_map[field_name].get(value, [])
        return [self.documents[i] for i in doc_indices[:max_hits]]

    def find_by_prefix(self, field_name: str, prefix: str, max_hits: Optional[int] = None) -> List[Dict[str, List[str]]]:
        if field_name not in self.keyword_map:
            raise GeneCandidateRetrievalError(f"Field '{field_name}' is not a keyword field of this index")
        doc_indices = sorted({i for value, indices in self.keyword_map[field_name].items()
                              if value.startswith(prefix) for i in indices})
        return [self.documents[i] for i in doc_indices[:max_hits]]


def _contains_phrase(tokens: List[str], phrase: List[str], n: int) -> bool:
    return any(tokens[i:i + n] == phrase for i in range(len(tokens) - n + 1))
