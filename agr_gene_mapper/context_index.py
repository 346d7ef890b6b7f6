"""
context_index.py

Gene context indexes used to disambiguate between the gene ids of a synonym:
- ContextItemsIndex: per gene the summary, GeneRIF, interaction and context texts. Used
  to choose among several ids of the same organism by the GeneRIF score of the synonym.
- SemanticContextIndex: scores the stemmed context of every candidate gene against the
  text surrounding the mention (TF-IDF cosine), restricted to the candidate ids.

Context items are cached per index location (10,000 entries, 10 minutes).
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Set

from nltk.stem.snowball import SnowballStemmer
from sklearn.feature_extraction.text import ENGLISH_STOP_WORDS

from agr_gene_mapper.candidate_cache import (CONTEXT_CACHE_EXPIRY, CONTEXT_CACHE_SIZE, DEFAULT_REGISTRY,
                                             MEMORY_LOCATION_PREFIX, CacheRegistry, ContextItemsCacheKey, LoadingCache)
from agr_gene_mapper.exceptions import GeneMappingConfigurationError
from agr_gene_mapper.index_fields import ContextIndexFieldNames
from agr_gene_mapper.lexical_index import BooleanQuery, LexicalIndex, PhraseQuery, TermFilter, TermsQuery
from agr_gene_mapper.synhit import CompareType, SynHit, sort_synhits

logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")
_stemmer = SnowballStemmer("english")


def stem_context(text: Optional[str]) -> List[str]:
    """Lower cased word tokens without English stopwords, Snowball stemmed."""
    if not text:
        return []
    return [_stemmer.stem(token) for token in _TOKEN_PATTERN.findall(text.lower())
            if token not in ENGLISH_STOP_WORDS]


def make_context_document(gene_id: str, context: str = "", summary: str = "", generifs: Iterable[str] = (),
                          interactions: Iterable[str] = ()) -> Dict[str, List[str]]:
    """A context index document; GeneRIFs are lower cased like synonyms, the context is stemmed."""
    return {
        ContextIndexFieldNames.ID_FIELD: [gene_id],
        ContextIndexFieldNames.SUMMARY: [summary] if summary else [],
        ContextIndexFieldNames.GENERIF: [" ".join(_TOKEN_PATTERN.findall(g.lower())) for g in generifs],
        ContextIndexFieldNames.INTERACTION: list(interactions),
        ContextIndexFieldNames.CONTEXT: [" ".join(stem_context(context))] if context else [],
    }


def build_context_index(documents: Iterable[Dict[str, List[str]]]) -> LexicalIndex:
    return LexicalIndex.from_documents(documents, ContextIndexFieldNames.TEXT_FIELDS,
                                       ContextIndexFieldNames.KEYWORD_FIELDS)


class GeneContextIndex:
    """Common index loading and cached context item lookup."""

    def __init__(self, location: Optional[str], registry: Optional[CacheRegistry] = None,
                 index: Optional[LexicalIndex] = None, description: str = "gene context"):
        registry = registry if registry is not None else DEFAULT_REGISTRY
        if index is not None:
            self.index = index
            self.index_location = location or f"{MEMORY_LOCATION_PREFIX}{id(index)}"
        else:
            if not location:
                raise GeneMappingConfigurationError(f"{description} index not specified in configuration (critical).")
            self.index_location = location
            self.index = LexicalIndex.load(location)
        logger.info("Using %s as %s index with %s gene entries", self.index_location, description, len(self.index))
        self.context_cache: LoadingCache = registry.get_or_create(
            self.index_location,
            lambda: LoadingCache(self._get_context_items_from_index, CONTEXT_CACHE_SIZE, CONTEXT_CACHE_EXPIRY))

    def get_context_items(self, gene_id: str, index_field: str) -> List[str]:
        return list(self.context_cache.get(ContextItemsCacheKey(gene_id, index_field)))

    def _get_context_items_from_index(self, key: ContextItemsCacheKey) -> List[str]:
        docs = self.index.find_by_term(ContextIndexFieldNames.ID_FIELD, key.gene_id, 1)
        return [value for d in docs for value in d.get(key.index_field, [])]


class ContextItemsIndex(GeneContextIndex):

    def __init__(self, location: Optional[str], registry: Optional[CacheRegistry] = None,
                 index: Optional[LexicalIndex] = None):
        super().__init__(location, registry, index, "context items")

    def get_synonym_generif_scores_for_tax_ids(self, synhit: SynHit, tax_ids: Set[str]) -> Dict[str, float]:
        """
        Gene id -> score of the synonym as a phrase in the GeneRIFs of the gene, for all
        ids of the hit belonging to one of the taxonomy ids. Ids without GeneRIF match score 0.
        """
        ids = [gene_id for gene_id, tax_id in zip(synhit.ids, synhit.tax_ids) if tax_id in tax_ids]
        scores = {gene_id: 0.0 for gene_id in ids}
        terms = tuple(synhit.synonym.split())
        if not ids or not terms:
            return scores
        query = BooleanQuery(must=(PhraseQuery(ContextIndexFieldNames.GENERIF, terms),),
                             filters=(TermFilter(ContextIndexFieldNames.ID_FIELD, tuple(ids)),))
        for found in self.index.search(query, len(ids)):
            scores[found.document[ContextIndexFieldNames.ID_FIELD][0]] = found.score
        return scores


class SemanticContextIndex(GeneContextIndex):

    def __init__(self, location: Optional[str], registry: Optional[CacheRegistry] = None,
                 index: Optional[LexicalIndex] = None):
        super().__init__(location, registry, index, "semantic disambiguation")

    @staticmethod
    def make_context_query(context: str) -> Optional[TermsQuery]:
        tokens = stem_context(context)
        if not tokens:
            return None
        return TermsQuery(ContextIndexFieldNames.CONTEXT, tuple(tokens))

    def rank_by_context(self, candidates: List[SynHit], context: str) -> List[SynHit]:
        """
        The candidates (one copy per candidate gene id found in the index) scored by the
        similarity of the gene context to the mention context, best first.
        """
        context_query = self.make_context_query(context)
        if context_query is None or not candidates:
            return []
        id_to_hit: Dict[str, SynHit] = {}
        for hit in candidates:
            for candidate_id in [hit.id] if hit.id is not None else (hit.taxonomy_specific_ids or hit.ids):
                id_to_hit.setdefault(candidate_id, hit)
        logger.debug("number of IDs: %s", len(id_to_hit))
        query = BooleanQuery(must=(context_query,),
                             filters=(TermFilter(ContextIndexFieldNames.ID_FIELD, tuple(id_to_hit)),))
        ranked = []
        for found in self.index.search(query, len(id_to_hit)):
            gene_id = found.document[ContextIndexFieldNames.ID_FIELD][0]
            hit = id_to_hit[gene_id].copy()
            hit.id = gene_id
            hit.semantic_score = found.score
            hit.compare_type = CompareType.SEMSCORE
            logger.debug("hit: %s semantic score: %s", hit, found.score)
            ranked.append(hit)
        return sort_synhits(ranked, CompareType.SEMSCORE)

    def do_disambiguation(self, candidates: List[SynHit], context: str,
                          min_context_score: float = 0.0) -> Optional[SynHit]:
        """The best candidate by context if its semantic score reaches min_context_score."""
        ranked = self.rank_by_context(candidates, context)
        if not ranked:
            return None
        best_hit = ranked[0]
        logger.debug("Best hit by context: %s", best_hit)
        if best_hit.semantic_score >= min_context_score:
            return best_hit
        return None
