"""
candidate_retrieval.py

Retrieval of gene synonym candidates for a gene mention from the synonym index.
Every hit is scored against the normalized mention with the exact scorer (index synonym
equals the normalized mention) or the approximate scorer (all other hits).
Index lookups are cached per index location and per (name, taxonomy id) key.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Union

from agr_gene_mapper.candidate_cache import (CANDIDATE_CACHE_EXPIRY, CANDIDATE_CACHE_SIZE, DEFAULT_REGISTRY,
                                             MEMORY_LOCATION_PREFIX, CacheRegistry, CandidateCacheKey, LoadingCache)
from agr_gene_mapper.configuration import (APPROX_SCORER_TYPE, EXACT_SCORER_TYPE, MAXENT_MODEL, MENTION_INDEX,
                                           SPELLING_INDEX, GeneMappingConfiguration)
from agr_gene_mapper.exceptions import GeneCandidateRetrievalError, GeneMappingConfigurationError
from agr_gene_mapper.gene_model import GeneMention
from agr_gene_mapper.index_fields import NAME_PRIO_DELIMITER, SynonymIndexFieldNames
from agr_gene_mapper.lexical_index import LexicalIndex
from agr_gene_mapper.query_generator import VocabularySpellingChecker, make_disjunction_max_query
from agr_gene_mapper.scoring import PERFECT_SCORE, Scorer, ScorerType, create_scorer
from agr_gene_mapper.synhit import CompareType, SynHit, sort_synhits
from agr_gene_mapper.term_normalizer import GeneName, TermNormalizer

logger = logging.getLogger(__name__)
candidate_logger = logging.getLogger(__name__ + ".candidates")

LUCENE_MAX_HITS = 20
MAX_SYNONYMS = 200
SOURCE_DEFINITION = "Gene ID (any organism)"


def split_id_and_priority(value: str):
    gene_id, delimiter, priority = value.rpartition(NAME_PRIO_DELIMITER)
    if not delimiter:
        return value, -1
    return gene_id, int(priority)


class IndexCandidateRetrieval:
    """
    Candidate retrieval on a LexicalIndex synonym index. The index is read from the
    configured 'mention_index' location unless an already loaded index is passed.
    """

    def __init__(self, config: GeneMappingConfiguration, normalizer: Optional[TermNormalizer] = None,
                 registry: Optional[CacheRegistry] = None, index: Optional[LexicalIndex] = None):
        self.normalizer = normalizer or TermNormalizer()
        self.registry = registry if registry is not None else DEFAULT_REGISTRY
        if index is not None:
            self.index = index
            self.index_location = config.get(MENTION_INDEX) or f"{MEMORY_LOCATION_PREFIX}{id(index)}"
        else:
            self.index_location = config.get_required(MENTION_INDEX)
            self.index = LexicalIndex.load(self.index_location)
        logger.debug("mention index loaded.")

        exact_scorer_type = config.get(EXACT_SCORER_TYPE)
        if exact_scorer_type is None:
            raise GeneMappingConfigurationError(f"No configuration value given for {EXACT_SCORER_TYPE}")
        approx_scorer_type = config.get(APPROX_SCORER_TYPE)
        if approx_scorer_type is None:
            raise GeneMappingConfigurationError(f"No configuration value given for {APPROX_SCORER_TYPE}")
        self.exact_scorer: Scorer = create_scorer(exact_scorer_type, config.get(MAXENT_MODEL))
        self.approx_scorer: Scorer = create_scorer(approx_scorer_type, config.get(MAXENT_MODEL))

        self.spelling_checker: Optional[VocabularySpellingChecker] = None
        spelling_index = config.get(SPELLING_INDEX)
        if spelling_index:
            try:
                self.spelling_checker = VocabularySpellingChecker.from_index(LexicalIndex.load(spelling_index))
            except GeneCandidateRetrievalError as e:
                logger.warning("Spelling index %s could not be read: %s", spelling_index, e)
        if self.spelling_checker is None:
            logger.warning("Spelling index was not given or could not be read. No spelling correction can be done. "
                           "Specified spelling index: %s", spelling_index)

        logger.info("Mention index: %s", self.index_location)
        logger.info("Exact scorer: %s", self.exact_scorer.info())
        logger.info("Approx scorer: %s", self.approx_scorer.info())

        self.candidate_cache: LoadingCache = self.registry.get_or_create(
            self.index_location,
            lambda: LoadingCache(self._get_candidates_from_index_without_cache,
                                 CANDIDATE_CACHE_SIZE, CANDIDATE_CACHE_EXPIRY))

    def get_candidates(self, mention: Union[GeneMention, str],
                       organisms: Optional[Union[str, Iterable[str]]] = None) -> List[SynHit]:
        """
        Scored candidates of the mention, best first. Without organisms the whole index is
        searched; otherwise one restricted search per organism is done and the results are
        concatenated.
        """
        if isinstance(mention, str):
            mention = GeneMention(mention, self.normalizer)
        if organisms is None:
            organisms = mention.taxonomy_ids
        elif isinstance(organisms, str):
            organisms = [organisms]
        organisms = list(organisms)

        hits: List[SynHit] = []
        gene_name = mention.gene_name
        if not organisms:
            hits.extend(self._get_candidates_from_index(CandidateCacheKey.of(gene_name)))
        for tax_id in organisms:
            hits.extend(self._get_candidates_from_index(CandidateCacheKey.of(gene_name, tax_id)))
        logger.debug("Returning %s candidates for gene mention %s[%s-%s] for taxonomy IDs %s",
                     len(hits), gene_name.text, mention.begin, mention.end, organisms)
        for hit in hits:
            hit.compare_type = CompareType.SCORE
        return sort_synhits(hits, CompareType.SCORE)

    def _get_candidates_from_index(self, key: CandidateCacheKey) -> List[SynHit]:
        return [hit.copy() for hit in self.candidate_cache.get(key)]

    def _get_candidates_from_index_without_cache(self, key: CandidateCacheKey) -> List[SynHit]:
        query = make_disjunction_max_query(key)
        if query is None:
            return []
        try:
            found_docs = self.index.search(query, LUCENE_MAX_HITS)
        except GeneCandidateRetrievalError:
            raise
        except (ValueError, MemoryError) as e:
            raise GeneCandidateRetrievalError(f"Search for {key} failed") from e
        logger.debug("searching with query: %s; found hits: %s", query, len(found_docs))
        return self._score_hits(found_docs, key.gene_name)

    def _score_hits(self, found_docs, gene_name: GeneName) -> List[SynHit]:
        all_hits: List[SynHit] = []
        original_mention = gene_name.text.lower()
        normalized_mention = gene_name.normalized_text
        logger.debug("ordering candidates for best match to this reference term: %s for top %s candidates",
                     original_mention, len(found_docs))
        candidate_logger.debug("Search term: %s", normalized_mention)
        for found in found_docs:
            d = found.document
            index_normalized_name = d[SynonymIndexFieldNames.LOOKUP_SYN_FIELD][0]
            ids, priorities = [], []
            for value in d.get(SynonymIndexFieldNames.ID_FIELD, []):
                gene_id, priority = split_id_and_priority(value)
                ids.append(gene_id)
                priorities.append(priority)
            tax_ids = list(d.get(SynonymIndexFieldNames.TAX_ID_FIELD, []))

            is_exact = index_normalized_name == normalized_mention
            scorer = self.exact_scorer if is_exact else self.approx_scorer
            if scorer.scorer_type == ScorerType.INDEX_NATIVE:
                score = PERFECT_SCORE if is_exact else found.score
            else:
                score = scorer.score(normalized_mention, index_normalized_name)
            candidate_logger.debug("%s\t%s\t%.3f", index_normalized_name, ids, score)

            hit = SynHit(index_normalized_name, score, ids, SOURCE_DEFINITION, tax_ids, priorities)
            hit.mapped_mention = original_mention
            hit.mapped_gene_name = gene_name
            all_hits.append(hit)
        return all_hits

    # ---- id based lookups ---- #

    def _documents_of_id(self, gene_id: str, max_hits: Optional[int] = None) -> List[Dict[str, List[str]]]:
        return self.index.find_by_prefix(SynonymIndexFieldNames.ID_FIELD, gene_id + NAME_PRIO_DELIMITER, max_hits)

    def map_gene_id_to_tax_id(self, gene_id: str) -> str:
        """Taxonomy id of a gene id or the empty string if the id is unknown."""
        for d in self._documents_of_id(gene_id, 1):
            for value, tax_id in zip(d.get(SynonymIndexFieldNames.ID_FIELD, []),
                                     d.get(SynonymIndexFieldNames.TAX_ID_FIELD, [])):
                if split_id_and_priority(value)[0] == gene_id:
                    return tax_id
            logger.warning("GeneID: %s has no TaxId assigned.", gene_id)
        return ""

    def get_synonyms(self, gene_id: str) -> List[str]:
        return [d[SynonymIndexFieldNames.LOOKUP_SYN_FIELD][0]
                for d in self._documents_of_id(gene_id, MAX_SYNONYMS)]

    def get_priority_names(self, ids: Sequence[str], priority: int) -> List[str]:
        names = []
        for gene_id in ids:
            docs = self.index.find_by_term(SynonymIndexFieldNames.ID_FIELD,
                                           f"{gene_id}{NAME_PRIO_DELIMITER}{priority}", 1)
            names.extend(d[SynonymIndexFieldNames.LOOKUP_SYN_FIELD][0] for d in docs)
        return names

    def get_index_entries(self, ids: Sequence[str]) -> List[Optional[SynHit]]:
        """One placeholder hit per id holding the taxonomy id of the gene; None for unknown ids."""
        entries: List[Optional[SynHit]] = []
        for gene_id in ids:
            tax_id = self.map_gene_id_to_tax_id(gene_id)
            if not self._documents_of_id(gene_id, 1):
                entries.append(None)
                continue
            entries.append(SynHit("<none>", 0.0, [gene_id], SOURCE_DEFINITION, [tax_id] if tax_id else []))
        return entries
