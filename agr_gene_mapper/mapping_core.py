"""
mapping_core.py

Mapping cores turn gene mentions into MentionMappingResults. The available cores are a
closed set selected by the 'mapping_core' configuration value:

- weeping_tree: a relaxed mapping that does not try hard to disambiguate and does not
  filter gene families or domains. Candidates are restricted to the configured taxonomy
  ids ('filter_tax_ids'); the best scoring synonyms win. In document mode the species
  evidence of each mention decides the organism, the GeneRIFs of the context items index
  choose between several genes of that organism.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Set, Type, Union

from agr_gene_mapper.candidate_cache import CacheRegistry
from agr_gene_mapper.candidate_filter import CandidateFilter
from agr_gene_mapper.candidate_retrieval import IndexCandidateRetrieval
from agr_gene_mapper.configuration import (CONTEXT_ITEMS_INDEX, DEFAULT_SPECIES, FILTER_TAX_IDS, MAPPING_CORE,
                                           MIN_CONTEXT_SCORE, SEMANTIC_INDEX, USE_CANDIDATE_FILTER,
                                           GeneMappingConfiguration)
from agr_gene_mapper.context_index import ContextItemsIndex, SemanticContextIndex
from agr_gene_mapper.exceptions import GeneMappingConfigurationError
from agr_gene_mapper.gene_model import GeneDocument, GeneMention
from agr_gene_mapper.lexical_index import LexicalIndex
from agr_gene_mapper.mapping_result import (REJECTION, REJECTION_HIT, DocumentMappingResult, MatchType,
                                            MentionMappingResult, is_rejection)
from agr_gene_mapper.species_disambiguation import (accept_highest_scoring_tax, assign_taxonomy_scores,
                                                    best_tier_tax_ids, restrict_to_allowed, set_species_hints,
                                                    species_evidence_summary)
from agr_gene_mapper.synhit import SynHit
from agr_gene_mapper.term_normalizer import TermNormalizer

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


class MappingCoreType(Enum):
    WEEPING_TREE = "weeping_tree"


class MappingCore(ABC):
    normalizer: TermNormalizer
    candidate_retrieval: IndexCandidateRetrieval

    @abstractmethod
    def map_mention(self, mention: GeneMention) -> MentionMappingResult:
        pass

    @abstractmethod
    def map_document(self, document: GeneDocument) -> DocumentMappingResult:
        pass


def get_best_synonyms(candidates: List[SynHit], taxonomy_ids: Set[str]) -> List[SynHit]:
    """
    The candidates that belong to at least one of the taxonomy ids and share the highest
    mention score among those, each with one of the taxonomy ids set. Without taxonomy ids
    no candidate qualifies.
    """
    compatible = [c for c in candidates if any(t in taxonomy_ids for t in c.tax_ids)]
    if not compatible:
        return []
    best_score = max(c.mention_score for c in compatible)
    best_hits = [c for c in compatible if c.mention_score == best_score]
    for hit in best_hits:
        for tax_id in sorted(taxonomy_ids):
            if hit.has_tax_id(tax_id):
                hit.set_tax_id(tax_id)
                break
    return [hit for hit in best_hits if hit.tax_id is not None]


class WeepingTreeMappingCore(MappingCore):

    def __init__(self, configuration: GeneMappingConfiguration, registry: Optional[CacheRegistry] = None,
                 normalizer: Optional[TermNormalizer] = None, mention_index: Optional[LexicalIndex] = None,
                 context_items_index: Optional[LexicalIndex] = None, semantic_index: Optional[LexicalIndex] = None):
        self.normalizer = normalizer or TermNormalizer()
        self.filter_tax_ids: Set[str] = set(configuration.get_list(FILTER_TAX_IDS))
        if not self.filter_tax_ids:
            raise GeneMappingConfigurationError(
                f"Missing configuration property '{FILTER_TAX_IDS}'. You must specify at least one taxonomy ID to "
                f"which all gene mentions should be mapped. You can specify multiple possibilities by providing a "
                f"comma separated list of tax IDs.")
        self.candidate_retrieval = IndexCandidateRetrieval(configuration, self.normalizer, registry, mention_index)
        self.default_species: Optional[str] = configuration.get(DEFAULT_SPECIES) or None

        self.candidate_filter: Optional[CandidateFilter] = None
        if configuration.get_bool(USE_CANDIDATE_FILTER, False):
            self.candidate_filter = CandidateFilter(self.normalizer)

        self.context_items_index: Optional[ContextItemsIndex] = None
        if configuration.get(CONTEXT_ITEMS_INDEX) or context_items_index is not None:
            self.context_items_index = ContextItemsIndex(configuration.get(CONTEXT_ITEMS_INDEX), registry,
                                                         context_items_index)
        else:
            logger.info("No context items index given; genes of the same organism sharing a synonym are not "
                        "disambiguated.")

        self.semantic_index: Optional[SemanticContextIndex] = None
        if configuration.get(SEMANTIC_INDEX) or semantic_index is not None:
            self.semantic_index = SemanticContextIndex(configuration.get(SEMANTIC_INDEX), registry, semantic_index)
        self.min_context_score = configuration.get_float(MIN_CONTEXT_SCORE, 0.0)
        logger.info("Weeping tree mapping core for taxonomy IDs %s", sorted(self.filter_tax_ids))

    # ---- single mentions ---- #

    def map_mention(self, mention: GeneMention) -> MentionMappingResult:
        result = self._select_candidates(mention)
        if not is_rejection(result.best_candidate):
            start = time.perf_counter()
            self._finish(result)
            result.disambiguation_time += _elapsed_ms(start)
        return result

    def _select_candidates(self, mention: GeneMention) -> MentionMappingResult:
        if mention.normalizer is None:
            mention.normalizer = self.normalizer
        result = MentionMappingResult(mapped_mention=mention)
        mention.mapping_result = result

        start = time.perf_counter()
        organisms = restrict_to_allowed(best_tier_tax_ids(mention.taxonomy_candidates), self.filter_tax_ids)
        candidates = self.candidate_retrieval.get_candidates(mention, organisms)
        result.original_candidates = candidates
        result.candidate_retrieval_time = _elapsed_ms(start)

        start = time.perf_counter()
        if self.candidate_filter is not None:
            normalized_mention = mention.normalized_text
            result.filtered_candidates = [c for c in candidates
                                          if not self.candidate_filter.filter_out(normalized_mention, c.synonym)]
            logger.debug("%s of %s candidates of '%s' survived the candidate filter",
                         len(result.filtered_candidates), len(candidates), mention.text)
        else:
            result.filtered_candidates = list(candidates)

        best_synonyms = get_best_synonyms(result.filtered_candidates, self.filter_tax_ids)
        if not best_synonyms:
            logger.debug("No candidate for gene mention '%s' applies to taxonomy IDs %s", mention.text,
                         sorted(self.filter_tax_ids))
            self._reject(result)
            result.disambiguation_time = _elapsed_ms(start)
            return result
        result.best_candidate = best_synonyms[0]

        if self.semantic_index is not None and mention.document_context:
            compatible = [c for c in result.filtered_candidates if any(t in self.filter_tax_ids for t in c.tax_ids)]
            ranked = [hit for hit in self.semantic_index.rank_by_context(compatible, mention.document_context)
                      if hit.tax_ids[hit.ids.index(hit.id)] in self.filter_tax_ids]
            result.semantically_ordered_candidates = ranked
            if ranked and ranked[0].semantic_score >= self.min_context_score:
                result.best_candidate = self._with_context_id(ranked[0])
                logger.debug("Semantic disambiguation chose %s for '%s'", result.best_candidate, mention.text)
            else:
                logger.debug("No candidate of '%s' reaches the minimum context score %s", mention.text,
                             self.min_context_score)
                self._reject(result)
        result.disambiguation_time = _elapsed_ms(start)
        return result

    @staticmethod
    def _reject(result: MentionMappingResult):
        result.best_candidate = REJECTION_HIT
        result.result_entries = list(REJECTION)

    @staticmethod
    def _with_context_id(hit: SynHit) -> SynHit:
        """Sets the taxonomy id belonging to the id chosen by context similarity."""
        gene_id = hit.id
        hit.set_tax_id(hit.tax_ids[hit.ids.index(gene_id)])
        hit.id = gene_id
        return hit

    def _finish(self, result: MentionMappingResult):
        best = result.best_candidate
        if not best.is_disambiguated() and self.context_items_index is not None and best.tax_id is not None:
            scores = self.context_items_index.get_synonym_generif_scores_for_tax_ids(best, {best.tax_id})
            best_id = self._best_scored_id(scores)
            if best_id is not None:
                best.id = best_id
        result.result_entries = [best]
        result.match_type = MatchType.EXACT if best.is_exact_match() else MatchType.APPROX
        result.confidence = best.mention_score
        result.ambiguity_degree = len(best.taxonomy_specific_ids or best.ids)
        if best.tax_id is not None and result.mapped_mention is not None:
            result.mapped_mention.taxonomy_id = best.tax_id

    @staticmethod
    def _best_scored_id(scores: Dict[str, float]) -> Optional[str]:
        """Highest positive score; on ties the first id."""
        best_id, best_score = None, 0.0
        for gene_id, score in scores.items():
            if score > best_score:
                best_id, best_score = gene_id, score
        return best_id

    # ---- documents ---- #

    def map_document(self, document: GeneDocument) -> DocumentMappingResult:
        if document.default_species is None:
            document.default_species = self.default_species
        mention_results = []
        for mention in document.get_genes():
            if mention.normalizer is None:
                mention.normalizer = self.normalizer
            hints = set_species_hints(document, mention)
            logger.debug("Species evidence of '%s': %s", mention.text, species_evidence_summary(hints))
            result = self._select_candidates(mention)
            if not is_rejection(result.best_candidate):
                start = time.perf_counter()
                assign_taxonomy_scores(mention, self.filter_tax_ids)
                accept_highest_scoring_tax(mention)
                self._finish(result)
                result.disambiguation_time += _elapsed_ms(start)
            mention_results.append(result)
        return DocumentMappingResult(document.id, mention_results)


MAPPING_CORES: Dict[MappingCoreType, Type[MappingCore]] = {
    MappingCoreType.WEEPING_TREE: WeepingTreeMappingCore,
}


def parse_mapping_core_type(kind: Union[str, MappingCoreType]) -> MappingCoreType:
    if isinstance(kind, MappingCoreType):
        return kind
    name = str(kind).strip()
    for core_type in MappingCoreType:
        if name.lower() in (core_type.value, core_type.name.lower()):
            return core_type
    raise GeneMappingConfigurationError(f"Unknown mapping core '{kind}'. Known mapping cores: "
                                        f"{[t.value for t in MappingCoreType]}")


def create_mapping_core(configuration: GeneMappingConfiguration, registry: Optional[CacheRegistry] = None,
                        **kwargs) -> MappingCore:
    core_type = parse_mapping_core_type(configuration.get_required(MAPPING_CORE))
    logger.info("Creating mapping core %s", core_type.value)
    return MAPPING_CORES[core_type](configuration, registry, **kwargs)


