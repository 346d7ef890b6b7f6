"""
species_disambiguation.py

Assigns species (taxonomy ids) to gene mentions following the species evidence tiers of
Hakenberg et al. (2008), "Inter-species normalization of gene mentions with GNAT":

    compound noun > phrase / enumeration > sentence > previous sentence > title >
    first sentence > anywhere in the text > MeSH heading > species prefix of the gene name
    ('hFGF-22') > default species (only when there is no other evidence at all)

The evidence of a mention is a dict taxonomy id -> set of GeneSpeciesOccurrence. Each
taxonomy id is scored by its most reliable tier; all taxonomy ids sharing the best tier
are kept for candidate retrieval.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from agr_gene_mapper.gene_model import GeneDocument, GeneMention, GeneSpeciesOccurrence, NP_CHUNK, SpeciesMention
from agr_gene_mapper.mapping_result import is_rejection
from utils.resource_utils import read_resource_lines

logger = logging.getLogger(__name__)

SpeciesHints = Dict[str, Set[GeneSpeciesOccurrence]]


@lru_cache(maxsize=4)
def species_prefixes(resource_dir: Optional[Path] = None) -> Dict[str, str]:
    """Gene name prefix character -> taxonomy id, e.g. 'h' -> '9606'."""
    prefixes = {}
    for line in read_resource_lines("speciesprefixes.map", resource_dir) or []:
        prefix, _, tax_id = line.partition("\t")
        if tax_id:
            prefixes[prefix.strip()] = tax_id.strip()
    if not prefixes:
        logger.warning("No species prefixes available; species prefix evidence is disabled.")
    return prefixes


def has_species_prefix(text: str, prefixes: Dict[str, str]) -> Optional[str]:
    """Taxonomy id of a species prefix like the 'm' in 'mTOR' or the 'h' in 'hFGF-22'."""
    if len(text) > 2 and text[0] in prefixes and text[1].isupper():
        return prefixes[text[0]]
    return None


def _add(hints: SpeciesHints, tax_id: str, occurrence: GeneSpeciesOccurrence):
    hints.setdefault(tax_id, set()).add(occurrence)


def species_in_noun_phrase(document: GeneDocument, gene_begin: int, gene_end: int,
                           sentence_species: List[SpeciesMention]) -> SpeciesHints:
    """
    Species in the compound noun of the gene, in the enclosing noun phrase (walking back
    over adjacent NP chunks for enumerations like 'rat and murine Eif4g1') and in the
    remaining sentence. A taxonomy id found in a narrower scope is not added again for
    a wider one.
    """
    hints: SpeciesHints = {}
    if not sentence_species:
        return hints

    sentence = document.get_overlapping_sentence(gene_begin, gene_end)
    sentence_chunks = document.get_chunks_in(sentence)

    for s in sentence_species:
        if gene_begin <= s.begin < gene_end:
            _add(hints, s.tax_id, GeneSpeciesOccurrence.COMPOUND)

    preceding_chunks = [c for c in sentence_chunks if c[0] <= gene_begin]
    enclosing_chunk = preceding_chunks[-1] if preceding_chunks else None
    if enclosing_chunk is not None and enclosing_chunk[0] < gene_end and gene_begin < enclosing_chunk[1]:
        compound_end = max(enclosing_chunk[1], gene_end)
        for s in sentence_species:
            if enclosing_chunk[0] <= s.begin < compound_end:
                _add(hints, s.tax_id, GeneSpeciesOccurrence.COMPOUND)

    species_before_gene = [s for s in sentence_species if s.begin <= gene_begin]
    if species_before_gene and sentence_chunks:
        chunk_index = len(preceding_chunks) - 1 if preceding_chunks else 0
        phrase_start = -1
        while chunk_index >= 0 and sentence_chunks[chunk_index][2] == NP_CHUNK:
            phrase_start = sentence_chunks[chunk_index][0]
            chunk_index -= 1
        if phrase_start != -1:
            for s in sentence_species:
                if phrase_start <= s.begin <= gene_end and s.tax_id not in hints:
                    _add(hints, s.tax_id, GeneSpeciesOccurrence.PHRASE)

    for s in sentence_species:
        if s.tax_id not in hints:
            _add(hints, s.tax_id, GeneSpeciesOccurrence.SENTENCE)
    return hints


def set_species_hints(document: GeneDocument, mention: GeneMention,
                      prefixes: Optional[Dict[str, str]] = None) -> SpeciesHints:
    """
    Collects the species evidence of the mention, sets it as the mention's taxonomy
    candidates and returns it. Empty if there is no evidence and no default species.
    """
    if prefixes is None:
        prefixes = species_prefixes()
    hints: SpeciesHints = {}
    candidates = document.species.text_candidates

    if mention.offsets is not None and candidates:
        sentence = document.get_overlapping_sentence(*mention.offsets)
        if sentence is not None:
            sentence_species = document.get_species_in(sentence)
            for tax_id, occurrences in species_in_noun_phrase(document, mention.begin, mention.end,
                                                              sentence_species).items():
                hints.setdefault(tax_id, set()).update(occurrences)
            previous_sentence = document.get_previous_sentence(sentence)
            for s in document.get_species_in(previous_sentence):
                _add(hints, s.tax_id, GeneSpeciesOccurrence.PREVIOUS_SENTENCE)

    for s in document.species.title_candidates:
        _add(hints, s.tax_id, GeneSpeciesOccurrence.TITLE)

    if candidates:
        for s in document.get_species_in(document.get_first_sentence()):
            _add(hints, s.tax_id, GeneSpeciesOccurrence.FIRST_SENTENCE)
        for s in candidates:
            _add(hints, s.tax_id, GeneSpeciesOccurrence.ANYWHERE)

    if document.mesh_headings is not None:
        mesh_tax_ids = document.mesh_taxonomy_ids()
    else:
        mesh_tax_ids = sorted(document.species.mesh_candidates)
    for tax_id in mesh_tax_ids:
        _add(hints, tax_id, GeneSpeciesOccurrence.MESH)

    prefix_tax_id = has_species_prefix(mention.text, prefixes)
    if prefix_tax_id is not None:
        _add(hints, prefix_tax_id, GeneSpeciesOccurrence.SPECIES_PREFIX)

    if not hints and document.default_species and document.default_species.strip():
        # no species is mentioned anywhere in the document
        _add(hints, document.default_species, GeneSpeciesOccurrence.DEFAULT)

    mention.taxonomy_candidates = hints
    return hints


def best_tier(hints: SpeciesHints) -> Optional[GeneSpeciesOccurrence]:
    tiers = [min(occurrences) for occurrences in hints.values() if occurrences]
    return min(tiers) if tiers else None


def best_tier_tax_ids(hints: SpeciesHints) -> List[str]:
    """All taxonomy ids with evidence at the best tier, sorted."""
    tier = best_tier(hints)
    if tier is None:
        return []
    return sorted(tax_id for tax_id, occurrences in hints.items() if occurrences and min(occurrences) == tier)


def taxonomy_scores_from_hints(hints: SpeciesHints) -> Dict[str, float]:
    """
    Score of a taxonomy id: 1 / (rank of its most reliable tier) plus a small bonus for
    every further tier it was seen in. The bonus never lifts a taxonomy id above one with
    a better tier.
    """
    scores: Dict[str, float] = {}
    for tax_id, occurrences in hints.items():
        if not occurrences:
            continue
        best = min(occurrences)
        scores[tax_id] = 1.0 / best + 0.001 * (len(occurrences) - 1)
    return scores


def restrict_to_allowed(tax_ids: Iterable[str], allowed_tax_ids: Optional[Set[str]]) -> List[str]:
    if not allowed_tax_ids:
        return list(tax_ids)
    return [t for t in tax_ids if t in allowed_tax_ids]


def assign_taxonomy_scores(mention: GeneMention, allowed_tax_ids: Optional[Set[str]] = None) -> Dict[str, float]:
    scores = taxonomy_scores_from_hints(mention.taxonomy_candidates)
    mention.taxonomy_scores = {t: s for t, s in scores.items() if not allowed_tax_ids or t in allowed_tax_ids}
    tier = best_tier({t: o for t, o in mention.taxonomy_candidates.items() if t in mention.taxonomy_scores})
    mention.taxonomy_reliability = tier
    return mention.taxonomy_scores


def highest_scoring_tax_id(taxonomy_scores: Dict[str, float]) -> Optional[str]:
    """Best scored taxonomy id; ties go to the smallest id for a deterministic result."""
    if not taxonomy_scores:
        return None
    return min(taxonomy_scores, key=lambda t: (-taxonomy_scores[t], t))


def _set_tax_id_to_mapping_result(mention: GeneMention, tax_id: Optional[str]) -> bool:
    """
    Sets the taxonomy id on the best candidate or, if it does not apply, promotes the
    first filtered candidate it applies to.
    """
    if not tax_id:
        return False
    result = mention.mapping_result
    best = result.best_candidate
    if not is_rejection(best) and best.has_tax_id(tax_id):
        # an id chosen by context already belongs to the taxon
        if best.tax_id != tax_id:
            best.set_tax_id(tax_id)
        return True
    for candidate in result.filtered_candidates:
        if candidate.has_tax_id(tax_id):
            candidate.set_tax_id(tax_id)
            result.best_candidate = candidate
            return True
    return False


def accept_highest_scoring_tax(mention: GeneMention) -> Optional[str]:
    """
    Sets the highest scoring taxonomy id of the mention on the best candidate of its
    mapping result, falling back to the default species of the document. Returns the
    assigned taxonomy id or None if none of them applies to any candidate.
    """
    if not mention.taxonomy_scores or mention.mapping_result is None:
        return None
    best_tax = highest_scoring_tax_id(mention.taxonomy_scores)
    if _set_tax_id_to_mapping_result(mention, best_tax):
        mention.taxonomy_id = best_tax
        return best_tax
    default_species = mention.gene_document.default_species if mention.gene_document is not None else None
    if _set_tax_id_to_mapping_result(mention, default_species):
        mention.taxonomy_id = default_species
        return default_species
    logger.warning("Could not set the best scored taxonomy ID %s or the default taxonomy ID %s to the candidates of "
                   "the gene mention because no candidate applies to one of those IDs. The gene mention is %s",
                   best_tax, default_species, mention)
    return None


def species_evidence_summary(hints: SpeciesHints) -> Dict[str, List[str]]:
    """Readable form of the evidence for debug logging."""
    summary = defaultdict(list)
    for tax_id in sorted(hints):
        summary[tax_id] = [o.name for o in sorted(hints[tax_id])]
    return dict(summary)
