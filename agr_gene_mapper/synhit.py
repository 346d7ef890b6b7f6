"""
synhit.py

SynHit: one synonym found in the synonym index together with all gene ids (and their
taxonomy ids and synonym priorities) that share this synonym, the score of the synonym
with respect to the searched mention and the state of the disambiguation (chosen
taxonomy id and gene id).
"""

from __future__ import annotations

import copy
import random
from enum import Enum
from typing import Dict, Iterable, List, Optional, TYPE_CHECKING

from agr_gene_mapper.scoring import PERFECT_SCORE

if TYPE_CHECKING:
    from agr_gene_mapper.term_normalizer import GeneName


class CompareType(Enum):
    RANDOM = "random"
    SCORE = "score"
    SEMSCORE = "semscore"


class SynHit:

    def __init__(self, synonym: Optional[str], mention_score: float, ids: List[str], source: Optional[str],
                 tax_ids: Optional[List[str]] = None, synonym_priorities: Optional[List[int]] = None):
        self._synonym = synonym
        self.mention_score = mention_score
        self.semantic_score = 0.0
        self.overall_score = 0.0
        self.ids = list(ids)
        self._tax_ids = list(tax_ids) if tax_ids is not None else []
        self.synonym_priorities = list(synonym_priorities) if synonym_priorities is not None else []
        self._source = source
        self._mapped_mention: Optional[str] = None
        self.mapped_gene_name: Optional[GeneName] = None
        self.species_mention_scores: Dict[str, float] = {}
        self.compare_type = CompareType.SCORE
        self.random = random.randint(0, 1 << 30)
        self.id: Optional[str] = None
        self.tax_id: Optional[str] = None
        self.taxonomy_specific_ids: Optional[List[str]] = None

    @property
    def synonym(self) -> Optional[str]:
        return self._synonym

    @synonym.setter
    def synonym(self, synonym: str):
        self._synonym = synonym

    @property
    def source(self) -> Optional[str]:
        return self._source

    @source.setter
    def source(self, source: str):
        self._source = source

    @property
    def mapped_mention(self) -> Optional[str]:
        return self._mapped_mention

    @mapped_mention.setter
    def mapped_mention(self, mapped_mention: str):
        self._mapped_mention = mapped_mention

    @property
    def tax_ids(self) -> List[str]:
        return self._tax_ids

    @tax_ids.setter
    def tax_ids(self, tax_ids: List[str]):
        self._tax_ids = list(tax_ids)

    # ---- disambiguation state ---- #

    def set_tax_id(self, tax_id: str):
        """
        Fix the taxonomy id of this hit. The gene ids belonging to the taxon become the
        taxonomy specific ids; if there is exactly one, it becomes the id of the hit.
        """
        gene_ids = self.gene_ids_of_tax_id(tax_id)
        if not gene_ids:
            raise ValueError(f"Cannot set taxonomy ID '{tax_id}' to this SynHit because this taxonomy ID "
                             f"does not occur for this SynHit: {self!r}")
        self.taxonomy_specific_ids = gene_ids
        self.id = gene_ids[0] if len(gene_ids) == 1 else None
        self.tax_id = tax_id

    def get_id(self) -> Optional[str]:
        if self.id is None:
            if self.taxonomy_specific_ids:
                return self.taxonomy_specific_ids[0]
            if len(self.ids) == 1:
                return self.ids[0]
        return self.id

    def has_tax_id(self, tax_id: str) -> bool:
        return tax_id in self.tax_ids

    def gene_ids_of_tax_id(self, tax_id: str) -> List[str]:
        return [gene_id for gene_id, t in zip(self.ids, self.tax_ids) if t == tax_id]

    def priorities_of_ids(self, ids: Iterable[str]) -> List[int]:
        id_set = set(ids)
        return [self.synonym_priorities[i] for i, gene_id in enumerate(self.ids) if gene_id in id_set]

    @property
    def synonym_priority(self) -> int:
        return int(self.synonym_priorities[0])

    def is_exact_match(self) -> bool:
        return self.mention_score == PERFECT_SCORE

    def is_disambiguated(self) -> bool:
        return self.id is not None

    def is_ambiguous_in_general(self) -> bool:
        return len(self.ids) > 1

    def is_intra_species_ambiguous_in_general(self) -> bool:
        """At least two gene ids of this synonym belong to the same taxon."""
        return len(set(self.tax_ids)) < len(self.tax_ids)

    def is_inter_species_ambiguous_in_general(self) -> bool:
        return len(set(self.tax_ids)) > 1

    # ---- comparison ---- #

    def _sort_value(self, other: "SynHit") -> tuple:
        if not isinstance(other, SynHit):
            return NotImplemented
        if self.compare_type != other.compare_type:
            raise ValueError(f"Two SynHits are compared that don't use the same comparison type: "
                             f"{self!r}, {other!r}")
        return compare_value(self, self.compare_type), compare_value(other, other.compare_type)

    def __lt__(self, other):
        values = self._sort_value(other)
        return values if values is NotImplemented else values[0] < values[1]

    def __le__(self, other):
        values = self._sort_value(other)
        return values if values is NotImplemented else values[0] <= values[1]

    def __gt__(self, other):
        values = self._sort_value(other)
        return values if values is NotImplemented else values[0] > values[1]

    def __ge__(self, other):
        values = self._sort_value(other)
        return values if values is NotImplemented else values[0] >= values[1]

    def copy(self) -> "SynHit":
        """Independent copy; all id, taxonomy and score containers are duplicated."""
        h = copy.copy(self)
        h.ids = list(self.ids)
        h._tax_ids = list(self._tax_ids)
        h.synonym_priorities = list(self.synonym_priorities)
        h.species_mention_scores = dict(self.species_mention_scores)
        if self.taxonomy_specific_ids is not None:
            h.taxonomy_specific_ids = list(self.taxonomy_specific_ids)
        return h

    def __repr__(self):
        return (f"syn={self._synonym}\tid={self.ids}\tscore={self.mention_score:.3f}"
                f"\tsemScore={self.semantic_score:.3f}\ttaxId={self._tax_ids}")


def compare_value(hit: SynHit, compare_type: CompareType) -> float:
    if compare_type == CompareType.SCORE:
        return hit.mention_score
    if compare_type == CompareType.SEMSCORE:
        return hit.semantic_score
    return hit.random


def sort_synhits(hits: Iterable[SynHit], compare_type: CompareType = CompareType.SCORE) -> List[SynHit]:
    """Stable sort, best hit first."""
    return sorted(hits, key=lambda h: compare_value(h, compare_type), reverse=True)


def show_hit_ids(hits: Iterable[SynHit]) -> str:
    return ", ".join(f"{h.synonym}={h.ids}" for h in hits)
