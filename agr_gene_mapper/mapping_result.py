"""
mapping_result.py

Result containers of the gene mapping:
- MentionMappingResult: the candidates of one mention through the stages of the mapping
  (original -> filtered -> semantically ordered -> best candidate -> result entries)
- DocumentMappingResult: the mention results of one document
- REJECTION: the sentinel result for mentions that could not be mapped
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, TYPE_CHECKING

from agr_gene_mapper.exceptions import InvalidStateError
from agr_gene_mapper.synhit import SynHit

if TYPE_CHECKING:
    from agr_gene_mapper.gene_model import GeneMention


class RejectionSynHit(SynHit):
    """
    Placeholder hit for rejected mentions. There is exactly one instance; accessing the
    synonym related fields is an error because a rejection has no synonym.
    """
    _instance: Optional["RejectionSynHit"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            SynHit.__init__(cls._instance, None, -sys.float_info.max, [], None)
        return cls._instance

    def __init__(self):
        pass

    @property
    def synonym(self):
        raise InvalidStateError("The rejection SynHit does not have a synonym")

    @synonym.setter
    def synonym(self, synonym):
        raise InvalidStateError("The rejection SynHit cannot be changed")

    @property
    def source(self):
        raise InvalidStateError("The rejection SynHit does not have a source")

    @source.setter
    def source(self, source):
        raise InvalidStateError("The rejection SynHit cannot be changed")

    @property
    def mapped_mention(self):
        raise InvalidStateError("The rejection SynHit does not have a mapped mention")

    @mapped_mention.setter
    def mapped_mention(self, mapped_mention):
        raise InvalidStateError("The rejection SynHit cannot be changed")

    @property
    def tax_ids(self):
        raise InvalidStateError("The rejection SynHit does not have taxonomy IDs")

    @tax_ids.setter
    def tax_ids(self, tax_ids):
        raise InvalidStateError("The rejection SynHit cannot be changed")

    def is_exact_match(self) -> bool:
        return False

    def copy(self) -> "RejectionSynHit":
        return self

    def __deepcopy__(self, memo):
        return self

    def __repr__(self):
        return "REJECTION"


REJECTION_HIT = RejectionSynHit()
REJECTION: Tuple[SynHit, ...] = (REJECTION_HIT,)


def is_rejection(hits) -> bool:
    if isinstance(hits, SynHit):
        return hits is REJECTION_HIT
    return len(hits) == 1 and hits[0] is REJECTION_HIT


class MatchType(Enum):
    EXACT = "exact"
    APPROX = "approx"


@dataclass
class MentionMappingResult:
    original_candidates: List[SynHit] = field(default_factory=list)
    filtered_candidates: List[SynHit] = field(default_factory=list)
    semantically_ordered_candidates: List[SynHit] = field(default_factory=list)
    best_candidate: SynHit = REJECTION_HIT
    result_entries: List[SynHit] = field(default_factory=lambda: list(REJECTION))
    match_type: Optional[MatchType] = None
    confidence: float = 0.0
    ambiguity_degree: int = 0
    mapped_mention: Optional["GeneMention"] = None
    # milliseconds
    candidate_retrieval_time: float = 0.0
    disambiguation_time: float = 0.0

    def is_rejected(self) -> bool:
        return is_rejection(self.result_entries)

    def get_id(self) -> Optional[str]:
        if self.is_rejected():
            return None
        return self.best_candidate.get_id()


@dataclass
class DocumentMappingResult:
    doc_id: Optional[str] = None
    mention_results: List[MentionMappingResult] = field(default_factory=list)
