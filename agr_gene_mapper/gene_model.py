"""
gene_model.py

The document model the gene mapper works on:
- GeneMention: a text span naming a gene or protein, its species evidence and, once
  mapped, its MentionMappingResult
- GeneDocument: title, text, sentences, noun phrase chunks, MeSH headings
  and species mentions of one document plus the gene mentions selected for mapping

All offsets are character offsets into the full document text (title included) with an
exclusive end.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from functools import lru_cache
from typing import Dict, Iterable, Iterator, List, Optional, Pattern, Set, Tuple, Union, TYPE_CHECKING

from nltk.tokenize.punkt import PunktSentenceTokenizer

from agr_gene_mapper.exceptions import InvalidStateError
from agr_gene_mapper.term_normalizer import GeneName, TermNormalizer
from utils.resource_utils import read_resource_lines
from utils.species_text_norm import find_species_mentions, leading_species_mention

if TYPE_CHECKING:
    from agr_gene_mapper.mapping_result import MentionMappingResult

logger = logging.getLogger(__name__)

Span = Tuple[int, int]

NP_CHUNK = "NP"
HYBRID_PATTERN = re.compile(r".*(one|two|bi|three|tri)(-|\s)hybrid.*", re.DOTALL)


class GeneTagger(Enum):
    JNET = "jnet"
    GAZETTEER = "gazetteer"
    BANNER = "banner"
    GOLD = "gold"


class GeneSpeciesOccurrence(IntEnum):
    """Where a species was found relative to a gene mention; lower is more reliable."""
    COMPOUND = 1
    PHRASE = 2
    SENTENCE = 3
    PREVIOUS_SENTENCE = 4
    TITLE = 5
    FIRST_SENTENCE = 6
    ANYWHERE = 7
    MESH = 8
    SPECIES_PREFIX = 9
    DEFAULT = 10


@dataclass(frozen=True)
class SpeciesMention:
    begin: int
    end: int
    text: str
    tax_id: str


@dataclass
class SpeciesCandidates:
    title_candidates: List[SpeciesMention] = field(default_factory=list)
    mesh_candidates: Set[str] = field(default_factory=set)
    text_candidates: List[SpeciesMention] = field(default_factory=list)

    @classmethod
    def from_text_candidates(cls, title_begin: int, title_end: int, mesh_candidates: Iterable[str],
                             text_candidates: Optional[Iterable[SpeciesMention]]) -> "SpeciesCandidates":
        """The title candidates are the text candidates within the title offsets."""
        text_candidates = sorted(text_candidates or [], key=lambda s: (s.begin, s.end))
        title_candidates = [s for s in text_candidates if s.begin >= title_begin and s.end <= title_end]
        return cls(title_candidates, set(mesh_candidates or []), text_candidates)


@dataclass
class MeshHeading:
    heading: str
    taxonomy_ids: List[str] = field(default_factory=list)


@lru_cache(maxsize=1)
def mesh_heading_to_tax_ids() -> Dict[str, List[str]]:
    """MeSH descriptor name -> taxonomy ids from the bundled 'desc2tax' resource."""
    mapping: Dict[str, List[str]] = {}
    for line in read_resource_lines("desc2tax") or []:
        heading, _, tax_id = line.partition("\t")
        if tax_id:
            mapping.setdefault(heading.strip(), []).append(tax_id.strip())
    if not mapping:
        logger.warning("No MeSH heading to taxonomy ID mapping available; MeSH species evidence is disabled.")
    return mapping


class GeneMention:
    NOID = "NoId"

    def __init__(self, text: str, normalizer: Optional[TermNormalizer] = None, begin: Optional[int] = None,
                 end: Optional[int] = None, tagger: Optional[GeneTagger] = None, doc_id: Optional[str] = None):
        self._text = text
        self.normalizer = normalizer
        self._gene_name: Optional[GeneName] = None
        self.offsets: Optional[Span] = (begin, end) if begin is not None and end is not None else None
        self.tagger = tagger
        self.doc_id = doc_id
        # gold / evaluation id; the mapped id is found in the mapping result
        self.id = GeneMention.NOID
        self.parent: Optional[GeneMention] = None
        self.document_context: Optional[str] = None
        self.taxonomy_id: Optional[str] = None
        self.taxonomy_candidates: Dict[str, Set[GeneSpeciesOccurrence]] = {}
        self.taxonomy_scores: Dict[str, float] = {}
        self.taxonomy_reliability: Optional[GeneSpeciesOccurrence] = None
        self.mapping_result: Optional[MentionMappingResult] = None
        self.gene_document: Optional[GeneDocument] = None

    @property
    def text(self) -> str:
        return self._text

    @text.setter
    def text(self, text: str):
        self._text = text
        if self._gene_name is not None:
            self._gene_name.text = text

    @property
    def gene_name(self) -> GeneName:
        if self._gene_name is None:
            if self.normalizer is None:
                raise InvalidStateError("This GeneMention has no TermNormalizer and thus cannot create a GeneName.")
            self._gene_name = GeneName(self._text, self.normalizer)
        return self._gene_name

    @property
    def normalized_text(self) -> str:
        return self.gene_name.normalized_text

    @property
    def normalized_variants(self) -> List[str]:
        return self.gene_name.normalized_variants

    @property
    def begin(self) -> Optional[int]:
        return self.offsets[0] if self.offsets else None

    @property
    def end(self) -> Optional[int]:
        return self.offsets[1] if self.offsets else None

    @property
    def taxonomy_ids(self) -> List[str]:
        if self.taxonomy_candidates:
            return list(self.taxonomy_candidates)
        if self.taxonomy_id is not None:
            return [self.taxonomy_id]
        return []

    def set_taxonomy_score(self, tax_id: str, score: float):
        self.taxonomy_scores[tax_id] = score

    def get_taxonomy_score(self, tax_id: str) -> float:
        return self.taxonomy_scores.get(tax_id, 0.0)

    def __repr__(self):
        return (f"GeneMention [text={self._text}, offsets={self.offsets}, docId={self.doc_id}, id={self.id}, "
                f"taxonomyId={self.taxonomy_id}, tagger={self.tagger}]")


def _overlaps(begin: int, end: int, other_begin: int, other_end: int) -> bool:
    return begin < other_end and other_begin < end


class GeneDocument:

    def __init__(self, doc_id: Optional[str] = None, title: str = "", text: str = "",
                 normalizer: Optional[TermNormalizer] = None):
        self.id = doc_id
        self.document_title = title or ""
        self.document_text = text or ""
        self.normalizer = normalizer
        self.sentences: List[Span] = []
        self.chunks: List[Tuple[int, int, str]] = []
        self.mesh_headings: Optional[List[MeshHeading]] = None
        self.species = SpeciesCandidates()
        self.default_species: Optional[str] = None
        self.all_genes: List[GeneMention] = []
        self._selected_genes: List[GeneMention] = []

    @classmethod
    def from_text(cls, doc_id: Optional[str], title: str, abstract: str, normalizer: Optional[TermNormalizer] = None,
                  mesh_headings: Optional[Iterable[str]] = None, default_species: Optional[str] = None
                  ) -> "GeneDocument":
        """
        Builds a document from plain title and abstract. The document text is
        'title abstract'; sentences are split with the nltk punkt tokenizer and species
        are recognized with the species name lexicon. Chunks are not set.
        """
        title = title or ""
        text = f"{title} {abstract}" if title else (abstract or "")
        document = cls(doc_id, title, text, normalizer)
        sentences = []
        if title:
            sentences.append((0, len(title)))
        offset = len(title) + 1 if title else 0
        sentences.extend((offset + b, offset + e) for b, e in PunktSentenceTokenizer().span_tokenize(abstract or ""))
        document.set_sentences(sentences)
        if mesh_headings is not None:
            document.set_mesh_headings([MeshHeading(h) for h in mesh_headings])
        species = [SpeciesMention(m.begin, m.end, m.text, m.tax_id) for m in find_species_mentions(text)]
        mesh_tax_ids = {t for h in document.mesh_headings or [] for t in h.taxonomy_ids}
        document.set_species(SpeciesCandidates.from_text_candidates(0, len(title), mesh_tax_ids, species))
        document.default_species = default_species
        return document

    # ---- document structure ---- #

    def set_sentences(self, sentences: Iterable[Span]):
        self.sentences = sorted(sentences)

    def set_chunks(self, chunks: Iterable[Tuple[int, int, str]]):
        self.chunks = sorted(chunks)

    def set_mesh_headings(self, mesh_headings: Iterable[MeshHeading]):
        """Sets the headings and resolves the taxonomy ids of species headings, e.g. 'Mice'."""
        self.mesh_headings = list(mesh_headings)
        heading_map = mesh_heading_to_tax_ids()
        for heading in self.mesh_headings:
            for name in re.split(r",\s+", heading.heading):
                for tax_id in heading_map.get(name.strip(), []):
                    if tax_id not in heading.taxonomy_ids:
                        heading.taxonomy_ids.append(tax_id)

    def set_species(self, species: SpeciesCandidates):
        """
        Sets the species candidates. Species mentioned in chunks talking about hybrid
        systems, e.g. 'yeast two-hybrid screen', are no evidence for the species of a gene
        and are removed. This requires the chunks to be set before.
        """
        if not self.chunks:
            logger.warning("To filter organism mentions that should be removed for gene species assignments, chunking "
                           "is required. The chunks must be set before the species mentions. There are no chunks set "
                           "and species filtering might be ineffective.")
        species.title_candidates = [s for s in species.title_candidates if not self._in_hybrid_chunk(s)]
        species.text_candidates = sorted((s for s in species.text_candidates if not self._in_hybrid_chunk(s)),
                                         key=lambda s: (s.begin, s.end))
        self.species = species

    def _in_hybrid_chunk(self, species_mention: SpeciesMention) -> bool:
        chunk_text = " ".join(self.get_covered_text(b, e) for b, e, _ in
                              self.get_overlapping_chunks(species_mention.begin, species_mention.end))
        return HYBRID_PATTERN.fullmatch(chunk_text.lower()) is not None

    def get_covered_text(self, begin: int, end: int) -> str:
        return self.document_text[begin:end]

    def get_overlapping_sentence(self, begin: int, end: int) -> Optional[Span]:
        for sentence in self.sentences:
            if _overlaps(begin, max(end, begin + 1), *sentence):
                return sentence
        return None

    def get_previous_sentence(self, sentence: Span) -> Optional[Span]:
        previous = [s for s in self.sentences if s < sentence]
        return previous[-1] if previous else None

    def get_first_sentence(self) -> Optional[Span]:
        """The first sentence after the title."""
        title_end = len(self.document_title)
        for sentence in self.sentences:
            if not self.document_title or sentence[0] >= title_end:
                return sentence
        return None

    def get_overlapping_chunks(self, begin: int, end: int, chunk_type: Optional[str] = None) -> List[Tuple[int, int, str]]:
        return [c for c in self.chunks
                if _overlaps(begin, end, c[0], c[1]) and (chunk_type is None or c[2] == chunk_type)]

    def get_chunks_in(self, sentence: Optional[Span]) -> List[Tuple[int, int, str]]:
        if sentence is None:
            return []
        return [c for c in self.chunks if c[0] >= sentence[0] and c[1] <= sentence[1]]

    def get_species_in(self, span: Optional[Span]) -> List[SpeciesMention]:
        if span is None:
            return []
        return [s for s in self.species.text_candidates if s.begin >= span[0] and s.end <= span[1]]

    def mesh_taxonomy_ids(self) -> List[str]:
        return [t for h in self.mesh_headings or [] for t in h.taxonomy_ids]

    # ---- gene mentions ---- #

    def add_gene(self, gene: GeneMention):
        gene.gene_document = self
        gene.doc_id = self.id
        if gene.normalizer is None:
            gene.normalizer = self.normalizer
        self.all_genes.append(gene)

    def set_genes(self, genes: Iterable[GeneMention]):
        self.all_genes = []
        for gene in genes:
            self.add_gene(gene)
        self.select_all_genes()

    def _select(self, gene: GeneMention):
        if not any(g is gene for g in self._selected_genes):
            self._selected_genes.append(gene)
            self._selected_genes.sort(key=lambda g: g.offsets or (-1, -1))

    def select_all_genes(self):
        self._selected_genes = []
        for gene in self.all_genes:
            self._select(gene)

    def select_genes_by_tagger(self, *taggers: GeneTagger):
        """Selects only the genes found by one of the taggers. Genes without a tagger are dropped."""
        self._selected_genes = []
        included = set(taggers)
        kept = []
        for gene in self.all_genes:
            if gene.tagger is None:
                logger.error("Gene %s in document %s does not have a tagger set", gene.text, gene.doc_id)
                continue
            kept.append(gene)
            if gene.tagger in included:
                self._select(gene)
        self.all_genes = kept

    def allow_genes_by_regex(self, tagger: Optional[GeneTagger], *patterns: Union[str, Pattern]):
        """Adds the genes (of the tagger, if given) whose whole text matches one of the patterns."""
        compiled = [re.compile(p) if isinstance(p, str) else p for p in patterns]
        for gene in self.all_genes:
            if tagger is not None and gene.tagger != tagger:
                continue
            if any(p.fullmatch(gene.text) for p in compiled):
                self._select(gene)

    def remove_genes_without_candidates(self):
        self._selected_genes = [g for g in self._selected_genes
                                if g.mapping_result is not None and g.mapping_result.original_candidates]

    def remove_species_mentions(self):
        """Strips leading species names, e.g. 'human FGF-22' becomes 'FGF-22'."""
        for gene in self.all_genes:
            match = leading_species_mention(gene.text)
            if match is None:
                continue
            gene.text = gene.text[match.end:]
            if gene.offsets is not None:
                gene.offsets = (gene.offsets[0] + match.end, gene.offsets[1])

    def get_genes(self) -> Iterator[GeneMention]:
        return iter(list(self._selected_genes))

    def get_genes_with_text(self, text: str) -> List[GeneMention]:
        return [g for g in self._selected_genes if g.text == text]

    def __repr__(self):
        return f"GeneDocument [id={self.id}, genes={len(self._selected_genes)}]"
