import pytest

from agr_gene_mapper.exceptions import InvalidStateError
from agr_gene_mapper.gene_model import (GeneDocument, GeneMention, GeneTagger, MeshHeading, SpeciesCandidates,
                                        SpeciesMention)
from agr_gene_mapper.mapping_result import MentionMappingResult
from agr_gene_mapper.synhit import SynHit

TITLE = "TNF in human monocytes"
ABSTRACT = "Mouse macrophages were stimulated. Tnf levels increased."

HYBRID_TEXT = "Binding was shown in a yeast two-hybrid screen with human TNF."
HYBRID_CHUNKS = [(0, 7, "NP"), (8, 17, "VP"), (18, 20, "PP"), (21, 46, "NP"), (47, 51, "PP"), (52, 61, "NP")]
HYBRID_SPECIES = [SpeciesMention(23, 28, "yeast", "4932"), SpeciesMention(52, 57, "human", "9606")]


@pytest.fixture
def document(normalizer):
    """Title and abstract with human and mouse mentions."""
    return GeneDocument.from_text("12345", TITLE, ABSTRACT, normalizer, mesh_headings=["Humans", "Macrophages"])


class TestGeneMention:
    """Gene mentions and their lazily normalized names."""

    def test_normalized_text(self, normalizer):
        mention = GeneMention("TNF-alpha receptor 2", normalizer, 0, 20)
        assert mention.normalized_text == "tnf alpha receptor 2"
        assert (mention.begin, mention.end) == (0, 20)

    def test_changing_the_text_renormalizes(self, normalizer):
        mention = GeneMention("TNF", normalizer)
        assert mention.normalized_text == "tnf"
        mention.text = "CD44"
        assert mention.normalized_text == "cd 44"

    def test_gene_name_requires_a_normalizer(self):
        mention = GeneMention("TNF")
        with pytest.raises(InvalidStateError):
            _ = mention.gene_name

    def test_taxonomy_ids(self, normalizer):
        mention = GeneMention("TNF", normalizer)
        assert mention.taxonomy_ids == []
        mention.taxonomy_id = "9606"
        assert mention.taxonomy_ids == ["9606"]
        mention.taxonomy_candidates = {"10090": set()}
        assert mention.taxonomy_ids == ["10090"]

    def test_taxonomy_scores(self, normalizer):
        mention = GeneMention("TNF", normalizer)
        mention.set_taxonomy_score("9606", 0.5)
        assert mention.get_taxonomy_score("9606") == 0.5
        assert mention.get_taxonomy_score("10090") == 0.0


class TestGeneDocument:
    """Document structure and species candidates."""

    def test_from_text_sentences(self, document):
        sentences = [document.get_covered_text(*s) for s in document.sentences]
        assert sentences == [TITLE, "Mouse macrophages were stimulated.", "Tnf levels increased."]
        assert document.document_text == f"{TITLE} {ABSTRACT}"

    def test_first_sentence_follows_the_title(self, document):
        assert document.get_covered_text(*document.get_first_sentence()) == "Mouse macrophages were stimulated."

    def test_previous_sentence(self, document):
        title, first, second = document.sentences
        assert document.get_previous_sentence(second) == first
        assert document.get_previous_sentence(title) is None

    def test_overlapping_sentence(self, document):
        begin = document.document_text.index("Tnf")
        sentence = document.get_overlapping_sentence(begin, begin + 3)
        assert document.get_covered_text(*sentence) == "Tnf levels increased."

    def test_species_candidates(self, document):
        assert [(s.text, s.tax_id) for s in document.species.text_candidates] == [("human", "9606"),
                                                                                  ("Mouse", "10090")]
        assert [s.text for s in document.species.title_candidates] == ["human"]
        assert document.species.mesh_candidates == {"9606"}

    def test_mesh_headings(self, document):
        assert document.mesh_taxonomy_ids() == ["9606"]
        document.set_mesh_headings([MeshHeading("Mice, Inbred C57BL")])
        assert document.mesh_taxonomy_ids() == ["10090"]

    def test_hybrid_system_species_are_removed(self, normalizer):
        document = GeneDocument("1", "", HYBRID_TEXT, normalizer)
        document.set_sentences([(0, len(HYBRID_TEXT))])
        document.set_chunks(HYBRID_CHUNKS)
        document.set_species(SpeciesCandidates.from_text_candidates(0, 0, [], HYBRID_SPECIES))
        assert [s.text for s in document.species.text_candidates] == ["human"]

    def test_overlapping_chunks(self, normalizer):
        document = GeneDocument("1", "", HYBRID_TEXT, normalizer)
        document.set_chunks(HYBRID_CHUNKS)
        assert document.get_overlapping_chunks(58, 61) == [(52, 61, "NP")]
        assert document.get_overlapping_chunks(0, 20, "VP") == [(8, 17, "VP")]


class TestGeneSelection:
    """Selecting the gene mentions of a document that are mapped."""

    @pytest.fixture
    def genes(self):
        return [GeneMention("Tnf", None, 58, 61, GeneTagger.JNET),
                GeneMention("TNF", None, 0, 3, GeneTagger.GAZETTEER),
                GeneMention("monocytes", None, 13, 22, GeneTagger.GAZETTEER),
                GeneMention("IL", None, 30, 32)]

    def test_genes_are_sorted_by_offset(self, document, genes):
        document.set_genes(genes)
        assert [g.text for g in document.get_genes()] == ["TNF", "monocytes", "IL", "Tnf"]
        assert all(g.gene_document is document and g.doc_id == "12345" for g in genes)
        assert all(g.normalizer is document.normalizer for g in genes)

    def test_select_genes_by_tagger(self, document, genes):
        document.set_genes(genes)
        document.select_genes_by_tagger(GeneTagger.JNET)
        assert [g.text for g in document.get_genes()] == ["Tnf"]
        assert len(document.all_genes) == 3, "Genes without a tagger are dropped"

    def test_allow_genes_by_regex(self, document, genes):
        document.set_genes(genes)
        document.select_genes_by_tagger(GeneTagger.JNET)
        document.allow_genes_by_regex(GeneTagger.GAZETTEER, r"[A-Z]{3}")
        assert [g.text for g in document.get_genes()] == ["TNF", "Tnf"]

    def test_remove_genes_without_candidates(self, document, genes):
        document.set_genes(genes[:2])
        genes[0].mapping_result = MentionMappingResult(
            original_candidates=[SynHit("tnf", 10.0, ["21926"], "test", ["10090"])])
        genes[1].mapping_result = MentionMappingResult()
        document.remove_genes_without_candidates()
        assert [g.text for g in document.get_genes()] == ["Tnf"]

    def test_remove_species_mentions(self, document, normalizer):
        gene = GeneMention("human FGF-22", normalizer, 10, 22)
        document.set_genes([gene])
        document.remove_species_mentions()
        assert gene.text == "FGF-22"
        assert gene.offsets == (16, 22)
        assert gene.normalized_text == "fgf 22"

    def test_get_genes_with_text(self, document, genes):
        document.set_genes(genes)
        assert document.get_genes_with_text("TNF") == [genes[1]]
