import logging

import pytest

from agr_gene_mapper.gene_model import GeneDocument, GeneMention, GeneSpeciesOccurrence, SpeciesCandidates
from agr_gene_mapper.gene_model import SpeciesMention
from agr_gene_mapper.mapping_result import MentionMappingResult
from agr_gene_mapper.species_disambiguation import (accept_highest_scoring_tax, assign_taxonomy_scores, best_tier,
                                                    best_tier_tax_ids, has_species_prefix, highest_scoring_tax_id,
                                                    restrict_to_allowed, set_species_hints, species_in_noun_phrase,
                                                    species_prefixes, taxonomy_scores_from_hints)
from agr_gene_mapper.synhit import SynHit

HUMAN = "9606"
MOUSE = "10090"
RAT = "10116"

ENUMERATION_TEXT = "We compared rat and murine Eif4g1 sequences."
ENUMERATION_CHUNKS = [(0, 2, "NP"), (3, 11, "VP"), (12, 15, "NP"), (20, 43, "NP")]

TITLE = "Tnf signalling"
ABSTRACT = "Rat cells were used. Here human TNF was measured."


def make_mention(document, text, normalizer):
    begin = document.document_text.index(text)
    mention = GeneMention(text, normalizer, begin, begin + len(text))
    document.add_gene(mention)
    return mention


@pytest.fixture
def abstract_document(normalizer):
    """Species in the title-less sentences of an abstract."""
    return GeneDocument.from_text("1", TITLE, ABSTRACT, normalizer)


class TestEvidenceTiers:
    """The most reliable evidence tier decides the species."""

    @pytest.mark.parametrize("hints", [
        {HUMAN: {GeneSpeciesOccurrence.SENTENCE}, MOUSE: {GeneSpeciesOccurrence.TITLE}},
        {MOUSE: {GeneSpeciesOccurrence.TITLE}, HUMAN: {GeneSpeciesOccurrence.SENTENCE}},
    ])
    def test_best_tier_is_independent_of_insertion_order(self, hints):
        assert best_tier(hints) == GeneSpeciesOccurrence.SENTENCE
        assert best_tier_tax_ids(hints) == [HUMAN]

    def test_tier_order(self):
        assert (GeneSpeciesOccurrence.COMPOUND < GeneSpeciesOccurrence.PHRASE < GeneSpeciesOccurrence.SENTENCE
                < GeneSpeciesOccurrence.PREVIOUS_SENTENCE < GeneSpeciesOccurrence.TITLE
                < GeneSpeciesOccurrence.FIRST_SENTENCE < GeneSpeciesOccurrence.ANYWHERE
                < GeneSpeciesOccurrence.MESH < GeneSpeciesOccurrence.SPECIES_PREFIX < GeneSpeciesOccurrence.DEFAULT)

    def test_ties_at_the_best_tier_are_kept(self):
        hints = {MOUSE: {GeneSpeciesOccurrence.TITLE}, HUMAN: {GeneSpeciesOccurrence.TITLE},
                 RAT: {GeneSpeciesOccurrence.ANYWHERE}}
        assert best_tier_tax_ids(hints) == [MOUSE, HUMAN]

    def test_no_evidence(self):
        assert best_tier({}) is None
        assert best_tier_tax_ids({}) == []

    def test_taxonomy_scores(self):
        scores = taxonomy_scores_from_hints({
            HUMAN: {GeneSpeciesOccurrence.SENTENCE, GeneSpeciesOccurrence.ANYWHERE},
            RAT: {GeneSpeciesOccurrence.PREVIOUS_SENTENCE, GeneSpeciesOccurrence.FIRST_SENTENCE,
                  GeneSpeciesOccurrence.ANYWHERE},
        })
        assert scores[HUMAN] == pytest.approx(1 / 3 + 0.001)
        assert scores[RAT] == pytest.approx(1 / 4 + 0.002)

    def test_highest_scoring_tax_id(self):
        assert highest_scoring_tax_id({HUMAN: 0.5, MOUSE: 0.25}) == HUMAN
        assert highest_scoring_tax_id({HUMAN: 0.5, MOUSE: 0.5}) == MOUSE, "Ties go to the smallest id"
        assert highest_scoring_tax_id({}) is None

    def test_restrict_to_allowed(self):
        assert restrict_to_allowed([HUMAN, MOUSE], {MOUSE}) == [MOUSE]
        assert restrict_to_allowed([HUMAN, MOUSE], set()) == [HUMAN, MOUSE]


class TestSpeciesHints:
    """Collecting the species evidence of a gene mention from its document."""

    def test_enumeration_in_noun_phrase(self, normalizer):
        document = GeneDocument("1", "", ENUMERATION_TEXT, normalizer)
        document.set_sentences([(0, len(ENUMERATION_TEXT))])
        document.set_chunks(ENUMERATION_CHUNKS)
        document.set_species(SpeciesCandidates.from_text_candidates(0, 0, [], [
            SpeciesMention(12, 15, "rat", RAT), SpeciesMention(20, 26, "murine", MOUSE)]))
        hints = species_in_noun_phrase(document, 27, 33, document.get_species_in((0, len(ENUMERATION_TEXT))))
        assert hints == {MOUSE: {GeneSpeciesOccurrence.COMPOUND}, RAT: {GeneSpeciesOccurrence.PHRASE}}

    def test_species_in_the_gene_name(self, normalizer):
        text = "The human-TNF level rose."
        document = GeneDocument("1", "", text, normalizer)
        document.set_sentences([(0, len(text))])
        document.set_chunks([(0, 19, "NP"), (20, 24, "VP")])
        document.set_species(SpeciesCandidates.from_text_candidates(0, 0, [], [SpeciesMention(4, 9, "human", HUMAN)]))
        hints = species_in_noun_phrase(document, 4, 13, document.species.text_candidates)
        assert hints == {HUMAN: {GeneSpeciesOccurrence.COMPOUND}}

    def test_sentence_context(self, abstract_document, normalizer):
        mention = make_mention(abstract_document, "TNF", normalizer)
        hints = set_species_hints(abstract_document, mention)
        assert hints == {
            HUMAN: {GeneSpeciesOccurrence.SENTENCE, GeneSpeciesOccurrence.ANYWHERE},
            RAT: {GeneSpeciesOccurrence.PREVIOUS_SENTENCE, GeneSpeciesOccurrence.FIRST_SENTENCE,
                  GeneSpeciesOccurrence.ANYWHERE},
        }
        assert mention.taxonomy_candidates is hints
        assert best_tier_tax_ids(hints) == [HUMAN]

    def test_title_species(self, normalizer):
        document = GeneDocument.from_text("1", "Tnf in mice", "Expression was high.", normalizer)
        mention = make_mention(document, "Expression", normalizer)
        hints = set_species_hints(document, mention)
        assert GeneSpeciesOccurrence.TITLE in hints[MOUSE]
        assert GeneSpeciesOccurrence.FIRST_SENTENCE not in hints[MOUSE]

    def test_mesh_species(self, normalizer):
        document = GeneDocument.from_text("1", "", "TNF was measured.", normalizer, mesh_headings=["Rats"])
        mention = make_mention(document, "TNF", normalizer)
        assert set_species_hints(document, mention) == {RAT: {GeneSpeciesOccurrence.MESH}}

    def test_species_prefix(self, normalizer):
        document = GeneDocument.from_text("1", "", "hFGF-22 was measured.", normalizer, default_species=MOUSE)
        mention = make_mention(document, "hFGF-22", normalizer)
        assert set_species_hints(document, mention) == {HUMAN: {GeneSpeciesOccurrence.SPECIES_PREFIX}}

    def test_default_species_only_without_other_evidence(self, normalizer):
        document = GeneDocument.from_text("1", "", "FGF-22 was measured.", normalizer, default_species=MOUSE)
        mention = make_mention(document, "FGF-22", normalizer)
        assert set_species_hints(document, mention) == {MOUSE: {GeneSpeciesOccurrence.DEFAULT}}

    def test_no_evidence_at_all(self, normalizer):
        document = GeneDocument.from_text("1", "", "FGF-22 was measured.", normalizer)
        mention = make_mention(document, "FGF-22", normalizer)
        assert set_species_hints(document, mention) == {}

    def test_has_species_prefix(self):
        prefixes = species_prefixes()
        assert has_species_prefix("hFGF-22", prefixes) == HUMAN
        assert has_species_prefix("mTOR", prefixes) == MOUSE
        assert has_species_prefix("hedgehog", prefixes) is None
        assert has_species_prefix("hA", prefixes) is None


class TestAcceptTaxonomy:
    """Assigning the best scored species to the mapping result of a mention."""

    @pytest.fixture
    def mention(self, normalizer):
        document = GeneDocument("1", "", "Tnf", normalizer)
        mention = GeneMention("Tnf", normalizer, 0, 3)
        document.add_gene(mention)
        return mention

    @staticmethod
    def set_candidates(mention, *hits):
        mention.mapping_result = MentionMappingResult(filtered_candidates=list(hits), best_candidate=hits[0],
                                                      mapped_mention=mention)

    def test_best_candidate_accepts_the_species(self, mention):
        hit = SynHit("tnf", 10.0, ["7124", "21926"], "test", [HUMAN, MOUSE])
        self.set_candidates(mention, hit)
        mention.taxonomy_scores = {MOUSE: 1 / 3, HUMAN: 1 / 5}
        assert accept_highest_scoring_tax(mention) == MOUSE
        assert hit.id == "21926"
        assert mention.taxonomy_id == MOUSE

    def test_other_candidate_is_promoted(self, mention):
        human_hit = SynHit("tnf", 10.0, ["7124"], "test", [HUMAN])
        mouse_hit = SynHit("tnf", 10.0, ["21926"], "test", [MOUSE])
        self.set_candidates(mention, human_hit, mouse_hit)
        mention.taxonomy_scores = {MOUSE: 1.0}
        assert accept_highest_scoring_tax(mention) == MOUSE
        assert mention.mapping_result.best_candidate is mouse_hit

    def test_default_species_is_the_fallback(self, mention):
        hit = SynHit("tnf", 10.0, ["7124", "21926"], "test", [HUMAN, MOUSE])
        self.set_candidates(mention, hit)
        mention.gene_document.default_species = HUMAN
        mention.taxonomy_scores = {RAT: 1.0}
        assert accept_highest_scoring_tax(mention) == HUMAN
        assert hit.id == "7124"

    def test_unassignable_species_logs_a_warning(self, mention, caplog):
        hit = SynHit("tnf", 10.0, ["7124"], "test", [HUMAN])
        self.set_candidates(mention, hit)
        mention.taxonomy_scores = {RAT: 1.0}
        with caplog.at_level(logging.WARNING):
            assert accept_highest_scoring_tax(mention) is None
        assert "Could not set the best scored taxonomy ID" in caplog.text
        assert hit.tax_id is None

    def test_assign_taxonomy_scores_respects_allowed_ids(self, mention):
        mention.taxonomy_candidates = {HUMAN: {GeneSpeciesOccurrence.TITLE},
                                       RAT: {GeneSpeciesOccurrence.SENTENCE}}
        scores = assign_taxonomy_scores(mention, {HUMAN, MOUSE})
        assert scores == {HUMAN: pytest.approx(1 / 5)}
        assert mention.taxonomy_reliability == GeneSpeciesOccurrence.TITLE
