from collections import OrderedDict

import pytest

from agr_gene_mapper.candidate_cache import CacheRegistry
from agr_gene_mapper.configuration import (APPROX_SCORER_TYPE, EXACT_SCORER_TYPE, FILTER_TAX_IDS, MAPPING_CORE,
                                           MENTION_INDEX, GeneMappingConfiguration)
from agr_gene_mapper.context_index import build_context_index, make_context_document
from agr_gene_mapper.index_fields import NAME_PRIO_DELIMITER, SynonymIndexFieldNames
from agr_gene_mapper.lexical_index import LexicalIndex
from agr_gene_mapper.term_normalizer import GeneName, TermNormalizer

HUMAN = "9606"
MOUSE = "10090"

# (gene id, taxonomy id, synonym, synonym priority)
GENE_SYNONYMS = [
    ("7124", HUMAN, "TNF", -1),
    ("21926", MOUSE, "Tnf", -1),
    ("7133", HUMAN, "TNF receptor 2", 0),
    ("7133", HUMAN, "TNF-alpha receptor 2", 1),
    ("3558", HUMAN, "IL-2", -1),
    ("16183", MOUSE, "Il2", -1),
    ("3559", HUMAN, "IL-2 receptor alpha", 0),
    ("920", HUMAN, "CD4", -1),
    ("960", HUMAN, "CD44", -1),
    ("2475", HUMAN, "mTOR", -1),
    ("56717", MOUSE, "Mtor", -1),
    ("26291", HUMAN, "FGF-22", -1),
    ("67112", MOUSE, "Fgf22", -1),
    # ABC1 is a synonym of two human genes, ABCA1 and ABCF1
    ("19", HUMAN, "ABC1", 2),
    ("23", HUMAN, "ABC1", 2),
]

GENE_CONTEXTS = [
    make_context_document(
        "19",
        context="ATP binding cassette transporter mediating cholesterol efflux to high density lipoprotein",
        summary="Cholesterol efflux regulatory protein",
        generifs=["Loss of ABCA1 function impairs cholesterol efflux"]),
    make_context_document(
        "23",
        context="ABC family protein associated with ribosomes and required for translation initiation",
        summary="ATP binding cassette sub-family F member 1",
        generifs=["The ABC 1 protein binds eIF2 and regulates translation initiation"]),
    make_context_document(
        "7124",
        context="Proinflammatory cytokine secreted by macrophages",
        generifs=["TNF secreted by macrophages induces apoptosis"]),
]


def make_synonym_documents(entries, normalizer):
    """One index document per normalized synonym holding all genes sharing it."""
    by_synonym = OrderedDict()
    for gene_id, tax_id, synonym, priority in entries:
        gene_name = GeneName(synonym, normalizer)
        d = by_synonym.setdefault(gene_name.normalized_text, {
            SynonymIndexFieldNames.LOOKUP_SYN_FIELD: [gene_name.normalized_text],
            SynonymIndexFieldNames.STEMMED_NORMALIZED_NAME: [normalizer.stem_name_tokens(gene_name.normalized_text)],
            SynonymIndexFieldNames.ORIGINAL_NAME: [],
            SynonymIndexFieldNames.VARIANT_NAME: [],
            SynonymIndexFieldNames.ID_FIELD: [],
            SynonymIndexFieldNames.TAX_ID_FIELD: [],
            SynonymIndexFieldNames.PRIORITY: [],
            SynonymIndexFieldNames.FILTERED: [],
        })
        if synonym.lower() not in d[SynonymIndexFieldNames.ORIGINAL_NAME]:
            d[SynonymIndexFieldNames.ORIGINAL_NAME].append(synonym.lower())
        for variant in gene_name.normalized_variants:
            if variant not in d[SynonymIndexFieldNames.VARIANT_NAME]:
                d[SynonymIndexFieldNames.VARIANT_NAME].append(variant)
        d[SynonymIndexFieldNames.ID_FIELD].append(f"{gene_id}{NAME_PRIO_DELIMITER}{priority}")
        d[SynonymIndexFieldNames.TAX_ID_FIELD].append(tax_id)
        d[SynonymIndexFieldNames.PRIORITY].append(str(priority))
        d[SynonymIndexFieldNames.FILTERED].append("0")
    return list(by_synonym.values())


@pytest.fixture(scope="session")
def normalizer():
    """Normalizer with the bundled word lists."""
    return TermNormalizer()


@pytest.fixture(scope="session")
def synonym_index(normalizer):
    """In-memory synonym index over GENE_SYNONYMS."""
    return LexicalIndex.from_documents(make_synonym_documents(GENE_SYNONYMS, normalizer),
                                       SynonymIndexFieldNames.TEXT_FIELDS, SynonymIndexFieldNames.KEYWORD_FIELDS)


@pytest.fixture(scope="session")
def context_index():
    """In-memory gene context index over GENE_CONTEXTS."""
    return build_context_index(GENE_CONTEXTS)


@pytest.fixture
def registry():
    """A fresh cache registry so that tests do not share cached candidates."""
    return CacheRegistry()


@pytest.fixture
def config():
    """Human-only weeping tree configuration for an in-memory synonym index."""
    return GeneMappingConfiguration({
        MENTION_INDEX: "memory://synonyms",
        EXACT_SCORER_TYPE: "SIMPLE",
        APPROX_SCORER_TYPE: "JARO_WINKLER",
        MAPPING_CORE: "weeping_tree",
        FILTER_TAX_IDS: HUMAN,
    })
