import pytest

from agr_gene_mapper.exceptions import GeneMappingConfigurationError
from agr_gene_mapper.term_normalizer import GeneName, TermNormalizer, longest_matches, split_away_roman_numbers

# (raw name, expected normalized name)
NORMALIZATION_CASES = [
    ("TNF-alpha receptor 2", "tnf alpha receptor 2"),
    ("TNFalpha", "tnf alpha"),
    ("IL-2", "il 2"),
    ("Il2", "il 2"),
    ("CD44", "cd 44"),
    ("mTOR", "m tor"),
    ("MHCII", "mhc 2"),
    ("FGF-22", "fgf 22"),
    ("receptor of TNF", "receptor tnf"),
    ("for", "for"),
    ("of-the", "of the"),
    ("of the", "of the"),
    ("receptorOf TNF", "receptor tnf"),
]

GENE_NAMES = [
    "TNF-alpha receptor 2", "IL-2 receptor alpha", "hFGF-22", "Eif4g1", "MHCII", "p53", "NF-kappaB",
    "interleukin 1 beta", "Ca2+ channel", "protein kinase C delta", "HLA-DRB1*04:01", "v1.2 transporter",
    "of-the", "receptorOf TNF",
]


class TestNormalize:
    """The normalized form is what is looked up in the synonym index."""

    @pytest.mark.parametrize("name,expected", NORMALIZATION_CASES)
    def test_normalize(self, normalizer, name, expected):
        assert normalizer.normalize(name) == expected, f"Wrong normalization of '{name}'"

    @pytest.mark.parametrize("name", GENE_NAMES)
    def test_normalize_is_idempotent(self, normalizer, name):
        once = normalizer.normalize(name)
        assert normalizer.normalize(once) == once, f"Normalizing '{once}' again changed it"

    @pytest.mark.parametrize("name", GENE_NAMES)
    def test_normalize_is_deterministic(self, normalizer, name):
        assert normalizer.normalize(name) == TermNormalizer().normalize(name)

    def test_decimal_point_is_kept(self, normalizer):
        assert normalizer.normalize("Kv1.2") == "kv 1.2"

    def test_sentence_dot_is_removed(self, normalizer):
        assert normalizer.normalize("TNF.") == "tnf"

    def test_normalized_text_is_lower_case(self, normalizer):
        for name in GENE_NAMES:
            normalized = normalizer.normalize(name)
            assert normalized == normalized.lower()


def test_generate_variants(normalizer):
    variants = normalizer.generate_variants("NF-kappa B")
    assert variants[0] == "NFkappa B", "The first variant removes hyphens between non-digits"
    assert len(variants) == 4


def test_greek_contraction_variant(normalizer):
    variants = normalizer.generate_variants("TNF alpha")
    assert "TNF a" in variants
    assert "TNFa" in variants


def test_non_descriptive_words(normalizer):
    assert normalizer.is_non_descriptive("antigen")
    assert not normalizer.is_non_descriptive("tnf")


def test_gene_name_caches_normalization(normalizer):
    gene_name = GeneName("IL-2 receptor alpha", normalizer)
    assert gene_name.normalized_text == "il 2 receptor alpha"
    assert gene_name.normalized_variants[0] == gene_name.normalized_text
    gene_name.text = "CD4"
    assert gene_name.normalized_text == "cd 4", "Changing the text must reset the cached normalization"


def test_gene_names_compare_by_text(normalizer):
    assert GeneName("TNF", normalizer) == GeneName("TNF", normalizer)
    assert len({GeneName("TNF", normalizer), GeneName("TNF", normalizer)}) == 1


def test_missing_required_resource_is_an_error(tmp_path):
    (tmp_path / "greek").write_text("alpha\nbeta\n")
    with pytest.raises(GeneMappingConfigurationError):
        TermNormalizer(tmp_path)


def test_missing_stopwords_fall_back_to_builtin_list(tmp_path):
    (tmp_path / "greek").write_text("alpha\nbeta\n")
    (tmp_path / "non_descriptives").write_text("protein\n")
    normalizer = TermNormalizer(tmp_path)
    assert normalizer.normalize("receptor of TNF") == "receptor tnf"


def test_longest_matches_prefers_longer_spans():
    matches = longest_matches("alphabeta", ["alpha", "beta", "eta"])
    assert matches == [(0, 5, "alpha"), (5, 9, "beta")]


def test_longest_matches_ties_go_to_first_match():
    assert longest_matches("abab", ["ab", "ba"]) == [(0, 2, "ab"), (2, 4, "ab")]


def test_split_away_roman_numbers():
    assert split_away_roman_numbers(["MHCII", "IL", "CD4"]) == ["MHC", "II", "IL", "CD4"]
