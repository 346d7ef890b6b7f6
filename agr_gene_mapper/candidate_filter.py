"""
candidate_filter.py

Heuristic removal of false positive candidates returned by the synonym index.
A candidate is filtered out when the token difference between the searched name and
the found synonym is "uninformative", e.g. just a number, a greek letter or a modifier
word like 'receptor'. Additionally provides the term reduction helpers used by the
top-N mapping (removal of unspecified protein names, domain/family words, ...).
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from pathlib import Path
from typing import Iterable, Optional, Pattern, Set

from agr_gene_mapper.term_normalizer import TermNormalizer
from utils.resource_utils import read_resource_lines

logger = logging.getLogger(__name__)

GREEK = ("alpha", "beta", "gamma", "delta", "epsilon", "zeta", "eta", "theta", "iota", "kappa",
         "lambda", "mu", "nu", "xi", "omicron", "pi", "rho", "sigma", "tau", "upsilon", "phi",
         "chi", "psi", "omega")
GREEK_REGEX = "(" + "|".join(GREEK) + ")"
# all greek letters except alpha
SUB_GREEK = "(" + "|".join(GREEK[1:]) + ")"

# first letter -> greek letter name; on collisions the first greek letter wins (e -> epsilon)
GREEK_ABBREVIATIONS = {}
for _greek in GREEK:
    GREEK_ABBREVIATIONS.setdefault(_greek[0], _greek)

MODIFIER = ("(receptors?|cofactors?|factors?|tranporters?|regulators?|inhibitors?|activators?|"
            "suppressors?|enhancers?|repressors?|adaptors?|interactors?|modulators?|mediators?|"
            "inducers?|effectors?|coactivators?|supressors?|integrators?|facilitators?|binders?|"
            "terminators?|acceptors?|responders?|proactivators?|exchangers?|adapters?|modifiers?|"
            "ligands?)")

NON_DESCRIPTIVE = ("(constructs?|fragments?|antigens?|precursors?|proteins?|genes?|chains?|domains?|"
                   "kinases?|homologues?|homologs?|isoforms?|isologs?|isotypes?|motifs?|orthologues?|"
                   "orthologs?|products?|sequences?|subtypes?|subunits?)")

AMINO_ACIDS = ("(alanine|arginine|asparagine|aspartic|cysteine|glutamine|glutamic|glycine|histidine|"
               "isoleucine|leucine|lysine|methionine|phenylalanine|proline|serine|threonine|"
               "tryptophan|tyrosine|valine)")

NON_DESC = ("(promoter|onco protein|oncoprotein|proto oncogene|protooncogene|protease|binding site|"
            "transcript|element|construct|si rna|prem rna|pre m rna|m rna ?s?|rna|locus|gene product|"
            "product|reporter gene|reporter|gene|protein|c dna|molecule|pseudogene|autoantigen|peptide|"
            "polypeptide|enzyme)$")

DOMAIN_FAMILIES = ("^.*(acceptors|acid|activators|adapters|adaptors|antibodi|antibody|binders|binding|"
                   "binding site|binding sites|box|boxe|channel|channels|chromosome|coactivators|cofactors|"
                   "complex|domain|dyneins|effectors|element|enhancers|epitope|erythrocyte|exchangers|exon|"
                   "facilitators|factors|familie|family|filament|finger|helicases|histone|histones|"
                   "homeodomain|inducers|inhibitors|integrators|interactors|intron|kinases|kinesins|lectins|"
                   "ligands|mediators|member|membrane|modifiers|modulators|motif|myosins|proactivators|"
                   "proteases|proteasome|proteins|reductases|region|regulators|repeat|repressors|residue|"
                   "responders|sequence|site|subdomain|subfamily|subunits|superfamily|suppressors|"
                   "supressors|syndrome|tail|terminal|terminators|terminus|tranporters|transferases|"
                   "zinc finger)e?s?")

NUMBER_CLASS = "([02-9]|[1-9]{2,})"

_NUMBER_PATTERN = re.compile(r"[0-9]+")
_SINGLE_SYMBOL_PATTERN = re.compile(r"[a-z]|[0-9]")
_SPECIAL_WORD_PATTERN = re.compile("(" + GREEK_REGEX + "|" + MODIFIER + "|" + NON_DESCRIPTIVE + ")")
_GREEK_ABBREVIATION_PATTERN = re.compile(r"\b[a-zA-Z]\b")


def expand_greek(term: str) -> str:
    """Expand single letters that may abbreviate a greek letter, e.g. 'pkc a' -> 'pkc alpha'."""
    return _GREEK_ABBREVIATION_PATTERN.sub(lambda m: GREEK_ABBREVIATIONS.get(m.group(), m.group()), term)


def get_numbers(tokens: Iterable[str]) -> Counter:
    return Counter(t for t in tokens if _NUMBER_PATTERN.fullmatch(t))


def is_number_compatible(normalized_mention: str, synonym: str) -> bool:
    """True if both terms contain exactly the same numbers (with multiplicities)."""
    return get_numbers(normalized_mention.split()) == get_numbers(synonym.split())


class CandidateFilter:
    """
    Rule based false positive filter. Expects both terms to be normalized with the
    same TermNormalizer; the rules are evaluated in a fixed order and the first
    matching rule decides.
    """

    def __init__(self, normalizer: Optional[TermNormalizer] = None, resource_dir: Optional[Path] = None):
        self.normalizer = normalizer or TermNormalizer(resource_dir)
        self.unspecifieds = self._init_unspecifieds(resource_dir)
        self.premodifiers = self._init_premodifiers(resource_dir)
        self.pattern_unspecifieds: Optional[Pattern] = (
            re.compile(self.unspecifieds) if self.unspecifieds else None)
        self.pattern_premodifiers: Optional[Pattern] = (
            re.compile(self.premodifiers + ".*") if self.premodifiers else None)
        self.pattern_domain_families = re.compile(DOMAIN_FAMILIES)
        self.pattern_non_desc = re.compile(".* " + NON_DESC)

    def _init_unspecifieds(self, resource_dir: Optional[Path]) -> Optional[str]:
        lines = read_resource_lines("unspecified_proteins", resource_dir)
        if not lines:
            logger.warning("Resource 'unspecified_proteins' not found, unspecified names are not recognized")
            return None
        names = []
        for line in lines:
            normalized = self.normalizer.normalize(line)
            if normalized and normalized not in names:
                names.append(re.escape(normalized))
        regex = "^(" + "|".join(names) + ")e?s?$"
        logger.debug("Initialized unspecified proteins pattern: %s", regex)
        return regex

    @staticmethod
    def _init_premodifiers(resource_dir: Optional[Path]) -> Optional[str]:
        lines = read_resource_lines("premodifiers", resource_dir)
        if not lines:
            logger.warning("Resource 'premodifiers' not found, premodifiers are not recognized")
            return None
        regex = "^(" + "|".join(re.escape(line) for line in lines) + ") "
        logger.debug("Initialized protein void premodifiers pattern: %s.*", regex)
        return regex

    # ---- filtering ---- #

    def filter_out(self, search_term: str, found_term: str) -> bool:
        search_tokens = set(search_term.split())
        found_tokens = set(found_term.split())
        difference = sorted(search_tokens ^ found_tokens)

        if difference:
            if all(_NUMBER_PATTERN.fullmatch(t) for t in difference):
                logger.debug("filtered out because: difference only numbers: '%s' <-> '%s'", search_term, found_term)
                return True
            if all(_SINGLE_SYMBOL_PATTERN.fullmatch(t) for t in difference):
                logger.debug("filtered out because: difference only single characters or single digits: '%s' <-> '%s'",
                             search_term, found_term)
                return True
            if all(_SPECIAL_WORD_PATTERN.fullmatch(t) for t in difference):
                logger.debug("filtered out because: difference consists only of special words "
                             "(greek, modifiers, non-descriptive): '%s' <-> '%s'", search_term, found_term)
                return True

        if self._only_different_types(search_term, found_term, "([0-9]+)"):
            logger.debug("filtered out because: terms differ in one number only: '%s' <-> '%s'",
                         search_term, found_term)
            return True
        if self._only_different_types(search_term, found_term, GREEK_REGEX):
            logger.debug("filtered out because: terms differ in one greek token only: '%s' <-> '%s'",
                         search_term, found_term)
            return True
        # 1 is excluded
        if self._differ_in_type_of_one_term(search_term, found_term, NUMBER_CLASS):
            logger.debug("filtered out because: one has a number and the other doesn't: '%s' <-> '%s'",
                         search_term, found_term)
            return True
        # alpha is excluded
        if self._differ_in_type_of_one_term(search_term, found_term, SUB_GREEK):
            logger.debug("filtered out because: one has a greek letter and the other doesn't: '%s' <-> '%s'",
                         search_term, found_term)
            return True
        if self._differ_in_type_of_one_term(search_term, found_term, MODIFIER):
            logger.debug("filtered out because: one has a modifier and the other doesn't: '%s' <-> '%s'",
                         search_term, found_term)
            return True
        return False

    @staticmethod
    def _differ_in_type_of_one_term(search_term: str, found_term: str, type_regex: str) -> bool:
        """Exactly one term has one additional token, and that token is of the given type."""
        if search_term == found_term:
            return False
        s1: Set[str] = set(search_term.split())
        s2: Set[str] = set(found_term.split())
        if len(s1) == len(s2) + 1 and s2 <= s1:
            diff = s1 - s2
        elif len(s2) == len(s1) + 1 and s1 <= s2:
            diff = s2 - s1
        else:
            return False
        return len(diff) == 1 and re.fullmatch(type_regex, next(iter(diff))) is not None

    @staticmethod
    def _only_different_types(search_term: str, found_term: str, type_regex: str) -> bool:
        """
        Both terms contain exactly one token of the given type, and they are identical
        apart from that token which differs.
        """
        type_pattern = re.compile(type_regex)

        def occurrences(term: str) -> int:
            return sum(1 for t in term.split() if type_pattern.fullmatch(t))

        if occurrences(search_term) != 1 or occurrences(found_term) != 1:
            return False
        query = re.compile(r"(?P<pre>[a-z0-9 ]*?) ?(?P<type>" + type_regex + r") ?(?P<post>[a-z0-9 ]*?)")
        m1 = query.fullmatch(search_term)
        m2 = query.fullmatch(found_term)
        if not m1 or not m2:
            return False
        return (m1.group("type") != m2.group("type")
                and m1.group("pre") == m2.group("pre")
                and m1.group("post") == m2.group("post"))

    # ---- predicates ---- #

    def is_unspecified(self, term: str) -> bool:
        return self.pattern_unspecifieds is not None and self.pattern_unspecifieds.fullmatch(term) is not None

    def is_non_descriptive(self, term: str) -> bool:
        return self.pattern_non_desc.fullmatch(term) is not None

    # ---- term reduction ---- #

    def remove_unspecifieds(self, normalized_term: str) -> str:
        if self.is_unspecified(normalized_term):
            logger.debug("IS UNSPECIFIED: %s", normalized_term)
            normalized_term = self.pattern_unspecifieds.sub("", normalized_term, count=1)
        return normalized_term.strip()

    def remove_domain_families(self, normalized_term: str) -> str:
        if self.pattern_domain_families.fullmatch(normalized_term):
            logger.debug("IS DOMAIN: %s", normalized_term)
            normalized_term = self.pattern_domain_families.sub("", normalized_term, count=1)
        return normalized_term.strip()

    def remove_premodifiers(self, normalized_term: str) -> str:
        if self.pattern_premodifiers is not None and self.pattern_premodifiers.fullmatch(normalized_term):
            logger.debug("PREMODIFIER: %s", normalized_term)
            normalized_term = re.sub(self.premodifiers, "", normalized_term, count=1)
        return normalized_term.strip()

    def remove_non_descriptives(self, normalized_term: str) -> str:
        if self.is_non_descriptive(normalized_term):
            logger.debug("IS NONDESC: %s", normalized_term)
            normalized_term = re.sub(NON_DESC, "", normalized_term, count=1)
        return normalized_term.strip()

    def remove_modifiers(self, normalized_term: str) -> str:
        """Strip unspecified names, domain/family words, premodifiers and trailing non-descriptives."""
        logger.debug("TRYING to remove modifiers or even complete term: %s", normalized_term)
        normalized_term = self.remove_unspecifieds(normalized_term.strip())
        normalized_term = self.remove_domain_families(normalized_term)
        normalized_term = self.remove_premodifiers(normalized_term)
        return self.remove_non_descriptives(normalized_term)
