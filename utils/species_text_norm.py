import os
import re
import unicodedata
from functools import lru_cache
from typing import Dict, List, NamedTuple, Optional

from utils.resource_utils import read_resource_lines

SPECIES_NAMES_RESOURCE = "species_names"

# -----------------------------------------------------------------------------
# hard-code these common-name aliases that we can't derive from the scientific
# species names
# -----------------------------------------------------------------------------
_COMMON_NAME_ALIASES = {
    "human": "9606",
    "humans": "9606",
    "mouse": "10090",
    "mice": "10090",
    "murine": "10090",
    "rat": "10116",
    "rats": "10116",
    "bovine": "9913",
    "cow": "9913",
    "cows": "9913",
    "chicken": "9031",
    "zebrafish": "7955",
    "fruitfly": "7227",
    "fruit fly": "7227",
    "fruit-fly": "7227",
    "budding yeast": "4932",
    "budding-yeast": "4932",
    "fission yeast": "4896",
    "fission-yeast": "4896",
}


class SpeciesNameMatch(NamedTuple):
    begin: int
    end: int
    text: str
    tax_id: str


def _normalize_spaces_and_tags(text: str) -> str:
    if not text:
        return ""
    t = unicodedata.normalize("NFKC", text)
    # Bridge occasional markup-split initials like "C.</hi> elegans" -> "C. elegans"
    t = re.sub(r'([A-Z])\.\s*</[^>]+>\s*([a-z])', r'\1. \2', t)
    t = t.replace("\u00A0", " ").replace("\u2007", " ").replace("\u202F", " ")
    t = re.sub(r"\s+", " ", t).strip()
    return t


def _abbrev_variants_for_name(canonical: str):
    """
    Given 'Genus species' build common abbreviation variants:
      - 'G. species'
      - 'G.species'
      - 'G species'   (no dot; occurs in some texts)
    Only emitted if we have at least two tokens (binomial/trinomial).
    """
    toks = canonical.split()
    if len(toks) < 2:
        return []
    genus = toks[0]
    tail = " ".join(toks[1:])
    initial = genus[0]
    variants = [
        f"{initial}. {tail}",
        f"{initial}.{tail.split()[0]}",
        f"{initial} {tail}",
    ]
    seen = set()
    out = []
    for v in variants:
        if v.lower() not in seen:
            seen.add(v.lower())
            out.append(v)
    return out


def _read_species_names(path: Optional[str]) -> Dict[str, str]:
    """Tab separated 'scientific name<TAB>taxonomy id' lines."""
    if path:
        with open(path, "r", encoding="utf-8") as f:
            lines = [line.strip() for line in f if line.strip() and not line.startswith("##")]
    else:
        lines = read_resource_lines(SPECIES_NAMES_RESOURCE) or []
    names = {}
    for line in lines:
        name, _, tax_id = line.partition("\t")
        if tax_id:
            names[name.strip()] = tax_id.strip()
    return names


def _build_alias_map(species_names: Dict[str, str]):
    """
    Build a dict {alias -> taxonomy id} from the scientific names, their abbreviations
    and the common names. Returns (alias_map, alias_list_sorted_for_regex)
    """
    alias_map = {}
    for name, tax_id in species_names.items():
        alias_map[name] = tax_id
        for alias in _abbrev_variants_for_name(name):
            alias_map[alias] = tax_id
    for k, v in _COMMON_NAME_ALIASES.items():
        alias_map[k] = v

    # Sort aliases longest-first so the regex prefers the longest match.
    aliases_sorted = sorted(alias_map.keys(), key=len, reverse=True)
    return alias_map, aliases_sorted


@lru_cache(maxsize=1)
def _load_compiled_aliases():
    """
    Load the species names and compile one big regex. A different names file can be
    given with the env var GENE_MAPPING_SPECIES_NAMES.
    """
    species_names = _read_species_names(os.environ.get("GENE_MAPPING_SPECIES_NAMES"))
    alias_map, aliases_sorted = _build_alias_map(species_names)

    # Token boundaries: avoid inside-word matches (genes etc.).
    esc = [re.escape(a) for a in aliases_sorted]
    big = r'(?<![A-Za-z0-9])(' + '|'.join(esc) + r')(?![A-Za-z0-9])'
    pattern = re.compile(big, re.IGNORECASE)

    lower_map = {k.lower(): v for k, v in alias_map.items()}
    return pattern, lower_map


def find_species_mentions(text: str) -> List[SpeciesNameMatch]:
    """All species names in the text, longest alias first at each position."""
    if not text:
        return []
    pattern, lower_map = _load_compiled_aliases()
    return [SpeciesNameMatch(m.start(), m.end(), m.group(0), lower_map[m.group(0).lower()])
            for m in pattern.finditer(text)]


def leading_species_mention(text: str) -> Optional[SpeciesNameMatch]:
    """
    The species name at the very beginning of the text, e.g. 'human' in 'human FGF-22',
    if it is followed by more text. The end offset includes the following whitespace.
    """
    if not text:
        return None
    pattern, lower_map = _load_compiled_aliases()
    m = pattern.match(text)
    if m is None:
        return None
    end = m.end()
    while end < len(text) and text[end].isspace():
        end += 1
    if end == m.end() or end >= len(text):
        return None
    return SpeciesNameMatch(m.start(), end, m.group(0), lower_map[m.group(0).lower()])


def normalize_species_text(text: str) -> str:
    return _normalize_spaces_and_tags(text or "")


# if we want to rebuild the alias regex mid-process (e.g. tests)
def _reset_species_alias_cache_for_tests_only():
    _load_compiled_aliases.cache_clear()
