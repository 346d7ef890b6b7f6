"""
configuration.py

Gene mapper configuration. Files are read with configparser, either as plain
``key = value`` properties files or as INI files with a ``[gene_mapping]`` section.
Every key can be overridden by an environment variable ``GENE_MAPPING_<KEY>``.
"""

from __future__ import annotations

import configparser
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Union

from agr_gene_mapper.exceptions import GeneMappingConfigurationError

logger = logging.getLogger(__name__)

CONFIG_SECTION = "gene_mapping"
ENV_PREFIX = "GENE_MAPPING_"

MENTION_INDEX = "mention_index"
CONTEXT_ITEMS_INDEX = "context_items_index"
SEMANTIC_INDEX = "semantic_index"
SPELLING_INDEX = "spelling_index"
EXACT_SCORER_TYPE = "exact_scorer_type"
APPROX_SCORER_TYPE = "approx_scorer_type"
MAXENT_MODEL = "maxent_model"
MAPPING_CORE = "mapping_core"
FILTER_TAX_IDS = "filter_tax_ids"
DEFAULT_SPECIES = "default_species"
USE_CANDIDATE_FILTER = "use_candidate_filter"
MIN_CONTEXT_SCORE = "min_context_score"

KNOWN_KEYS = (
    MENTION_INDEX, CONTEXT_ITEMS_INDEX, SEMANTIC_INDEX, SPELLING_INDEX,
    EXACT_SCORER_TYPE, APPROX_SCORER_TYPE, MAXENT_MODEL, MAPPING_CORE,
    FILTER_TAX_IDS, DEFAULT_SPECIES, USE_CANDIDATE_FILTER, MIN_CONTEXT_SCORE,
)

_TRUE_VALUES = {"1", "yes", "true", "on"}


class GeneMappingConfiguration(dict):
    """Key/value settings of one gene mapper instance."""

    def get_required(self, key: str) -> str:
        value = self.get(key)
        if value is None or str(value).strip() == "":
            raise GeneMappingConfigurationError(
                f"Missing configuration property '{key}' (critical).")
        return str(value).strip()

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUE_VALUES

    def get_float(self, key: str, default: float) -> float:
        value = self.get(key)
        if value is None or str(value).strip() == "":
            return default
        try:
            return float(value)
        except ValueError as e:
            raise GeneMappingConfigurationError(f"Property '{key}' is not a number: {value}") from e

    def get_list(self, key: str) -> List[str]:
        value = self.get(key) or ""
        return [v.strip() for v in str(value).split(",") if v.strip()]

    def apply_environment(self, environ: Optional[Dict[str, str]] = None) -> "GeneMappingConfiguration":
        environ = os.environ if environ is None else environ
        for key in KNOWN_KEYS:
            env_value = environ.get(ENV_PREFIX + key.upper())
            if env_value is not None:
                logger.debug("Configuration property %s overridden from environment", key)
                self[key] = env_value
        return self


def load_configuration(path: Union[str, Path], use_environment: bool = True) -> GeneMappingConfiguration:
    """
    Read a configuration file. Section-less properties files are accepted by
    reading them as the contents of the ``[gene_mapping]`` section.
    """
    path = Path(path)
    if not path.exists():
        logger.error("specified configuration file does not exist: %s", path)
        raise GeneMappingConfigurationError(f"Configuration file {path} does not exist")
    text = path.read_text(encoding="utf-8")
    parser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str
    try:
        parser.read_string(text)
    except configparser.MissingSectionHeaderError:
        parser.read_string(f"[{CONFIG_SECTION}]\n{text}")
    if parser.has_section(CONFIG_SECTION):
        items = dict(parser.items(CONFIG_SECTION))
    else:
        items = dict(parser.defaults())
    config = GeneMappingConfiguration(items)
    if use_environment:
        config.apply_environment()
    logger.info("Loaded gene mapping configuration from %s", path)
    return config
