"""
scoring.py

String similarity scorers used to rank the synonyms returned by the synonym index
against the normalized gene mention.

All scorers return PERFECT_SCORE for identical strings. Other pairs get a similarity
in [0, 1], so an exact match always ranks above every approximate match.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Dict, Optional, Union

import joblib
import numpy as np
from rapidfuzz.distance import Jaro, JaroWinkler, Levenshtein
from sklearn.linear_model import LogisticRegression

from agr_gene_mapper.exceptions import GeneMappingConfigurationError
from utils.resource_utils import RESOURCE_DIR, resolve_location

logger = logging.getLogger(__name__)

PERFECT_SCORE = 10.0

MAXENT_DEFAULT_MODEL = RESOURCE_DIR / "maxent_default.json"


class ScorerType(IntEnum):
    SIMPLE = 0
    TOKEN_JARO = 1
    MAXENT = 2
    JARO_WINKLER = 3
    LEVENSHTEIN = 4
    INDEX_NATIVE = 10


class Scorer(ABC):
    scorer_type: ScorerType

    @abstractmethod
    def score(self, term1: str, term2: str) -> float:
        pass

    @abstractmethod
    def info(self) -> str:
        pass

    @staticmethod
    def is_perfect_match(term1: str, term2: str) -> bool:
        return term1 == term2

    def __repr__(self):
        return self.info()


class SimpleScorer(Scorer):
    """Dice coefficient of the two token sets."""
    scorer_type = ScorerType.SIMPLE

    def score(self, term1: str, term2: str) -> float:
        if self.is_perfect_match(term1, term2):
            return PERFECT_SCORE
        tokens1 = set(term1.split())
        tokens2 = set(term2.split())
        if not tokens1 or not tokens2:
            return 0.0
        return 2 * len(tokens1 & tokens2) / (len(tokens1) + len(tokens2))

    def info(self) -> str:
        return "SimpleScorer"


def token_jaro_similarity(term1: str, term2: str) -> float:
    """
    Symmetric token level Jaro similarity: every token is aligned with its most similar
    token of the other term, the score is the mean over the tokens of both terms.
    """
    tokens1 = term1.split()
    tokens2 = term2.split()
    if not tokens1 or not tokens2:
        return 0.0
    best1 = [max(Jaro.similarity(t1, t2) for t2 in tokens2) for t1 in tokens1]
    best2 = [max(Jaro.similarity(t2, t1) for t1 in tokens1) for t2 in tokens2]
    return (sum(best1) + sum(best2)) / (len(best1) + len(best2))


class TokenJaroSimilarityScorer(Scorer):
    scorer_type = ScorerType.TOKEN_JARO

    def score(self, term1: str, term2: str) -> float:
        if self.is_perfect_match(term1, term2):
            return PERFECT_SCORE
        return token_jaro_similarity(term1, term2)

    def info(self) -> str:
        return "TokenJaroSimilarityScorer"


class JaroWinklerScorer(Scorer):
    scorer_type = ScorerType.JARO_WINKLER

    def score(self, term1: str, term2: str) -> float:
        if self.is_perfect_match(term1, term2):
            return PERFECT_SCORE
        return JaroWinkler.similarity(term1, term2)

    def info(self) -> str:
        return "JaroWinklerScorer"


class LevenshteinScorer(Scorer):
    scorer_type = ScorerType.LEVENSHTEIN

    def score(self, term1: str, term2: str) -> float:
        if self.is_perfect_match(term1, term2):
            return PERFECT_SCORE
        return Levenshtein.normalized_similarity(term1, term2)

    def info(self) -> str:
        return "LevenshteinScorer"


MAXENT_FEATURES = ("jaro_winkler", "levenshtein", "token_dice", "token_jaro", "same_numbers",
                   "common_prefix", "length_ratio")


def pair_features(term1: str, term2: str) -> np.ndarray:
    """Feature vector of a (mention, synonym) pair in the order of MAXENT_FEATURES."""
    tokens1 = term1.split()
    tokens2 = term2.split()
    numbers1 = sorted(t for t in tokens1 if t.isdigit())
    numbers2 = sorted(t for t in tokens2 if t.isdigit())
    prefix = 0
    for c1, c2 in zip(term1, term2):
        if c1 != c2:
            break
        prefix += 1
    longest = max(len(term1), len(term2)) or 1
    set1, set2 = set(tokens1), set(tokens2)
    dice = 2 * len(set1 & set2) / (len(set1) + len(set2)) if set1 and set2 else 0.0
    return np.array([
        JaroWinkler.similarity(term1, term2),
        Levenshtein.normalized_similarity(term1, term2),
        dice,
        token_jaro_similarity(term1, term2),
        1.0 if numbers1 == numbers2 else 0.0,
        prefix / longest,
        min(len(term1), len(term2)) / longest,
    ])


def _model_from_coefficients(params: Dict) -> LogisticRegression:
    features = params.get("features", list(MAXENT_FEATURES))
    if list(features) != list(MAXENT_FEATURES):
        raise GeneMappingConfigurationError(f"MaxEnt coefficients are defined for unknown features {features}")
    model = LogisticRegression()
    model.classes_ = np.array([0, 1])
    model.coef_ = np.array([params["coef"]], dtype=float)
    model.intercept_ = np.array([params["intercept"]], dtype=float)
    model.n_features_in_ = len(MAXENT_FEATURES)
    return model


class MaxEntScorer(Scorer):
    """
    Logistic regression (maximum entropy) model over string pair features. The score is
    the probability of the pair being a true synonym match.
    Without an explicit model the bundled default coefficients are used; a model file
    written with joblib (any fitted classifier with predict_proba) overrides them.
    """
    scorer_type = ScorerType.MAXENT

    def __init__(self, model_path: Optional[str] = None):
        if model_path:
            path = resolve_location(model_path)
            if not path.exists():
                raise GeneMappingConfigurationError(f"MaxEnt model file {model_path} does not exist")
            self.model = joblib.load(path)
            self.model_source = str(model_path)
        else:
            if not MAXENT_DEFAULT_MODEL.is_file():
                raise GeneMappingConfigurationError("The default MaxEnt model resource could not be loaded (critical).")
            with open(MAXENT_DEFAULT_MODEL, "r", encoding="utf-8") as f:
                self.model = _model_from_coefficients(json.load(f))
            self.model_source = "default"
        logger.info("MaxEnt scorer uses the %s model", self.model_source)

    def score(self, term1: str, term2: str) -> float:
        if self.is_perfect_match(term1, term2):
            return PERFECT_SCORE
        features = pair_features(term1, term2).reshape(1, -1)
        return float(self.model.predict_proba(features)[0, 1])

    def info(self) -> str:
        return f"MaxEntScorer ({self.model_source})"


class IndexNativeScorer(Scorer):
    """Place holder: the relevance score of the synonym index search is used directly."""
    scorer_type = ScorerType.INDEX_NATIVE

    def score(self, term1: str, term2: str) -> float:
        if self.is_perfect_match(term1, term2):
            return PERFECT_SCORE
        raise NotImplementedError("There is no scoring implementation for the index native scorer. "
                                  "The relevance score of the index search should be used directly.")

    def info(self) -> str:
        return "IndexNativeScorer"


SCORERS = {
    ScorerType.SIMPLE: SimpleScorer,
    ScorerType.TOKEN_JARO: TokenJaroSimilarityScorer,
    ScorerType.JARO_WINKLER: JaroWinklerScorer,
    ScorerType.LEVENSHTEIN: LevenshteinScorer,
    ScorerType.INDEX_NATIVE: IndexNativeScorer,
}


def parse_scorer_type(kind: Union[int, str, ScorerType]) -> ScorerType:
    """Accepts the integer code, its string representation or the enum name."""
    if isinstance(kind, ScorerType):
        return kind
    try:
        if isinstance(kind, int) or str(kind).strip().lstrip("-").isdigit():
            return ScorerType(int(kind))
        return ScorerType[str(kind).strip().upper()]
    except (KeyError, ValueError) as e:
        raise GeneMappingConfigurationError(f"Unknown scorer type: {kind}") from e


def create_scorer(kind: Union[int, str, ScorerType], maxent_model: Optional[str] = None) -> Scorer:
    scorer_type = parse_scorer_type(kind)
    if scorer_type == ScorerType.MAXENT:
        return MaxEntScorer(maxent_model)
    return SCORERS[scorer_type]()
