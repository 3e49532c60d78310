from rentmatch.services.matching.scorer import (
    MatchScorer,
    MatchWeights,
    PropertyData,
    RequestData,
    ScoreResult,
)
from rentmatch.services.matching.engine import MatchEngine, MatchResult
from rentmatch.services.matching.selector import (
    Candidate,
    CandidateSelector,
    passes_prefilter,
)
from rentmatch.services.matching.trust import (
    DatabaseTrustClassifier,
    HttpTrustClassifier,
    TrustAssessment,
    TrustClassifier,
    TrustTierEnum,
    assess_trust_safely,
    classify_trust,
)

__all__ = [
    "MatchScorer",
    "MatchWeights",
    "PropertyData",
    "RequestData",
    "ScoreResult",
    "MatchEngine",
    "MatchResult",
    "Candidate",
    "CandidateSelector",
    "passes_prefilter",
    "DatabaseTrustClassifier",
    "HttpTrustClassifier",
    "TrustAssessment",
    "TrustClassifier",
    "TrustTierEnum",
    "assess_trust_safely",
    "classify_trust",
]
